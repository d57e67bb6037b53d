# auth.py: Render the authentication settings of a gateway class

# Copyright 2020 by its authors.
# Some rights reserved. See AUTHORS.
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the 'Software'), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED 'AS IS', WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS BE LIABLE FOR ANY
# CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT,
# TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE
# SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

from munch import Munch

from .. import config
from .. import util
from .errors import CriticalError, Reason

AUTH_TYPES = {
    'static': 'static',
    'plaintext': 'static',
    'ephemeral': 'ephemeral',
    'timewindowed': 'ephemeral',
    'longterm': 'ephemeral',
}


def get_auth_type(t):
    at = AUTH_TYPES.get(str(t).lower())
    if at is None:
        raise CriticalError(Reason.INVALID_AUTH_TYPE, t)
    return at


def get_auth_secret(c):
    "The Secret referenced by the GatewayConfig."
    ref = c.gw_conf.spec.authRef
    if ref.get('group', '') not in ('', 'v1'):
        raise CriticalError(Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
                            f'invalid Secret group: {ref.get("group")}')
    if ref.get('kind', 'Secret') != 'Secret':
        raise CriticalError(Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
                            f'invalid Secret kind: {ref.get("kind")}')
    if not ref.get('name'):
        raise CriticalError(Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
                            'empty Secret name')
    ns = ref.get('namespace') or c.gw_conf.namespace
    secret = c.store.get('Secret', ns, ref['name'])
    if secret is None:
        raise CriticalError(Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
                            f'Secret {ns}/{ref["name"]} not found')
    return secret


def _external_auth(c):
    secret = get_auth_secret(c)
    try:
        fields = Munch(
            type=util.secret_value(secret, 'type'),
            username=util.secret_value(secret, 'username'),
            password=util.secret_value(secret, 'password'),
            secret=util.secret_value(secret, 'secret') or
            util.secret_value(secret, 'sharedSecret'),
        )
    except (ValueError, UnicodeDecodeError) as e:
        raise CriticalError(Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
                            f'Secret {secret.key}: {e}') from e

    spec = c.gw_conf.spec
    auth_type = get_auth_type(fields.type or config.DEFAULT_AUTH_TYPE)
    if auth_type == 'static' and not (fields.username and fields.password) \
       and (spec.get('userName') or spec.get('password')):
        raise CriticalError(Reason.MIXED_INLINE_EXTERNAL_AUTH, secret.key)
    if auth_type == 'ephemeral' and not fields.secret \
       and spec.get('sharedSecret'):
        raise CriticalError(Reason.MIXED_INLINE_EXTERNAL_AUTH, secret.key)
    return auth_type, fields


def _inline_auth(c):
    spec = c.gw_conf.get('spec', {})
    auth_type = get_auth_type(spec.get('authType') or config.DEFAULT_AUTH_TYPE)
    return auth_type, Munch(username=spec.get('userName'),
                            password=spec.get('password'),
                            secret=spec.get('sharedSecret'))


def render_auth(c):
    """Render realm, type and credentials.

    A Secret referenced by authRef overrides all the inline settings of the
    GatewayConfig.  Any failure is critical.
    """
    spec = c.gw_conf.get('spec', {})
    if spec.get('authRef'):
        auth_type, fields = _external_auth(c)
    else:
        auth_type, fields = _inline_auth(c)

    if auth_type == 'static':
        if not fields.username or not fields.password:
            raise CriticalError(Reason.INVALID_USERNAME_PASSWORD)
        credentials = {'username': fields.username,
                       'password': fields.password}
    else:
        if not fields.secret:
            raise CriticalError(Reason.INVALID_SHARED_SECRET)
        credentials = {'secret': fields.secret}

    return Munch(realm=spec.get('realm') or config.DEFAULT_REALM,
                 type=auth_type, credentials=credentials)
