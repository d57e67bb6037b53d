# listener.py: Render the listener configuration of a gateway listener

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
from .errors import NonCriticalError, Reason

# listener protocol -> canonical protocol
PROTOCOLS = {
    'UDP': 'TURN-UDP',
    'TCP': 'TURN-TCP',
    'TLS': 'TURN-TLS',
    'DTLS': 'TURN-DTLS',
    'TURN-UDP': 'TURN-UDP',
    'TURN-TCP': 'TURN-TCP',
    'TURN-TLS': 'TURN-TLS',
    'TURN-DTLS': 'TURN-DTLS',
}

# canonical protocol -> Service port protocol
SERVICE_PROTOCOLS = {
    'TURN-UDP': 'UDP',
    'TURN-DTLS': 'UDP',
    'TURN-TCP': 'TCP',
    'TURN-TLS': 'TCP',
}


def get_protocol(proto):
    p = str(proto or '').upper()
    if p not in PROTOCOLS:
        raise NonCriticalError(Reason.INVALID_PROTOCOL, proto)
    return PROTOCOLS[p]


def get_service_protocol(proto):
    return SERVICE_PROTOCOLS[get_protocol(proto)]


def listener_name(gw, listener):
    return f'{gw.namespace}/{gw.name}/{listener.get("name")}'


def get_conflicted_listeners(gw):
    "Names of the listeners reusing the protocol/port of an earlier one."
    seen = {}
    conflicted = set()
    for l in gw.get('spec', {}).get('listeners') or []:
        try:
            proto = get_service_protocol(l.get('protocol'))
        except NonCriticalError:
            continue
        key = (proto, l.get('port'))
        if key in seen:
            conflicted.add(l.get('name'))
        else:
            seen[key] = l.get('name')
    return conflicted


def get_tls(c, gw, listener):
    "Base64 encoded (cert, key) of a TLS/DTLS listener, None if missing."
    for ref in (listener.get('tls') or {}).get('certificateRefs') or []:
        if ref.get('group', '') not in ('', 'v1') or \
           ref.get('kind', 'Secret') != 'Secret':
            c.log.info(f'ignoring TLS certificate reference of listener '
                       f'{listener.get("name")}: invalid group/kind')
            continue
        ns = ref.get('namespace') or gw.namespace
        secret = c.store.get('Secret', ns, ref.get('name'))
        if secret is None:
            c.log.info(f'TLS Secret {ns}/{ref.get("name")} not found')
            continue
        cert = util.secret_value(secret, 'tls.crt', encoded=True)
        key = util.secret_value(secret, 'tls.key', encoded=True)
        if cert and key:
            return cert, key
    return None


def render_listener(c, gw, listener, routes, addr):
    """Render LISTENER of GW.

    ROUTES are the names of the routes attached, ADDR the public address
    (an AddrPort or None).  Raises NonCriticalError for an invalid
    protocol.
    """
    proto = get_protocol(listener.get('protocol'))
    spec = c.gw_conf.get('spec', {}) if c.gw_conf else {}

    lc = Munch(
        name=listener_name(gw, listener),
        protocol=proto,
        addr=config.LISTENER_ADDR,
        port=listener.get('port'),
        publicAddr=addr.addr if addr else '',
        publicPort=addr.port if addr else 0,
        minRelayPort=spec.get('minPort') or config.DEFAULT_MIN_RELAY_PORT,
        maxRelayPort=spec.get('maxPort') or config.DEFAULT_MAX_RELAY_PORT,
        routes=sorted(routes),
    )

    if proto in ('TURN-TLS', 'TURN-DTLS'):
        tls = get_tls(c, gw, listener)
        if tls:
            lc.cert, lc.key = tls
        else:
            c.log.warning(f'no TLS certificate found for listener {lc.name}')
    return lc
