# gateway.py: Lookup of gateway classes, configs, dataplanes and gateways

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

from .. import config
from ..util import logger
from .errors import CriticalError, Reason

log = logger.getLogger(__name__)


def validate_gateway_class(gc, conf):
    "Return None if GC is ours and well formed, the problem otherwise."
    spec = gc.get('spec', {})
    if spec.get('controllerName') != conf.controller_name:
        return f'controller name mismatch: {spec.get("controllerName")}'
    ref = spec.get('parametersRef')
    if not ref:
        return 'missing parametersRef'
    if ref.get('group') != config.GROUP:
        return f'invalid parametersRef group: {ref.get("group")}'
    if ref.get('kind') != 'GatewayConfig':
        return f'invalid parametersRef kind: {ref.get("kind")}'
    if not ref.get('name'):
        return 'empty parametersRef name'
    if not ref.get('namespace'):
        return 'empty parametersRef namespace'
    return None


def get_gateway_classes(store, conf):
    "The gateway classes managed by us with a resolvable parametersRef."
    ret = []
    for gc in store.get_all('GatewayClass'):
        problem = validate_gateway_class(gc, conf)
        if problem:
            log.debug(f'ignoring GatewayClass {gc.key}: {problem}')
            continue
        ret.append(gc)
    return ret


def is_controlled_class(store, conf, class_name):
    gc = store.get('GatewayClass', '', class_name)
    return gc is not None and validate_gateway_class(gc, conf) is None


def get_gateway_config(c):
    ref = c.gc.spec.parametersRef
    gw_conf = c.store.get('GatewayConfig', ref.namespace, ref.name)
    if gw_conf is None:
        raise CriticalError(Reason.CONFIG_NOT_FOUND,
                            f'{ref.namespace}/{ref.name}')
    return gw_conf


def get_dataplane(c):
    name = c.gw_conf.get('spec', {}).get('dataplane') or \
        config.DEFAULT_DATAPLANE_NAME
    dp = c.store.get('Dataplane', '', name)
    if dp is None:
        raise CriticalError(Reason.INVALID_DATAPLANE, name)
    return dp


def get_gateways_for_class(store, gc):
    return [gw for gw in store.get_all('Gateway')
            if gw.get('spec', {}).get('gatewayClassName') == gc.name]


def is_managed_dataplane_disabled(gw):
    v = gw.annotations.get(config.DISABLE_MANAGED_DATAPLANE_ANNOTATION, '')
    return v.lower() == 'true'


def related_gateway_key(c, gw=None):
    "Value of the related-gateway annotation on the rendered objects."
    if config.is_managed(c.conf):
        return (gw or c.gws[0]).key
    return c.gc.key
