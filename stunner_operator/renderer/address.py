# address.py: Find the public address of gateway listeners

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

import collections

from .errors import NonCriticalError, Reason
from .listener import get_service_protocol

AddrPort = collections.namedtuple('AddrPort', ['type', 'addr', 'port'])

# the higher the better
SERVICE_TYPE_PREFERENCE = {
    'ClusterIP': 0,
    'NodePort': 1,
    'ExternalName': 2,
    'LoadBalancer': 3,
}


def _service_type(svc):
    return svc.get('spec', {}).get('type') or 'ClusterIP'


def get_owned_service(c, gw):
    "The Service owned by GW, preferring LoadBalancer Services."
    best = None
    for svc in c.store.get_all('Service'):
        if svc.namespace != gw.namespace or not svc.is_owned_by(gw):
            continue
        if best is None or \
           SERVICE_TYPE_PREFERENCE.get(_service_type(svc), 0) > \
           SERVICE_TYPE_PREFERENCE.get(_service_type(best), 0):
            best = svc
    return best


def get_service_port(svc, listener):
    try:
        proto = get_service_protocol(listener.get('protocol'))
    except NonCriticalError:
        return None
    for sp in svc.get('spec', {}).get('ports') or []:
        if sp.get('port') == listener.get('port') and \
           (sp.get('protocol') or 'TCP').upper() == proto:
            return sp
    return None


def _ingress_addr(ingress, port):
    if ingress.get('ip'):
        return AddrPort('IPAddress', ingress['ip'], port)
    if ingress.get('hostname'):
        return AddrPort('Hostname', ingress['hostname'], port)
    return None


def get_load_balancer_addr(svc, sp):
    lb = svc.get('status', {}).get('loadBalancer') or {}
    ingresses = lb.get('ingress') or []
    proto = (sp.get('protocol') or 'TCP').upper()
    for ingress in ingresses:
        ports = ingress.get('ports')
        if ports and not any(p.get('port') == sp.get('port') and
                             (p.get('protocol') or 'TCP').upper() == proto
                             for p in ports):
            continue
        ap = _ingress_addr(ingress, sp.get('port'))
        if ap:
            return ap
    if ingresses:
        return _ingress_addr(ingresses[0], sp.get('port'))
    return None


def get_node_addr(c, sp):
    "First external address of a node with the NodePort of SP."
    node_port = sp.get('nodePort')
    if not node_port:
        return None
    for node in c.store.get_all('Node'):
        addrs = node.get('status', {}).get('addresses') or []
        for a in addrs:
            if a.get('type') == 'ExternalIP' and a.get('address'):
                return AddrPort('IPAddress', a['address'], node_port)
        for a in addrs:
            if a.get('type') == 'ExternalDNS' and a.get('address'):
                return AddrPort('Hostname', a['address'], node_port)
    return None


def get_listener_addr(c, svc, listener):
    sp = get_service_port(svc, listener)
    if sp is None:
        return None
    if _service_type(svc) == 'LoadBalancer':
        ap = get_load_balancer_addr(svc, sp)
        if ap:
            return ap
    return get_node_addr(c, sp)


def get_public_addrs(c, gw):
    """Public address of each listener of GW.

    Returns a list with an AddrPort, or None if not found, per listener and
    the last non-critical error, if any.  Only the first address hint of the
    gateway is considered.
    """
    listeners = gw.get('spec', {}).get('listeners') or []
    hints = gw.get('spec', {}).get('addresses') or []
    if hints and hints[0].get('value'):
        t = hints[0].get('type') or 'IPAddress'
        return [AddrPort(t, hints[0]['value'], l.get('port'))
                for l in listeners], None

    svc = get_owned_service(c, gw)
    if svc is None:
        return [None] * len(listeners), \
            NonCriticalError(Reason.PUBLIC_ADDRESS_NOT_FOUND, gw.key)

    ret, err = [], None
    for l in listeners:
        ap = get_listener_addr(c, svc, l)
        if ap is None:
            err = NonCriticalError(Reason.PUBLIC_LISTENER_ADDRESS_NOT_FOUND,
                                   f'{gw.key}/{l.get("name")}')
            c.log.info(str(err))
        ret.append(ap)
    return ret, err
