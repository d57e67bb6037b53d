# cluster.py: Resolve the backends of a route into a cluster

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
from .errors import NonCriticalError, Reason

STATIC = 'STATIC'
STRICT_DNS = 'STRICT_DNS'

SERVICE_NAME_LABEL = 'kubernetes.io/service-name'


def _dedup(items):
    seen = set()
    ret = []
    for i in items:
        if i not in seen:
            seen.add(i)
            ret.append(i)
    return ret


## ######################################################################
# Endpoint discovery

def get_endpoints(c, namespace, name):
    "Addresses from the Endpoints object of Service NAMESPACE/NAME."
    ep = c.store.get('Endpoints', namespace, name)
    if ep is None:
        raise NonCriticalError(Reason.ENDPOINT_NOT_FOUND,
                               f'Endpoints {namespace}/{name}')
    ret = []
    for subset in ep.get('subsets') or []:
        for addr in (subset.get('addresses') or []) + \
                (subset.get('notReadyAddresses') or []):
            if addr.get('ip'):
                ret.append(addr['ip'])
    return ret


def get_endpoint_slice_addrs(c, namespace, name):
    "Addresses from the EndpointSlices of Service NAMESPACE/NAME."
    slices = [s for s in c.store.get_all('EndpointSlice')
              if s.namespace == namespace and
              s.labels.get(SERVICE_NAME_LABEL) == name]
    if not slices:
        raise NonCriticalError(Reason.ENDPOINT_NOT_FOUND,
                               f'EndpointSlices for {namespace}/{name}')
    ret = []
    for s in slices:
        for ep in s.get('endpoints') or []:
            conds = ep.get('conditions') or {}
            if conds.get('terminating') and not conds.get('serving'):
                continue
            ret.extend(ep.get('addresses') or [])
    return ret


def get_cluster_ips(c, namespace, name):
    svc = c.store.get('Service', namespace, name)
    if svc is None:
        raise NonCriticalError(Reason.BACKEND_NOT_FOUND,
                               f'Service {namespace}/{name}')
    spec = svc.get('spec', {})
    ips = [ip for ip in (spec.get('clusterIPs') or [spec.get('clusterIP')])
           if ip and ip != 'None']
    if not ips:
        raise NonCriticalError(Reason.CLUSTER_IP_NOT_FOUND,
                               f'Service {namespace}/{name}')
    return ips


## ######################################################################
# Port ranges

def get_port_range(c, ref):
    "The (port, endPort) of backend REF, or None for the default range."
    port = ref.get('port')
    if port is None:
        return None
    if not isinstance(port, int) or port < 1 or port > 65535:
        c.log.info(str(NonCriticalError(Reason.INVALID_PORT_RANGE,
                                        f'port {port}')))
        return None
    end_port = ref.get('endPort')
    if end_port is None:
        end_port = port
    elif not isinstance(end_port, int) or end_port < port or \
            end_port > 65535:
        c.log.info(str(NonCriticalError(Reason.INVALID_PORT_RANGE,
                                        f'endPort {end_port}')))
        end_port = port
    if port == 1 and end_port == 65535:
        return None
    return port, end_port


def add_port_range(endpoints, port_range):
    if port_range is None:
        return endpoints
    return [f'{ep}:<{port_range[0]}-{port_range[1]}>' for ep in endpoints]


## ######################################################################
# Backends

def resolve_service(c, namespace, name):
    """Endpoints of a Service backend.

    Returns (cluster type, endpoints, error), the error is not None if a
    lookup failed but the backend is still usable.  Raises
    NonCriticalError(BackendNotFound) if no lookup succeeded.
    """
    if not c.conf.enable_endpoint_discovery:
        return STRICT_DNS, [f'{name}.{namespace}.svc.cluster.local'], None

    eps, err, found = [], None, False
    try:
        if c.conf.endpoint_slice_available:
            eps.extend(get_endpoint_slice_addrs(c, namespace, name))
        else:
            eps.extend(get_endpoints(c, namespace, name))
        found = True
    except NonCriticalError as e:
        err = e

    if c.conf.enable_relay_to_cluster_ip:
        try:
            eps.extend(get_cluster_ips(c, namespace, name))
            found = True
        except NonCriticalError as e:
            err = e

    if not found:
        raise NonCriticalError(Reason.BACKEND_NOT_FOUND,
                               f'Service {namespace}/{name}: {err}')
    return STATIC, _dedup(eps), err


def resolve_static_service(c, namespace, name):
    ssvc = c.store.get('StaticService', namespace, name)
    if ssvc is None:
        raise NonCriticalError(Reason.BACKEND_NOT_FOUND,
                               f'StaticService {namespace}/{name}')
    return STATIC, list(ssvc.get('spec', {}).get('prefixes') or []), None


def render_cluster(c, route):
    """Resolve the backends of ROUTE into a cluster.

    Returns the cluster and the last non-critical error seen, or None and
    BackendNotFound if no backend could be resolved.  Only the first rule
    of the route is used.
    """
    rules = route.get('spec', {}).get('rules') or []
    if len(rules) > 1:
        c.log.info(f'route {route.key}: only the first of {len(rules)} '
                   f'rules is used')
    refs = (rules[0].get('backendRefs') or []) if rules else []

    ctype, eps, resolved, err = None, [], 0, None
    for ref in refs:
        group = ref.get('group') or ''
        kind = ref.get('kind') or 'Service'
        name = ref.get('name')
        ns = ref.get('namespace') or route.namespace

        if group and group != config.GROUP:
            err = NonCriticalError(Reason.INVALID_BACKEND_GROUP,
                                   f'{group} (backend {ns}/{name})')
            c.log.info(f'route {route.key}: {err}')
            continue
        if kind not in ('Service', 'StaticService'):
            err = NonCriticalError(Reason.INVALID_BACKEND_KIND,
                                   f'{kind} (backend {ns}/{name})')
            c.log.info(f'route {route.key}: {err}')
            continue

        try:
            if kind == 'StaticService':
                btype, beps, berr = resolve_static_service(c, ns, name)
            else:
                btype, beps, berr = resolve_service(c, ns, name)
        except NonCriticalError as e:
            err = e
            c.log.info(f'route {route.key}: {err}')
            continue
        if berr is not None:
            err = berr
            c.log.debug(f'route {route.key}: {berr}')

        if ctype is None:
            ctype = btype
        elif ctype != btype:
            err = NonCriticalError(Reason.INCONSISTENT_CLUSTER_TYPE,
                                   f'{ctype} vs {btype} (backend {ns}/{name})')
            c.log.info(f'route {route.key}: {err}')
            return None, err

        if btype == STATIC:
            beps = add_port_range(beps, get_port_range(c, ref))
        eps.extend(beps)
        resolved += 1

    if resolved == 0:
        detail = f'route {route.key}: ' + (str(err) if err else 'no backends')
        return None, NonCriticalError(Reason.BACKEND_NOT_FOUND, detail)

    return Munch(name=route.key, type=ctype, endpoints=_dedup(eps)), err
