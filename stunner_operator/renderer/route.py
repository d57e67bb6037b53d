# route.py: Attach routes to gateway listeners and set route status

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

import copy

from munch import Munch

from .. import config
from .. import util
from .errors import Reason
from .gateway import is_controlled_class
from .status import set_condition


def is_parent_ref_valid(p):
    return (p.get('group') or config.GATEWAY_GROUP) == config.GATEWAY_GROUP \
        and (p.get('kind') or 'Gateway') == 'Gateway'


def get_parent_gateway(c, route, p):
    "The gateway referred to by parentRef P if it is one of ours."
    if not is_parent_ref_valid(p):
        return None
    ns = p.get('namespace') or route.namespace
    gw = c.store.get('Gateway', ns, p.get('name'))
    if gw is None:
        return None
    class_name = gw.get('spec', {}).get('gatewayClassName')
    if not is_controlled_class(c.store, c.conf, class_name):
        return None
    return gw


def is_namespace_allowed(c, route, gw, listener):
    allowed = (listener.get('allowedRoutes') or {}).get('namespaces') or {}
    frm = allowed.get('from') or 'Same'
    if frm == 'All':
        return True
    if frm == 'Same':
        return route.namespace == gw.namespace
    if frm == 'Selector':
        ns = c.store.get('Namespace', '', route.namespace)
        if ns is None:
            return False
        try:
            return util.does_selector_match(allowed.get('selector') or {}, ns)
        except ValueError as e:
            c.log.info(f'listener {gw.key}/{listener.get("name")}: {e}')
            return False
    return False


def resolve_parent_ref(c, route, p, gw, listener):
    "Check if parentRef P of ROUTE attaches it to LISTENER of GW."
    if not is_parent_ref_valid(p):
        return False
    if (p.get('namespace') or route.namespace) != gw.namespace:
        return False
    if p.get('name') != gw.name:
        return False
    if not is_namespace_allowed(c, route, gw, listener):
        return False
    section = p.get('sectionName')
    if section and section != listener.get('name'):
        return False
    return True


def get_accepting_listeners(c, route, p, gw):
    return [l for l in gw.get('spec', {}).get('listeners') or []
            if resolve_parent_ref(c, route, p, gw, l)]


def is_route_attached(c, route, gw, listener):
    return any(resolve_parent_ref(c, route, p, gw, listener)
               for p in route.get('spec', {}).get('parentRefs') or [])


def get_routes_for_listener(c, gw, listener):
    return [ro for ro in c.store.get_all('UDPRoute')
            if is_route_attached(c, ro, gw, listener)]


def is_controlled_route(c, route):
    return any(get_parent_gateway(c, route, p) is not None
               for p in route.get('spec', {}).get('parentRefs') or [])


def is_route_in_scope(c, route):
    "Check if ROUTE is accepted by one of the gateways being rendered."
    for p in route.get('spec', {}).get('parentRefs') or []:
        for gw in c.gws:
            if get_accepting_listeners(c, route, p, gw):
                return True
    return False


def _resolved_refs(err):
    if err is None:
        return 'True', 'ResolvedRefs', 'All backend references resolved'
    if err.reason in (Reason.INVALID_BACKEND_GROUP,
                      Reason.INVALID_BACKEND_KIND):
        return 'False', 'InvalidKind', str(err)
    return 'False', 'BackendNotFound', str(err)


def _parent_key(p, route):
    return (p.get('namespace') or route.namespace, p.get('name'),
            p.get('sectionName'))


def set_route_status(c, route, backend_err):
    """Return a copy of ROUTE with the status recomputed.

    BACKEND_ERR is the last non-critical error of the backend resolution.
    """
    ro = copy.deepcopy(route)
    prev = {_parent_key(ps.get('parentRef') or {}, ro): ps.get('conditions')
            for ps in ro.get('status', {}).get('parents') or []}
    parents = []
    for p in ro.get('spec', {}).get('parentRefs') or []:
        base = [cond for cond in prev.get(_parent_key(p, ro)) or []
                if cond.get('type') in ('Accepted', 'ResolvedRefs')]
        gw = get_parent_gateway(c, ro, p)
        accepted = gw is not None and bool(get_accepting_listeners(c, ro, p,
                                                                   gw))
        if accepted:
            conds = set_condition(base, ro, 'Accepted', 'True', 'Accepted',
                                  'Route is accepted')
        else:
            conds = set_condition(base, ro, 'Accepted', 'False',
                                  'NotAllowedByListeners',
                                  'No listener accepts the route')
        conds = set_condition(conds, ro, 'ResolvedRefs',
                              *_resolved_refs(backend_err))
        parents.append(Munch(parentRef=copy.deepcopy(p),
                             controllerName=c.conf.controller_name,
                             conditions=conds))
    ro.status = Munch(parents=parents)
    return ro
