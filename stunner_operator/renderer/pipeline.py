# pipeline.py: Render the stunnerd configuration and the owned objects

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
import json

from munch import Munch

from .. import config
from ..event import Update
from ..util import crd
from ..util import logger
from . import status
from .address import get_public_addrs
from .admin import render_admin
from .auth import render_auth
from .cluster import render_cluster
from .context import RenderContext
from .errors import CriticalError, NonCriticalError, Reason
from .gateway import (get_dataplane, get_gateway_classes, get_gateway_config,
                      get_gateways_for_class, is_managed_dataplane_disabled,
                      related_gateway_key)
from .listener import get_conflicted_listeners, render_listener
from .route import (get_routes_for_listener, is_controlled_route,
                    is_route_in_scope, set_route_status)
from .workload import (find_config_maps, render_config_map,
                       render_deployment, render_service)


def serialize(conf):
    "Serialize CONF, the same config always gives the same string."
    return json.dumps(conf, sort_keys=True, separators=(',', ':'))


class Renderer(object):
    """Turn the objects in STORE into an Update.

    In legacy mode a single stunnerd config is rendered per gateway class
    for all its gateways, in managed mode each gateway gets its own config,
    Deployment and Service.
    """

    def __init__(self, store, conf=None, log=None):
        self.store = store
        self.conf = conf if conf is not None else config.load()
        self.log = log or logger.getLogger(__name__)

    @property
    def managed(self):
        return config.is_managed(self.conf)

    def new_context(self, gc, generation, gws=None):
        return RenderContext(self.store, self.conf, gc, generation, gws,
                             self.log)

    def render(self, generation, gc=None):
        """Render all gateway classes, or only GC in legacy mode.

        Returns the Update holding the objects to upsert and delete.
        """
        update = Update(generation)
        classes = get_gateway_classes(self.store, self.conf)
        if gc is not None and not self.managed:
            classes = [cls for cls in classes if cls.key == gc.key]
            if not classes:
                self.log.info(f'[gen {generation}] GatewayClass {gc.key} '
                              f'is not managed by us, nothing to render')

        for cls in classes:
            if self.managed:
                c = self.render_managed(cls, generation)
            else:
                c = self.render_legacy(cls, generation)
            update.merge(c.update)

        self.log.info(f'[gen {generation}] rendering done: {update}')
        return update

    def render_legacy(self, gc, generation):
        c = self.new_context(gc, generation,
                             get_gateways_for_class(self.store, gc))
        c.log.info(f'rendering GatewayClass {gc.key} '
                   f'({len(c.gws)} gateway(s))')
        try:
            self.render_for_gateways(c)
        except CriticalError as e:
            self.invalidate(c, e)
        return c

    def render_managed(self, gc, generation):
        cc = self.new_context(gc, generation)
        gws = get_gateways_for_class(self.store, gc)
        if not gws:
            self.render_class_status(cc)

        for gw in gws:
            c = self.new_context(gc, generation, [gw])
            c.log.info(f'rendering Gateway {gw.key} '
                       f'(GatewayClass {gc.key})')
            try:
                self.render_for_gateways(c)
            except CriticalError as e:
                self.invalidate(c, e)
            cc.merge(c)
        return cc

    def render_class_status(self, c):
        gc = copy.deepcopy(c.gc)
        try:
            c.gw_conf = get_gateway_config(c)
            status.set_gateway_class_accepted(gc)
        except CriticalError as e:
            status.set_gateway_class_accepted(gc, e)
        c.update.upsert(gc)

    ## ##################################################################

    def render_for_gateways(self, c):
        "Render the unit of work C, raises CriticalError on failure."
        c.gw_conf = get_gateway_config(c)
        if self.managed:
            c.dp = get_dataplane(c)

        conf = Munch(
            version=config.CONFIG_VERSION,
            admin=render_admin(c),
            auth=render_auth(c),
            listeners=[],
            clusters=[],
        )

        for gw in c.gws:
            conf.listeners.extend(self.render_gateway(c, gw))
        conf.clusters = self.render_routes(c)

        gc = copy.deepcopy(c.gc)
        status.set_gateway_class_accepted(gc)
        c.update.upsert(gc)

        name, namespace, owner, gw = self.get_target(c)
        c.update.upsert(render_config_map(name, namespace, serialize(conf),
                                          owner, related_gateway_key(c), gw))

        if self.managed:
            gw = c.gws[0]
            svc = render_service(c, gw)
            if svc is not None:
                c.update.upsert(svc)
            if is_managed_dataplane_disabled(gw):
                c.log.info(f'managed dataplane disabled for Gateway {gw.key}')
            else:
                c.update.upsert(render_deployment(c, gw))

    def get_target(self, c):
        "Name, namespace, owner and gateway of the ConfigMap of C."
        if self.managed:
            gw = c.gws[0]
            return gw.name, gw.namespace, gw, gw
        name = c.gw_conf.get('spec', {}).get('stunnerConfig') or \
            config.DEFAULT_CONFIGMAP_NAME
        return name, c.gw_conf.namespace, c.gw_conf, None

    def render_gateway(self, c, gw):
        "Render the listeners of GW and queue its status."
        gw = copy.deepcopy(gw)
        status.init_gateway_status(gw)

        addrs, addr_err = get_public_addrs(c, gw)
        if addr_err:
            c.log.info(f'Gateway {gw.key}: {addr_err}')
        conflicted = get_conflicted_listeners(gw)

        ret, all_ok, statuses = [], True, []
        listeners = gw.get('spec', {}).get('listeners') or []
        for l, addr in zip(listeners, addrs):
            if l.get('name') in conflicted:
                err = NonCriticalError(Reason.PORT_UNAVAILABLE,
                                       f'{l.get("protocol")}:{l.get("port")}')
                c.log.info(f'Gateway {gw.key} listener {l.get("name")}: '
                           f'{err}')
                statuses.append(status.listener_status(gw, l, err,
                                                       conflicted=True))
                all_ok = False
                continue

            routes = get_routes_for_listener(c, gw, l)
            try:
                lc = render_listener(c, gw, l, [r.key for r in routes], addr)
            except NonCriticalError as e:
                c.log.info(f'Gateway {gw.key} listener {l.get("name")}: {e}')
                statuses.append(status.listener_status(gw, l, e))
                all_ok = False
                continue

            ret.append(lc)
            statuses.append(status.listener_status(
                gw, l, attached_routes=len(routes)))

        gw.status.listeners = statuses
        addr = next((a for a in addrs if a is not None), None)
        status.set_gateway_programmed(gw, addr, all_ok,
                                      all(a is not None for a in addrs))
        c.update.upsert(gw)
        return ret

    def render_routes(self, c):
        """Set the status of our routes and return the clusters of the
        routes attached to the gateways of C."""
        clusters = []
        for ro in self.store.get_all('UDPRoute'):
            if not is_controlled_route(c, ro):
                continue
            cluster, err = render_cluster(c, ro)
            if cluster is not None and is_route_in_scope(c, ro):
                clusters.append(cluster)
            c.update.upsert(set_route_status(c, ro, err))
        return clusters

    ## ##################################################################

    def invalidate(self, c, err):
        """Invalidate the config of C after the critical error ERR.

        Overwrites the previous ConfigMap(s) with an empty config and marks
        the gateways as not programmed.
        """
        c.log.warning(f'invalidating {c}: {err}')
        c.update = Update(c.generation)

        gc = copy.deepcopy(c.gc)
        status.set_gateway_class_accepted(gc, err)
        c.update.upsert(gc)

        for gw in c.gws:
            gw = copy.deepcopy(gw)
            status.init_gateway_status(gw)
            gw.status.listeners = [
                status.listener_status(
                    gw, l,
                    attached_routes=len(get_routes_for_listener(c, gw, l)))
                for l in gw.get('spec', {}).get('listeners') or []]
            status.set_gateway_invalidated(gw, err)
            c.update.upsert(gw)

        self.render_routes(c)

        if c.gw_conf is None:
            try:
                c.gw_conf = get_gateway_config(c)
            except CriticalError:
                c.log.info('GatewayConfig not found, looking up the previous '
                           'ConfigMaps, config may be stale')

        related = related_gateway_key(c) if c.gws or not self.managed \
            else None
        targets = {}
        if self.managed and c.gws:
            gw = c.gws[0]
            targets[gw.key] = render_config_map(gw.name, gw.namespace, '',
                                                gw, related, gw)
        elif not self.managed and c.gw_conf is not None:
            name, namespace, owner, _ = self.get_target(c)
            targets[f'{namespace}/{name}'] = render_config_map(
                name, namespace, '', owner, related)
        if related is not None:
            for cm in find_config_maps(self.store, related):
                if cm.key in targets:
                    continue
                new = render_config_map(cm.name, cm.namespace, '', None,
                                        related)
                new.metadata.labels = dict(cm.labels)
                new.metadata.ownerReferences = copy.deepcopy(
                    cm.get('metadata', {}).get('ownerReferences') or [])
                targets[cm.key] = new
        for cm in targets.values():
            c.update.upsert(cm)

        if self.managed and err.reason == Reason.INVALID_DATAPLANE:
            for gw in c.gws:
                c.update.delete(Munch.fromDict({
                    'apiVersion': crd.api_version('Deployment'),
                    'kind': 'Deployment',
                    'metadata': {'name': gw.name, 'namespace': gw.namespace},
                }))
