# controller.py: A kopf operator for the STUNner gateway

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

# kopf run --all-namespaces -m stunner_operator.controller --verbose

import os
import queue
import threading
import time

import kopf
from munch import Munch

from . import config
from . import util
from .renderer import Renderer
from .store import Store
from .updater import Updater
from .util import crd
from .util import logger

log = logger.getLogger(__name__)

# State of the operator
state = Munch(store=Store(), loop=None)


class RenderLoop(object):
    """Serialize the render requests.

    Requests are numbered by a growing generation.  A single dispatcher
    thread renders and applies them in order, requests piling up while a
    render is running are coalesced into one.
    """

    def __init__(self, renderer, updater, throttle=0, retry_delay=5):
        self.renderer = renderer
        self.updater = updater
        self.throttle = throttle
        self.retry_delay = retry_delay
        self.generation = 0
        self.lock = threading.Lock()
        self.que = queue.Queue()
        self.thread = None

    def request(self, gc=None):
        "Ask for a render of GC, all classes if GC is None."
        with self.lock:
            self.generation += 1
            gen = self.generation
        self.que.put((gen, gc))
        return gen

    def _collect(self, item):
        "Drain the queue: the latest generation and the classes to render."
        items = [item]
        while True:
            try:
                items.append(self.que.get_nowait())
            except queue.Empty:
                break
        stop = None in items
        items = [i for i in items if i is not None]
        if not items:
            return None, None, stop
        gen = max(i[0] for i in items)
        if any(i[1] is None for i in items):
            return gen, [None], stop
        classes = {i[1].key: i[1] for i in items}
        return gen, [classes[k] for k in sorted(classes)], stop

    def retry(self, gc, delay):
        t = threading.Timer(delay, self.request, args=(gc,))
        t.daemon = True
        t.start()

    def process(self, gen, classes):
        for gc in classes:
            try:
                self.updater.apply(self.renderer.render(gen, gc))
            except kopf.TemporaryError as e:
                log.warning(f'gen {gen}: {e}, retrying in {e.delay}s')
                self.retry(gc, e.delay)
            except Exception:
                log.exception(f'gen {gen}: render failed, retrying in '
                              f'{self.retry_delay}s')
                self.retry(gc, self.retry_delay)

    def _dispatcher(self):
        while True:
            item = self.que.get()
            if self.throttle:
                time.sleep(self.throttle)
            gen, classes, stop = self._collect(item)
            if gen is not None:
                self.process(gen, classes)
            if stop:
                break

    def start(self):
        self.thread = threading.Thread(target=self._dispatcher,
                                       name='render-loop', daemon=True)
        self.thread.start()
        return self.thread

    def stop(self, timeout=None):
        self.que.put(None)
        if self.thread:
            self.thread.join(timeout)


## ######################################################################
# Handlers

@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, logger, **kw):
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix='operator.stunner.l7mp.io')
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix='operator.stunner.l7mp.io',
    )
    try:
        conf = config.load()
    except ValueError as e:
        raise kopf.PermanentError(f'Invalid configuration: {e}') from e

    util.load_config()
    crd.check_all(install=config.parse_bool(
        os.getenv('STUNNER_INSTALL_CRDS', 'true')))

    renderer = Renderer(state.store, conf)
    updater = Updater(store=state.store)
    state.loop = RenderLoop(renderer, updater, conf.throttle_timeout)
    state.loop.start()
    logger.info(f'started, controller: {conf.controller_name}, '
                f'dataplane mode: {conf.dataplane_mode}')


@kopf.on.cleanup()
def cleanup_fn(logger, **kw):
    if state.loop:
        state.loop.stop(timeout=10)
    logger.info('stopped')


def handle_event(event_type, body):
    "Sync BODY into the store and ask for a render."
    obj = util.resource(body)
    kind = obj.get('kind')
    if event_type == 'DELETED':
        state.store.remove(kind, obj.namespace, obj.name)
    else:
        state.store.upsert(obj)

    gc = obj if kind == 'GatewayClass' and event_type != 'DELETED' else None
    if state.loop is not None:
        return state.loop.request(gc)
    return None


@kopf.on.event('gateway.networking.k8s.io', 'v1', 'gatewayclasses')
@kopf.on.event('gateway.networking.k8s.io', 'v1', 'gateways')
@kopf.on.event('stunner.l7mp.io', 'v1', 'gatewayconfigs')
@kopf.on.event('stunner.l7mp.io', 'v1', 'udproutes')
@kopf.on.event('stunner.l7mp.io', 'v1', 'staticservices')
@kopf.on.event('stunner.l7mp.io', 'v1', 'dataplanes')
@kopf.on.event('', 'v1', 'services')
@kopf.on.event('', 'v1', 'endpoints')
@kopf.on.event('discovery.k8s.io', 'v1', 'endpointslices')
@kopf.on.event('', 'v1', 'nodes')
@kopf.on.event('', 'v1', 'namespaces')
@kopf.on.event('', 'v1', 'secrets')
@kopf.on.event('', 'v1', 'configmaps',
               labels={config.OWNED_BY_LABEL: config.OWNED_BY_VALUE})
@kopf.on.event('apps', 'v1', 'deployments',
               labels={config.OWNED_BY_LABEL: config.OWNED_BY_VALUE})
def event_fn(event, body, logger, **kw):
    event_type = event.get('type') or 'ADDED'
    logger.debug(f'{event_type} {util.get_fqn(body)}')
    handle_event(event_type, dict(body))
