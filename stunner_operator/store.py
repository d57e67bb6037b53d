# store.py: Point-in-time cache of the watched Kubernetes objects

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

import threading
from collections import defaultdict

from .util import logger
from . import util

log = logger.getLogger(__name__)

# Kinds the renderer reads
KINDS = ('GatewayClass', 'GatewayConfig', 'Gateway', 'UDPRoute', 'Service',
         'Endpoints', 'EndpointSlice', 'Node', 'Namespace', 'Secret',
         'StaticService', 'Dataplane', 'ConfigMap', 'Deployment')


class Store(object):
    """Thread-safe cache of objects keyed by kind and 'namespace/name'.

    Objects are kept as util.Resource instances.  Readers get the object
    stored at the time of the call and must tolerate objects disappearing
    between two calls.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.objects = defaultdict(dict)

    def upsert(self, obj, kind=None):
        obj = util.resource(obj)
        kind = kind or obj.get('kind')
        if not kind:
            raise ValueError(f'Object without a kind: {obj.key}')
        with self.lock:
            self.objects[kind][obj.key] = obj
        return obj

    def remove(self, kind, namespace, name):
        with self.lock:
            return self.objects[kind].pop(util.make_key(namespace, name),
                                          None)

    def get(self, kind, namespace, name):
        with self.lock:
            return self.objects[kind].get(util.make_key(namespace, name))

    def get_all(self, kind):
        "All objects of KIND, sorted by key."
        with self.lock:
            return [self.objects[kind][k]
                    for k in sorted(self.objects[kind])]

    def len(self, kind):
        with self.lock:
            return len(self.objects[kind])

    def flush(self, kind=None):
        with self.lock:
            if kind:
                self.objects[kind].clear()
            else:
                self.objects.clear()

    def __str__(self):
        with self.lock:
            counts = ', '.join(f'{k}: {len(v)}'
                               for k, v in sorted(self.objects.items()) if v)
        return f'Store({counts})'
