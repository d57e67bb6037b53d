# event.py: Update events handed from the renderer to the updater

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

from collections import defaultdict

from . import util

# Kinds the renderer may write
KINDS = ('GatewayClass', 'Gateway', 'UDPRoute', 'ConfigMap', 'Service',
         'Deployment')


class UpdateQueue(object):
    "Objects per kind, keyed by 'namespace/name'; the last write wins."

    def __init__(self):
        self.objects = defaultdict(dict)

    def add(self, obj):
        obj = util.resource(obj)
        if obj.get('kind') not in KINDS:
            raise ValueError(f'Unsupported kind in update: {obj.get("kind")}')
        self.objects[obj.kind][obj.key] = obj

    def discard(self, kind, key):
        self.objects[kind].pop(key, None)

    def get(self, kind):
        return [self.objects[kind][k] for k in sorted(self.objects[kind])]

    def keys(self, kind):
        return sorted(self.objects[kind])

    def __len__(self):
        return sum(len(v) for v in self.objects.values())

    def __iter__(self):
        for kind in KINDS:
            yield from self.get(kind)


class Update(object):
    """A batch of upserts and deletes produced by one render.

    Upserting an object cancels a pending delete of the same object and
    the other way round.
    """

    def __init__(self, generation=0):
        self.generation = generation
        self.upsert_queue = UpdateQueue()
        self.delete_queue = UpdateQueue()

    def upsert(self, obj):
        obj = util.resource(obj)
        self.delete_queue.discard(obj.get('kind'), obj.key)
        self.upsert_queue.add(obj)

    def delete(self, obj):
        obj = util.resource(obj)
        self.upsert_queue.discard(obj.get('kind'), obj.key)
        self.delete_queue.add(obj)

    def merge(self, other):
        "Merge OTHER into this update, entries of OTHER win."
        for obj in other.upsert_queue:
            self.upsert(obj)
        for obj in other.delete_queue:
            self.delete(obj)
        self.generation = max(self.generation, other.generation)
        return self

    def is_empty(self):
        return len(self.upsert_queue) == 0 and len(self.delete_queue) == 0

    def __str__(self):
        def fmt(q):
            return ', '.join(f'{k}:{len(q.keys(k))}' for k in KINDS
                             if q.keys(k))
        return (f'Update(gen={self.generation}, '
                f'upsert=[{fmt(self.upsert_queue)}], '
                f'delete=[{fmt(self.delete_queue)}])')
