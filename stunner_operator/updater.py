# updater.py: Apply the updates of the renderer to the cluster

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

import kopf
from kubernetes import client

from . import util
from .util import cobj
from .util import logger

log = logger.getLogger(__name__)

# kinds we only ever touch the status of
STATUS_KINDS = ('GatewayClass', 'Gateway', 'UDPRoute')


class Updater(object):
    """Push an event.Update to Kubernetes.

    Status objects get their status subresource patched, owned objects are
    created or patched.  Objects vanishing meanwhile are skipped.  With a
    STORE, objects identical to the cached ones are not written again so
    that our own writes do not trigger new renders forever.
    """

    def __init__(self, api=cobj, store=None):
        self.api = api
        self.store = store

    def is_unchanged(self, obj):
        if self.store is None:
            return False
        old = self.store.get(obj.kind, obj.namespace, obj.name)
        if old is None:
            return False
        if obj.kind in STATUS_KINDS:
            return obj.get('status', {}) == old.get('status', {})
        new = {k: v for k, v in obj.items() if k not in ('apiVersion', 'kind')}
        return util.is_subset(new, old)

    def _do(self, update, fn, obj, *args):
        try:
            fn(*args)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                log.info(f'gen {update.generation}: {obj.kind} {obj.key} '
                         f'is gone, skipping')
                return 0
            raise kopf.TemporaryError(
                f'gen {update.generation}: {obj.kind} {obj.key}: '
                f'{e.status} {e.reason}', delay=5) from e
        return 1

    def apply(self, update):
        "Apply UPDATE, return the number of operations applied."
        n = 0
        for obj in update.upsert_queue:
            if self.is_unchanged(obj):
                log.debug(f'gen {update.generation}: {obj.kind} {obj.key} '
                          f'unchanged')
                continue
            if obj.kind in STATUS_KINDS:
                n += self._do(update, self.api.update_status, obj, obj)
            else:
                n += self._do(update, self.api.create_or_update, obj, obj)
        for obj in update.delete_queue:
            n += self._do(update, self.api.delete, obj, obj.kind, obj.name,
                          obj.namespace or None)
        log.info(f'gen {update.generation}: {n} operation(s) applied')
        return n
