"""
Unit Tests for the object store and the update queue.
"""

import threading

import pytest

from stunner_operator.event import Update, UpdateQueue
from stunner_operator.store import Store
from stunner_operator.util import Resource


def svc(name, ns='default', **kw):
    obj = {'apiVersion': 'v1', 'kind': 'Service',
           'metadata': {'name': name, 'namespace': ns}}
    obj.update(kw)
    return obj


# =============================================================================
# Store Tests
# =============================================================================


class TestStore:
    """Tests for Store."""

    def test_upsert_get(self):
        """Objects are retrievable by kind, namespace and name."""
        s = Store()
        s.upsert(svc('a'))
        obj = s.get('Service', 'default', 'a')
        assert isinstance(obj, Resource)
        assert obj.key == 'default/a'
        assert s.get('Service', 'other', 'a') is None

    def test_cluster_scoped_key(self):
        """Cluster scoped objects are keyed by name only."""
        s = Store()
        s.upsert({'kind': 'Node', 'metadata': {'name': 'n1'}})
        assert s.get('Node', '', 'n1').key == 'n1'

    def test_upsert_replaces(self):
        """The last upsert wins."""
        s = Store()
        s.upsert(svc('a', spec={'type': 'ClusterIP'}))
        s.upsert(svc('a', spec={'type': 'NodePort'}))
        assert s.len('Service') == 1
        assert s.get('Service', 'default', 'a').spec.type == 'NodePort'

    def test_get_all_sorted(self):
        """get_all returns objects sorted by key."""
        s = Store()
        for name in ('c', 'a', 'b'):
            s.upsert(svc(name))
        assert [o.name for o in s.get_all('Service')] == ['a', 'b', 'c']
        assert s.get_all('Gateway') == []

    def test_remove_and_flush(self):
        """Removing a missing object is not an error."""
        s = Store()
        s.upsert(svc('a'))
        s.upsert(svc('b'))
        assert s.remove('Service', 'default', 'a') is not None
        assert s.remove('Service', 'default', 'a') is None
        assert s.len('Service') == 1
        s.flush()
        assert s.len('Service') == 0

    def test_object_without_kind(self):
        """Objects must have a kind."""
        with pytest.raises(ValueError):
            Store().upsert({'metadata': {'name': 'x'}})

    def test_concurrent_upserts(self):
        """Concurrent writers do not lose objects."""
        s = Store()

        def writer(prefix):
            for i in range(100):
                s.upsert(svc(f'{prefix}-{i}'))

        threads = [threading.Thread(target=writer, args=(p,))
                   for p in ('x', 'y', 'z')]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert s.len('Service') == 300


# =============================================================================
# Update Tests
# =============================================================================


class TestUpdate:
    """Tests for UpdateQueue and Update."""

    def test_unsupported_kind(self):
        """Only kinds written by the renderer can be queued."""
        with pytest.raises(ValueError):
            UpdateQueue().add({'kind': 'Node', 'metadata': {'name': 'n'}})

    def test_last_write_wins(self):
        """Upserting the same key twice keeps the last one."""
        u = Update(1)
        u.upsert(svc('a', spec={'type': 'ClusterIP'}))
        u.upsert(svc('a', spec={'type': 'NodePort'}))
        objs = u.upsert_queue.get('Service')
        assert len(objs) == 1
        assert objs[0].spec.type == 'NodePort'

    def test_upsert_cancels_delete(self):
        """An upsert cancels a pending delete and the other way round."""
        u = Update(1)
        u.delete(svc('a'))
        u.upsert(svc('a'))
        assert len(u.delete_queue) == 0
        assert len(u.upsert_queue) == 1
        u.delete(svc('a'))
        assert len(u.upsert_queue) == 0
        assert len(u.delete_queue) == 1

    def test_merge(self):
        """Entries of the merged update win, the generation is the max."""
        u1, u2 = Update(1), Update(2)
        u1.upsert(svc('a', spec={'type': 'ClusterIP'}))
        u1.upsert(svc('b'))
        u2.upsert(svc('a', spec={'type': 'LoadBalancer'}))
        u2.delete(svc('b'))
        u1.merge(u2)
        assert u1.generation == 2
        assert [o.spec.type for o in u1.upsert_queue.get('Service')] == \
            ['LoadBalancer']
        assert u1.delete_queue.keys('Service') == ['default/b']

    def test_is_empty(self):
        u = Update(0)
        assert u.is_empty()
        u.upsert(svc('a'))
        assert not u.is_empty()
