"""
Unit Tests for the Kubernetes object helpers.
"""

import base64

import pytest

from stunner_operator import util
from stunner_operator.util import crd


# =============================================================================
# Resource Tests
# =============================================================================


class TestResource:
    """Tests for util.Resource."""

    def test_properties(self):
        r = util.resource({'kind': 'Service',
                           'metadata': {'name': 'svc', 'namespace': 'ns',
                                        'labels': {'a': 'b'}}})
        assert r.name == 'svc'
        assert r.namespace == 'ns'
        assert r.key == 'ns/svc'
        assert r.labels == {'a': 'b'}
        assert r.annotations == {}

    def test_cluster_scoped_key(self):
        r = util.resource({'kind': 'Node', 'metadata': {'name': 'node-1'}})
        assert r.key == 'node-1'
        assert util.get_fqn(r) == 'Node/node-1'

    def test_nested_name_field(self):
        """A nested 'name' key is data, not the object name."""
        r = util.resource({'kind': 'Gateway',
                           'metadata': {'name': 'gw', 'namespace': 'ns'},
                           'spec': {'listeners': [{'name': 'udp'}]}})
        assert r.spec.listeners[0].name == 'udp'
        assert r.name == 'gw'

    def test_owner_reference(self):
        gw = util.resource({'apiVersion': 'gateway.networking.k8s.io/v1',
                            'kind': 'Gateway',
                            'metadata': {'name': 'gw', 'namespace': 'ns',
                                         'uid': 'uid-1'}})
        svc = util.resource({'kind': 'Service',
                             'metadata': {'name': 'gw', 'namespace': 'ns',
                                          'ownerReferences':
                                          [gw.owner_reference()]}})
        assert gw.owner_reference()['uid'] == 'uid-1'
        assert svc.is_owned_by(gw)

    def test_not_owned_on_uid_mismatch(self):
        gw = util.resource({'kind': 'Gateway',
                            'metadata': {'name': 'gw', 'uid': 'uid-2'}})
        svc = util.resource({'kind': 'Service', 'metadata': {
            'name': 'gw', 'ownerReferences': [
                {'kind': 'Gateway', 'name': 'gw', 'uid': 'uid-1'}]}})
        assert not svc.is_owned_by(gw)


# =============================================================================
# Selector Tests
# =============================================================================


class TestSelectors:
    """Tests for label selector matching."""

    OBJ = {'metadata': {'labels': {'env': 'test', 'tier': 'media'}}}

    def test_empty_selector(self):
        assert util.does_selector_match({}, self.OBJ)

    def test_match_labels(self):
        assert util.does_selector_match({'matchLabels': {'env': 'test'}},
                                        self.OBJ)
        assert not util.does_selector_match({'matchLabels': {'env': 'prod'}},
                                            self.OBJ)

    @pytest.mark.parametrize('expr,expected', [
        ({'key': 'env', 'operator': 'In', 'values': ['test', 'dev']}, True),
        ({'key': 'env', 'operator': 'NotIn', 'values': ['test']}, False),
        ({'key': 'tier', 'operator': 'Exists'}, True),
        ({'key': 'zone', 'operator': 'Exists'}, False),
        ({'key': 'zone', 'operator': 'DoesNotExist'}, True),
    ])
    def test_match_expressions(self, expr, expected):
        assert util.does_selector_match({'matchExpressions': [expr]},
                                        self.OBJ) is expected

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            util.does_selector_match(
                {'matchExpressions': [{'key': 'env', 'operator': 'Near'}]},
                self.OBJ)


# =============================================================================
# Misc Tests
# =============================================================================


class TestSecretValue:
    """Tests for util.secret_value."""

    def test_string_data(self):
        s = {'stringData': {'user': 'joe'}}
        assert util.secret_value(s, 'user') == 'joe'
        assert util.secret_value(s, 'user', encoded=True) == \
            base64.b64encode(b'joe').decode()

    def test_data(self):
        enc = base64.b64encode(b'secret').decode()
        s = {'data': {'pass': enc}}
        assert util.secret_value(s, 'pass') == 'secret'
        assert util.secret_value(s, 'pass', encoded=True) == enc

    def test_missing(self):
        assert util.secret_value({}, 'nope') is None


class TestIsSubset:
    """Tests for util.is_subset."""

    def test_subset(self):
        old = {'a': 1, 'b': {'c': [1, {'d': 2, 'e': 3}]}, 'x': 'y'}
        assert util.is_subset({'b': {'c': [1, {'d': 2}]}}, old)

    def test_not_subset(self):
        old = {'a': 1, 'b': [1, 2]}
        assert not util.is_subset({'a': 2}, old)
        assert not util.is_subset({'b': [1]}, old)
        assert not util.is_subset({'z': 1}, old)


class TestKinds:
    """Tests for the kind registry."""

    def test_builtin(self):
        k = crd.get_kind('Deployment')
        assert k.group == 'apps'
        assert k.plural == 'deployments'
        assert k.namespaced
        assert crd.api_version('Deployment') == 'apps/v1'

    def test_core(self):
        assert crd.api_version('ConfigMap') == 'v1'

    def test_custom(self):
        k = crd.get_kind('Dataplane')
        assert k.group == 'stunner.l7mp.io'
        assert not k.namespaced

    def test_unknown(self):
        with pytest.raises(KeyError):
            crd.get_kind('Pod')
