"""Pytest configuration and fixtures: a small cluster worth of objects."""

import copy

import pytest
from munch import Munch

from stunner_operator import config
from stunner_operator.renderer.context import RenderContext
from stunner_operator.store import Store

NS = 'testnamespace'

OBJECTS = {
    'gc': {
        'apiVersion': 'gateway.networking.k8s.io/v1',
        'kind': 'GatewayClass',
        'metadata': {'name': 'gatewayclass-ok', 'uid': 'uid-gc',
                     'generation': 1},
        'spec': {
            'controllerName': config.CONTROLLER_NAME,
            'parametersRef': {'group': 'stunner.l7mp.io',
                              'kind': 'GatewayConfig',
                              'name': 'gatewayconfig-ok',
                              'namespace': NS},
        },
    },
    'gw_conf': {
        'apiVersion': 'stunner.l7mp.io/v1',
        'kind': 'GatewayConfig',
        'metadata': {'name': 'gatewayconfig-ok', 'namespace': NS,
                     'uid': 'uid-gwconf'},
        'spec': {
            'realm': 'testrealm',
            'authType': 'plaintext',
            'userName': 'testuser',
            'password': 'testpass',
            'logLevel': 'all:DEBUG',
            'loadBalancerServiceAnnotations': {'test.io/lb': 'yes'},
        },
    },
    'gw': {
        'apiVersion': 'gateway.networking.k8s.io/v1',
        'kind': 'Gateway',
        'metadata': {'name': 'gateway-1', 'namespace': NS, 'uid': 'uid-gw',
                     'generation': 2},
        'spec': {
            'gatewayClassName': 'gatewayclass-ok',
            'listeners': [
                {'name': 'udp', 'protocol': 'UDP', 'port': 3478},
                {'name': 'tcp', 'protocol': 'TURN-TCP', 'port': 3479},
            ],
        },
    },
    'gw_svc': {
        'apiVersion': 'v1',
        'kind': 'Service',
        'metadata': {
            'name': 'gateway-1', 'namespace': NS,
            'ownerReferences': [{'apiVersion': 'gateway.networking.k8s.io/v1',
                                 'kind': 'Gateway', 'name': 'gateway-1',
                                 'uid': 'uid-gw'}],
        },
        'spec': {
            'type': 'LoadBalancer',
            'clusterIP': '10.96.0.10',
            'ports': [
                {'name': 'udp', 'protocol': 'UDP', 'port': 3478,
                 'nodePort': 30478},
                {'name': 'tcp', 'protocol': 'TCP', 'port': 3479,
                 'nodePort': 30479},
            ],
        },
        'status': {'loadBalancer': {'ingress': [{'ip': '1.2.3.4'}]}},
    },
    'route': {
        'apiVersion': 'stunner.l7mp.io/v1',
        'kind': 'UDPRoute',
        'metadata': {'name': 'udproute-ok', 'namespace': NS,
                     'generation': 3},
        'spec': {
            'parentRefs': [{'name': 'gateway-1'}],
            'rules': [{'backendRefs': [{'name': 'testservice-ok'}]}],
        },
    },
    'svc': {
        'apiVersion': 'v1',
        'kind': 'Service',
        'metadata': {'name': 'testservice-ok', 'namespace': NS},
        'spec': {'type': 'ClusterIP', 'clusterIP': '4.3.2.1',
                 'ports': [{'protocol': 'UDP', 'port': 1}]},
    },
    'endpoints': {
        'apiVersion': 'v1',
        'kind': 'Endpoints',
        'metadata': {'name': 'testservice-ok', 'namespace': NS},
        'subsets': [{
            'addresses': [{'ip': '1.2.3.6'}],
            'notReadyAddresses': [{'ip': '1.2.3.7'}],
        }],
    },
    'endpoint_slice': {
        'apiVersion': 'discovery.k8s.io/v1',
        'kind': 'EndpointSlice',
        'metadata': {'name': 'testservice-ok-xyz', 'namespace': NS,
                     'labels': {'kubernetes.io/service-name':
                                'testservice-ok'}},
        'endpoints': [
            {'addresses': ['1.2.3.4'], 'conditions': {'ready': True}},
            {'addresses': ['1.2.3.5'], 'conditions': {'ready': True}},
        ],
    },
    'static_svc': {
        'apiVersion': 'stunner.l7mp.io/v1',
        'kind': 'StaticService',
        'metadata': {'name': 'teststaticservice-ok', 'namespace': NS},
        'spec': {'prefixes': ['10.11.12.13', '10.11.12.14']},
    },
    'node': {
        'apiVersion': 'v1',
        'kind': 'Node',
        'metadata': {'name': 'testnode-ok'},
        'status': {'addresses': [
            {'type': 'InternalIP', 'address': '10.0.0.1'},
            {'type': 'ExternalIP', 'address': '5.6.7.8'},
        ]},
    },
    'namespace': {
        'apiVersion': 'v1',
        'kind': 'Namespace',
        'metadata': {'name': NS, 'labels': {'env': 'test'}},
    },
    'dataplane': {
        'apiVersion': 'stunner.l7mp.io/v1',
        'kind': 'Dataplane',
        'metadata': {'name': 'default'},
        'spec': {
            'image': 'l7mp/stunnerd:testing',
            'replicas': 3,
            'hostNetwork': True,
            'labels': {'dp-label': 'dp'},
            'annotations': {'dp.io/annotation': 'dp'},
        },
    },
    'auth_secret': {
        'apiVersion': 'v1',
        'kind': 'Secret',
        'metadata': {'name': 'testauthsecret', 'namespace': NS},
        'stringData': {'type': 'static', 'username': 'secretuser',
                       'password': 'secretpass'},
    },
}


@pytest.fixture
def objs():
    """Fresh copies of all test objects."""
    return Munch({k: copy.deepcopy(v) for k, v in OBJECTS.items()})


@pytest.fixture
def store(objs):
    """A store holding every test object."""
    s = Store()
    for obj in objs.values():
        s.upsert(obj)
    return s


@pytest.fixture
def legacy_conf():
    return config.load(environ={}, dataplane_mode='legacy')


@pytest.fixture
def managed_conf():
    return config.load(environ={}, dataplane_mode='managed')


@pytest.fixture
def make_context(store):
    """Factory for render contexts with the config and dataplane looked up."""
    def _make(conf, gws=None, with_config=True, with_dataplane=True):
        gc = store.get('GatewayClass', '', 'gatewayclass-ok')
        if gws is None:
            gws = [store.get('Gateway', NS, 'gateway-1')]
        c = RenderContext(store, conf, gc, generation=1, gws=gws)
        if with_config:
            c.gw_conf = store.get('GatewayConfig', NS, 'gatewayconfig-ok')
        if with_dataplane:
            c.dp = store.get('Dataplane', '', 'default')
        return c
    return _make
