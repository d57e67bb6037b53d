# workload.py: Build the objects owned by the operator

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

import ipaddress
import json

from munch import Munch

from .. import config
from .errors import NonCriticalError
from .listener import get_service_protocol

CONFIG_DIR = '/etc/stunnerd'
CONFIG_VOLUME = 'stunnerd-config-volume'


def mandatory_labels(gw=None):
    labels = {config.OWNED_BY_LABEL: config.OWNED_BY_VALUE}
    if gw is not None:
        labels[config.APP_LABEL] = config.APP_VALUE
        labels[config.RELATED_GATEWAY_KEY] = gw.name
        labels[config.RELATED_GATEWAY_NAMESPACE] = gw.namespace
    return labels


## ######################################################################
# ConfigMap

def render_config_map(name, namespace, conf, owner, related, gw=None):
    """Build the ConfigMap carrying the serialized stunnerd config CONF.

    CONF is the config as a string, an empty string for an invalidated
    config.  RELATED is the key of the class or gateway the config belongs
    to, GW is set in managed mode.
    """
    return Munch.fromDict({
        'apiVersion': 'v1',
        'kind': 'ConfigMap',
        'metadata': {
            'name': name,
            'namespace': namespace,
            'labels': mandatory_labels(gw),
            'annotations': {config.RELATED_GATEWAY_KEY: related},
            'ownerReferences': [owner.owner_reference()] if owner else [],
        },
        'immutable': True,
        'data': {config.CONFIG_FILE_KEY: conf},
    })


def find_config_maps(store, related):
    "Our ConfigMaps annotated as related to the class or gateway RELATED."
    return [cm for cm in store.get_all('ConfigMap')
            if cm.labels.get(config.OWNED_BY_LABEL) == config.OWNED_BY_VALUE
            and cm.annotations.get(config.RELATED_GATEWAY_KEY) == related]


## ######################################################################
# Deployment

def render_deployment(c, gw):
    "Build the stunnerd Deployment of GW from the Dataplane template."
    dp = c.dp.get('spec', {})
    labels = mandatory_labels(gw)
    pod_labels = dict(dp.get('labels') or {})
    pod_labels.update(labels)

    env = [
        {'name': 'STUNNER_ADDR',
         'valueFrom': {'fieldRef': {'fieldPath': 'status.podIP'}}},
        {'name': 'STUNNER_NAME',
         'valueFrom': {'fieldRef': {'fieldPath': 'metadata.name'}}},
        {'name': 'STUNNER_NAMESPACE',
         'valueFrom': {'fieldRef': {'fieldPath': 'metadata.namespace'}}},
    ]
    env.extend(dp.get('env') or [])

    container = {
        'name': 'stunnerd',
        'image': dp.get('image') or c.conf.stunnerd_image,
        'imagePullPolicy': dp.get('imagePullPolicy') or 'IfNotPresent',
        'command': list(dp.get('command') or ['stunnerd']),
        'args': list(dp.get('args') or [
            '-w', '-c', f'{CONFIG_DIR}/{config.CONFIG_FILE_KEY}',
            '--udp-thread-num=16']),
        'env': env,
        'volumeMounts': [{'name': CONFIG_VOLUME, 'mountPath': CONFIG_DIR,
                          'readOnly': True}],
    }
    if dp.get('resources'):
        container['resources'] = dp.resources
    if dp.get('containerSecurityContext'):
        container['securityContext'] = dp.containerSecurityContext

    pod_spec = {
        'containers': [container],
        'volumes': [{'name': CONFIG_VOLUME,
                     'configMap': {'name': gw.name, 'optional': True}}],
        'hostNetwork': bool(dp.get('hostNetwork')),
    }
    for key in ('affinity', 'tolerations', 'securityContext',
                'terminationGracePeriodSeconds'):
        if dp.get(key) is not None:
            pod_spec[key] = dp[key]

    return Munch.fromDict({
        'apiVersion': 'apps/v1',
        'kind': 'Deployment',
        'metadata': {
            'name': gw.name,
            'namespace': gw.namespace,
            'labels': labels,
            'annotations': {config.RELATED_GATEWAY_KEY: gw.key},
            'ownerReferences': [gw.owner_reference()],
        },
        'spec': {
            'replicas': dp.get('replicas') if dp.get('replicas') is not None
            else 1,
            'selector': {'matchExpressions': [
                {'key': config.OWNED_BY_LABEL, 'operator': 'In',
                 'values': [config.OWNED_BY_VALUE]},
                {'key': config.RELATED_GATEWAY_KEY, 'operator': 'In',
                 'values': [gw.name]},
            ]},
            'template': {
                'metadata': {'labels': pod_labels,
                             'annotations': dict(dp.get('annotations') or {})},
                'spec': pod_spec,
            },
        },
    })


## ######################################################################
# Service

def merge_annotations(gw, *sources):
    """Merge the annotation maps SOURCES, later ones win, then the
    annotations of GW.  Internal keys only survive if GW states them."""
    ret = {}
    for src in sources:
        for k, v in (src or {}).items():
            if k.startswith(config.INTERNAL_ANNOTATION_PREFIX):
                continue
            ret[k] = v
    ret.update(gw.annotations)
    ret[config.RELATED_GATEWAY_KEY] = gw.key
    return ret


def parse_port_annotation(c, gw, key):
    "Parse the JSON map of listener name to port in annotation KEY."
    value = gw.annotations.get(key)
    if not value:
        return {}
    for v in (value, '{' + value + '}'):
        try:
            ports = json.loads(v)
        except ValueError:
            continue
        if isinstance(ports, dict):
            return {k: p for k, p in ports.items() if isinstance(p, int)}
    c.log.info(f'gateway {gw.key}: cannot parse annotation {key}: {value}')
    return {}


def _existing_node_port(svc, name, proto, port):
    if svc is None:
        return None
    for sp in svc.get('spec', {}).get('ports') or []:
        if sp.get('name') == name and sp.get('port') == port and \
           (sp.get('protocol') or 'TCP').upper() == proto:
            return sp.get('nodePort')
    return None


def get_load_balancer_ip(gw):
    hints = gw.get('spec', {}).get('addresses') or []
    if not hints or (hints[0].get('type') or 'IPAddress') != 'IPAddress':
        return None
    try:
        return str(ipaddress.ip_address(hints[0].get('value')))
    except ValueError:
        return None


def render_service(c, gw):
    "Build the Service exposing GW, None if GW has no valid listener."
    existing = c.store.get('Service', gw.namespace, gw.name)
    dp = c.dp.get('spec', {}) if c.dp else {}
    gw_conf = c.gw_conf.get('spec', {}) if c.gw_conf else {}
    ann = gw.annotations

    svc_type = ann.get(config.SERVICE_TYPE_ANNOTATION,
                       config.DEFAULT_SERVICE_TYPE)
    if svc_type not in ('ClusterIP', 'NodePort', 'LoadBalancer'):
        c.log.info(f'gateway {gw.key}: invalid service type {svc_type}, '
                   f'using {config.DEFAULT_SERVICE_TYPE}')
        svc_type = config.DEFAULT_SERVICE_TYPE
    mixed = ann.get(config.MIXED_PROTOCOL_ANNOTATION, '').lower() == 'true'
    node_ports = parse_port_annotation(c, gw, config.NODEPORT_ANNOTATION)

    ports, first_proto = [], None
    for l in gw.get('spec', {}).get('listeners') or []:
        try:
            proto = get_service_protocol(l.get('protocol'))
        except NonCriticalError:
            continue
        if first_proto is None:
            first_proto = proto
        elif proto != first_proto and not mixed:
            c.log.info(f'gateway {gw.key}: listener {l.get("name")} '
                       f'skipped from the Service: mixed protocols')
            continue
        sp = {'name': l.get('name'), 'protocol': proto,
              'port': l.get('port')}
        node_port = node_ports.get(l.get('name')) or \
            _existing_node_port(existing, l.get('name'), proto, l.get('port'))
        if node_port and svc_type != 'ClusterIP':
            sp['nodePort'] = node_port
        ports.append(sp)

    if not ports:
        return None

    labels = dict(dp.get('labels') or {})
    labels.update(gw.labels)
    labels.update(mandatory_labels(gw))

    spec = {
        'type': svc_type,
        'selector': {
            config.APP_LABEL: config.APP_VALUE,
            config.RELATED_GATEWAY_KEY: gw.name,
            config.RELATED_GATEWAY_NAMESPACE: gw.namespace,
        },
        'ports': ports,
    }
    if ann.get(config.DISABLE_SESSION_AFFINITY_ANNOTATION, '').lower() != \
       'true':
        spec['sessionAffinity'] = 'ClientIP'
    if svc_type != 'ClusterIP' and \
       ann.get(config.EXTERNAL_TRAFFIC_POLICY_ANNOTATION, '').lower() == \
       'local':
        spec['externalTrafficPolicy'] = 'Local'
    lb_ip = get_load_balancer_ip(gw)
    if lb_ip and svc_type == 'LoadBalancer':
        spec['loadBalancerIP'] = lb_ip

    return Munch.fromDict({
        'apiVersion': 'v1',
        'kind': 'Service',
        'metadata': {
            'name': gw.name,
            'namespace': gw.namespace,
            'labels': labels,
            'annotations': merge_annotations(
                gw, dp.get('annotations'),
                gw_conf.get('loadBalancerServiceAnnotations')),
            'ownerReferences': [gw.owner_reference()],
        },
        'spec': spec,
    })
