# config.py: Operator-wide constants and runtime settings

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

import os

from munch import Munch

# Identity
CONTROLLER_NAME = 'stunner.l7mp.io/gateway-operator'
GROUP = 'stunner.l7mp.io'
GATEWAY_GROUP = 'gateway.networking.k8s.io'

# Defaults
DEFAULT_DATAPLANE_MODE = 'managed'
DATAPLANE_MODES = ('legacy', 'managed')
DEFAULT_DATAPLANE_NAME = 'default'
DEFAULT_CONFIGMAP_NAME = 'stunnerd-config'
DEFAULT_INSTANCE_NAME = 'stunner-daemon'
DEFAULT_REALM = 'stunner.l7mp.io'
DEFAULT_AUTH_TYPE = 'static'
DEFAULT_LOG_LEVEL = 'all:INFO'
DEFAULT_METRICS_ENDPOINT = 'http://:8080/metrics'
DEFAULT_HEALTH_CHECK_ENDPOINT = 'http://:8086'
DEFAULT_OFFLOAD_ENGINE = 'none'
DEFAULT_MIN_RELAY_PORT = 1 << 15
DEFAULT_MAX_RELAY_PORT = (1 << 16) - 1
DEFAULT_STUNNERD_IMAGE = 'l7mp/stunnerd:latest'
DEFAULT_SERVICE_TYPE = 'LoadBalancer'
DEFAULT_THROTTLE_TIMEOUT = 0.25
LISTENER_ADDR = '$STUNNER_ADDR'
CONFIG_VERSION = 'v1'

# Artifact carrier
CONFIG_FILE_KEY = 'stunnerd.conf'

# Labels
OWNED_BY_LABEL = 'stunner.l7mp.io/owned-by'
OWNED_BY_VALUE = 'stunner'
APP_LABEL = 'app'
APP_VALUE = 'stunner'
RELATED_GATEWAY_KEY = 'stunner.l7mp.io/related-gateway-name'
RELATED_GATEWAY_NAMESPACE = 'stunner.l7mp.io/related-gateway-namespace'

# Annotations
SERVICE_TYPE_ANNOTATION = 'stunner.l7mp.io/service-type'
MIXED_PROTOCOL_ANNOTATION = 'stunner.l7mp.io/enable-mixed-protocol-lb'
EXTERNAL_TRAFFIC_POLICY_ANNOTATION = 'stunner.l7mp.io/external-traffic-policy'
DISABLE_MANAGED_DATAPLANE_ANNOTATION = 'stunner.l7mp.io/disable-managed-dataplane'
NODEPORT_ANNOTATION = 'stunner.l7mp.io/nodeport'
DISABLE_SESSION_AFFINITY_ANNOTATION = 'stunner.l7mp.io/disable-session-affinity'
INTERNAL_ANNOTATION_PREFIX = 'stunner.l7mp.io/'

# Status
MAX_STATUS_CONDITIONS = 8


def parse_bool(value):
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in ('1', 'true', 'yes', 'on'):
        return True
    if v in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(f'Invalid boolean value: {value!r}')


def load(environ=None, **overrides) -> Munch:
    """Build the runtime settings from ENVIRON (default: os.environ).

    Keyword arguments override the environment, which is handy in tests.
    """
    env = os.environ if environ is None else environ

    conf = Munch(
        controller_name=env.get('STUNNER_CONTROLLER_NAME', CONTROLLER_NAME),
        dataplane_mode=env.get('STUNNER_DATAPLANE_MODE',
                               DEFAULT_DATAPLANE_MODE).lower(),
        enable_endpoint_discovery=parse_bool(
            env.get('STUNNER_ENABLE_ENDPOINT_DISCOVERY', True)),
        enable_relay_to_cluster_ip=parse_bool(
            env.get('STUNNER_ENABLE_RELAY_TO_CLUSTER_IP', True)),
        endpoint_slice_available=parse_bool(
            env.get('STUNNER_ENDPOINT_SLICE_AVAILABLE', True)),
        throttle_timeout=float(env.get('STUNNER_THROTTLE_TIMEOUT',
                                       DEFAULT_THROTTLE_TIMEOUT)),
        stunnerd_image=env.get('STUNNER_STUNNERD_IMAGE',
                               DEFAULT_STUNNERD_IMAGE),
    )
    conf.update(overrides)

    if conf.dataplane_mode not in DATAPLANE_MODES:
        raise ValueError(f'Invalid dataplane mode: {conf.dataplane_mode}')
    return conf


def is_managed(conf):
    return conf.dataplane_mode == 'managed'
