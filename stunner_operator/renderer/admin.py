# admin.py: Render the admin settings of stunnerd

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

from munch import Munch

from .. import config
from .errors import CriticalError, Reason

OFFLOAD_ENGINES = ('none', 'auto', 'xdp', 'tc')


def validate_admin(admin):
    "Fill the defaults and check the enums of ADMIN."
    if not admin.get('name'):
        admin.name = config.DEFAULT_INSTANCE_NAME
    if not admin.get('logLevel'):
        admin.logLevel = config.DEFAULT_LOG_LEVEL
    engine = str(admin.get('offloadEngine') or config.DEFAULT_OFFLOAD_ENGINE)
    if engine.lower() not in OFFLOAD_ENGINES:
        raise CriticalError(Reason.INVALID_ADMIN_CONFIG,
                            f'invalid offload engine: {engine}')
    admin.offloadEngine = engine.lower()
    admin.offloadInterfaces = list(admin.get('offloadInterfaces') or [])
    return admin


def render_admin(c):
    spec = c.gw_conf.get('spec', {})
    managed = config.is_managed(c.conf)
    dp_spec = c.dp.get('spec', {}) if managed and c.dp else {}

    admin = Munch(
        name=c.gws[0].key if managed and c.gws
        else config.DEFAULT_INSTANCE_NAME,
        logLevel=spec.get('logLevel') or config.DEFAULT_LOG_LEVEL,
    )

    if managed and dp_spec.get('enableMetricsEndpoint'):
        admin.metricsEndpoint = config.DEFAULT_METRICS_ENDPOINT

    if not (managed and dp_spec.get('disableHealthCheck')):
        admin.healthCheckEndpoint = config.DEFAULT_HEALTH_CHECK_ENDPOINT

    if managed:
        admin.offloadEngine = dp_spec.get('offloadEngine')
        admin.offloadInterfaces = dp_spec.get('offloadInterfaces')

    return validate_admin(admin)
