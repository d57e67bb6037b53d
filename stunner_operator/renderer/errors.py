# errors.py: Error taxonomy of the renderer

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

import enum


class Reason(str, enum.Enum):
    # critical
    CONFIG_NOT_FOUND = 'ConfigNotFound'
    INVALID_DATAPLANE = 'InvalidDataplane'
    INVALID_AUTH_TYPE = 'InvalidAuthType'
    INVALID_USERNAME_PASSWORD = 'InvalidUsernamePassword'
    INVALID_SHARED_SECRET = 'InvalidSharedSecret'
    EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND = 'ExternalAuthCredentialsNotFound'
    MIXED_INLINE_EXTERNAL_AUTH = 'MixedInlineExternalAuth'
    INVALID_ADMIN_CONFIG = 'InvalidAdminConfig'
    RENDERING_ERROR = 'RenderingError'

    # non-critical
    INVALID_BACKEND_GROUP = 'InvalidBackendGroup'
    INVALID_BACKEND_KIND = 'InvalidBackendKind'
    BACKEND_NOT_FOUND = 'BackendNotFound'
    CLUSTER_IP_NOT_FOUND = 'ClusterIPNotFound'
    ENDPOINT_NOT_FOUND = 'EndpointNotFound'
    INCONSISTENT_CLUSTER_TYPE = 'InconsistentClusterType'
    INVALID_PORT_RANGE = 'InvalidPortRange'
    PUBLIC_ADDRESS_NOT_FOUND = 'PublicAddressNotFound'
    PUBLIC_LISTENER_ADDRESS_NOT_FOUND = 'PublicListenerAddressNotFound'
    INVALID_PROTOCOL = 'InvalidProtocol'
    PORT_UNAVAILABLE = 'PortUnavailable'


CRITICAL_REASONS = frozenset([
    Reason.CONFIG_NOT_FOUND, Reason.INVALID_DATAPLANE,
    Reason.INVALID_AUTH_TYPE, Reason.INVALID_USERNAME_PASSWORD,
    Reason.INVALID_SHARED_SECRET, Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND,
    Reason.MIXED_INLINE_EXTERNAL_AUTH, Reason.INVALID_ADMIN_CONFIG,
    Reason.RENDERING_ERROR,
])

messages = {
    Reason.CONFIG_NOT_FOUND: 'GatewayConfig not found',
    Reason.INVALID_DATAPLANE: 'Dataplane not found',
    Reason.INVALID_AUTH_TYPE: 'invalid authentication type',
    Reason.INVALID_USERNAME_PASSWORD: 'missing username and/or password '
                                      'for static authentication',
    Reason.INVALID_SHARED_SECRET: 'missing shared-secret '
                                  'for ephemeral authentication',
    Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND:
        'cannot load external authentication credentials',
    Reason.MIXED_INLINE_EXTERNAL_AUTH:
        'external authentication Secret is incomplete while inline '
        'credentials are also set',
    Reason.INVALID_ADMIN_CONFIG: 'invalid admin configuration',
    Reason.RENDERING_ERROR: 'rendering error',
    Reason.INVALID_BACKEND_GROUP: 'invalid backend group',
    Reason.INVALID_BACKEND_KIND: 'invalid backend kind',
    Reason.BACKEND_NOT_FOUND: 'backend not found',
    Reason.CLUSTER_IP_NOT_FOUND: 'No ClusterIP found (use a STRICT_DNS '
                                 'cluster if service is headless)',
    Reason.ENDPOINT_NOT_FOUND: 'no endpoints found for backend',
    Reason.INCONSISTENT_CLUSTER_TYPE: 'inconsistent cluster type for backends',
    Reason.INVALID_PORT_RANGE: 'invalid port range',
    Reason.PUBLIC_ADDRESS_NOT_FOUND: 'no public address found for gateway',
    Reason.PUBLIC_LISTENER_ADDRESS_NOT_FOUND:
        'no public address found for listener',
    Reason.INVALID_PROTOCOL: 'invalid protocol',
    Reason.PORT_UNAVAILABLE: 'port unavailable',
}


class RenderError(Exception):
    "Base of all renderer errors, REASON is a Reason."

    def __init__(self, reason, detail=None):
        self.reason = Reason(reason)
        self.detail = detail
        super().__init__(str(self))

    def __str__(self):
        msg = messages[self.reason]
        return f'{msg}: {self.detail}' if self.detail else msg


class CriticalError(RenderError):
    "Aborts the rendering of a gateway class or gateway."

    def __init__(self, reason, detail=None):
        super().__init__(reason, detail)
        if self.reason not in CRITICAL_REASONS:
            raise ValueError(f'{self.reason.value} is not a critical reason')


class NonCriticalError(RenderError):
    "Scoped to a single listener, route or backend."

    def __init__(self, reason, detail=None):
        super().__init__(reason, detail)
        if self.reason in CRITICAL_REASONS:
            raise ValueError(f'{self.reason.value} is a critical reason')
