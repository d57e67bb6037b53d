# crd.py: Custom resource definitions and the registry of watched kinds

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

import inspect
import yaml

from kubernetes import client
from munch import Munch

from . import logger
log = logger.getLogger(__name__)

defs = {
  'gwconf': inspect.cleandoc('''
    apiVersion: apiextensions.k8s.io/v1
    kind: CustomResourceDefinition
    metadata:
      name: gatewayconfigs.stunner.l7mp.io
    spec:
      group: stunner.l7mp.io
      scope: Namespaced
      names:
        plural: gatewayconfigs
        singular: gatewayconfig
        kind: GatewayConfig
        shortNames:
         - gwconf
      versions:
      - name: v1
        served: true
        storage: true
        schema:
          openAPIV3Schema:
            type: object
            x-kubernetes-preserve-unknown-fields: true
        additionalPrinterColumns:
        - name: realm
          type: string
          jsonPath: .spec.realm
        - name: dataplane
          type: string
          jsonPath: .spec.dataplane
  '''),
  'dataplane': inspect.cleandoc('''
    apiVersion: apiextensions.k8s.io/v1
    kind: CustomResourceDefinition
    metadata:
      name: dataplanes.stunner.l7mp.io
    spec:
      group: stunner.l7mp.io
      scope: Cluster
      names:
        plural: dataplanes
        singular: dataplane
        kind: Dataplane
        shortNames:
         - dataplane
      versions:
      - name: v1
        served: true
        storage: true
        schema:
          openAPIV3Schema:
            type: object
            x-kubernetes-preserve-unknown-fields: true
        additionalPrinterColumns:
        - name: image
          type: string
          jsonPath: .spec.image
  '''),
  'ssvc': inspect.cleandoc('''
    apiVersion: apiextensions.k8s.io/v1
    kind: CustomResourceDefinition
    metadata:
      name: staticservices.stunner.l7mp.io
    spec:
      group: stunner.l7mp.io
      scope: Namespaced
      names:
        plural: staticservices
        singular: staticservice
        kind: StaticService
        shortNames:
         - ssvc
      versions:
      - name: v1
        served: true
        storage: true
        schema:
          openAPIV3Schema:
            type: object
            x-kubernetes-preserve-unknown-fields: true
        additionalPrinterColumns:
        - name: prefixes
          type: string
          jsonPath: .spec.prefixes
  '''),
  'udproute': inspect.cleandoc('''
    apiVersion: apiextensions.k8s.io/v1
    kind: CustomResourceDefinition
    metadata:
      name: udproutes.stunner.l7mp.io
    spec:
      group: stunner.l7mp.io
      scope: Namespaced
      names:
        plural: udproutes
        singular: udproute
        kind: UDPRoute
        shortNames:
         - udproute
      versions:
      - name: v1
        served: true
        storage: true
        subresources:
          status: {}
        schema:
          openAPIV3Schema:
            type: object
            x-kubernetes-preserve-unknown-fields: true
  '''),
}


def get_definition(short_name):
  return Munch.fromDict(yaml.safe_load(defs[short_name]))


# Kinds living outside our CRDs: (group, version, plural, namespaced)
builtin_kinds = {
  'GatewayClass': ('gateway.networking.k8s.io', 'v1', 'gatewayclasses',
                   False),
  'Gateway': ('gateway.networking.k8s.io', 'v1', 'gateways', True),
  'Service': ('', 'v1', 'services', True),
  'Endpoints': ('', 'v1', 'endpoints', True),
  'EndpointSlice': ('discovery.k8s.io', 'v1', 'endpointslices', True),
  'Node': ('', 'v1', 'nodes', False),
  'Namespace': ('', 'v1', 'namespaces', False),
  'Secret': ('', 'v1', 'secrets', True),
  'ConfigMap': ('', 'v1', 'configmaps', True),
  'Deployment': ('apps', 'v1', 'deployments', True),
}


def get_kind(kind):
  "Look up group, version, plural and scope of KIND."
  if kind in builtin_kinds:
    group, version, plural, namespaced = builtin_kinds[kind]
    return Munch(kind=kind, group=group, version=version,
                 plural=plural, namespaced=namespaced)
  for short_name in defs:
    crd_def = get_definition(short_name)
    if crd_def.spec.names.kind == kind:
      return Munch(kind=kind, group=crd_def.spec.group,
                   version=crd_def.spec.versions[0].name,
                   plural=crd_def.spec.names.plural,
                   namespaced=crd_def.spec.scope == 'Namespaced')
  raise KeyError(kind)


def api_version(kind):
  k = get_kind(kind)
  return f'{k.group}/{k.version}' if k.group else k.version


def check(short_name, install=True):
  "Make sure the CRD SHORT_NAME exists, install it if INSTALL is set."
  api = client.ApiextensionsV1Api()
  our_crd = get_definition(short_name)
  crd_name = our_crd.metadata.name
  for crd in api.list_custom_resource_definition().items:
    if crd.metadata.name == crd_name:
      log.debug('crd found (name: %s)', crd_name)
      break
  else:
    log.info('crd not found (name: %s)', crd_name)
    if not install:
      raise KeyError(crd_name)
    api.create_custom_resource_definition(our_crd.toDict())
    log.info('crd installed (name: %s)', crd_name)


def check_all(install=True):
  for key in defs.keys():
    check(key, install)
