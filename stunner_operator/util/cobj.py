# cobj.py: Sync objects with the etcd of k8s

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

from kubernetes import client

from . import crd
from . import logger

log = logger.getLogger(__name__)


def _api(kind):
  k = crd.get_kind(kind)
  if k.group == '':
    return k, client.CoreV1Api()
  if k.group == 'apps':
    return k, client.AppsV1Api()
  return k, client.CustomObjectsApi()


def _snake(kind):
  out = ''
  for i, ch in enumerate(kind):
    if ch.isupper() and i > 0 and not kind[i - 1].isupper():
      out += '_'
    out += ch.lower()
  return out


def create(obj):
  kind = obj['kind']
  ns = obj['metadata'].get('namespace')
  k, api = _api(kind)
  log.info(f'{kind} {ns}/{obj["metadata"]["name"]}')
  if isinstance(api, client.CustomObjectsApi):
    if k.namespaced:
      return api.create_namespaced_custom_object(
        k.group, k.version, ns, k.plural, obj)
    return api.create_cluster_custom_object(
      k.group, k.version, k.plural, obj)
  fn = getattr(api, f'create_namespaced_{_snake(kind)}')
  return fn(ns, obj)


def patch(obj):
  "Merge OBJ into the existing object."
  kind = obj['kind']
  name = obj['metadata']['name']
  ns = obj['metadata'].get('namespace')
  k, api = _api(kind)
  log.info(f'{kind} {ns}/{name}')
  if isinstance(api, client.CustomObjectsApi):
    if k.namespaced:
      return api.patch_namespaced_custom_object(
        k.group, k.version, ns, k.plural, name, obj)
    return api.patch_cluster_custom_object(
      k.group, k.version, k.plural, name, obj)
  fn = getattr(api, f'patch_namespaced_{_snake(kind)}')
  return fn(name, ns, obj)


def delete(kind, name, ns=None):
  k, api = _api(kind)
  log.info(f'{kind} {ns}/{name}')
  try:
    if isinstance(api, client.CustomObjectsApi):
      if k.namespaced:
        return api.delete_namespaced_custom_object(
          k.group, k.version, ns, k.plural, name)
      return api.delete_cluster_custom_object(
        k.group, k.version, k.plural, name)
    fn = getattr(api, f'delete_namespaced_{_snake(kind)}')
    return fn(name, ns)
  except client.exceptions.ApiException as e:
    if e.status != 404:
      raise
    log.debug(f'{kind} {ns}/{name} already gone')


def create_or_update(obj):
  "Create the object or update it if it already exists."
  try:
    return create(obj)
  except client.exceptions.ApiException as e:
    if e.status != 409:
      raise
  if obj['kind'] == 'ConfigMap' and obj.get('immutable'):
    # immutable configmaps cannot be replaced, only recreated
    delete('ConfigMap', obj['metadata']['name'],
           obj['metadata'].get('namespace'))
    return create(obj)
  return patch(obj)


def update_status(obj):
  "Patch the status subresource of the custom object OBJ."
  kind = obj['kind']
  name = obj['metadata']['name']
  ns = obj['metadata'].get('namespace')
  k = crd.get_kind(kind)
  body = {'status': obj.get('status', {})}
  crds = client.CustomObjectsApi()
  log.debug(f'{kind} {ns}/{name} status: {body}')
  if k.namespaced:
    return crds.patch_namespaced_custom_object_status(
      group=k.group, version=k.version, namespace=ns,
      plural=k.plural, name=name, body=body)
  return crds.patch_cluster_custom_object_status(
    group=k.group, version=k.version, plural=k.plural, name=name,
    body=body)
