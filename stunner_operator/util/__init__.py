# util: Helpers for handling Kubernetes objects

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

import base64
import os

from kubernetes import config
from kubernetes.client import Configuration
from munch import Munch

from . import logger

log = logger.getLogger(__name__)


def load_config():
  if os.getenv('KUBERNETES_SERVICE_HOST'):
    config.load_incluster_config()
  else:
    config.load_kube_config()

  c = Configuration.get_default_copy()
  c.assert_hostname = False
  Configuration.set_default(c)


## ######################################################################

def make_key(namespace, name):
  return f'{namespace}/{name}' if namespace else name


def get_fqn(obj):
  "Get a name unambiguously identifying the object OBJ."
  kind = obj.get('kind', '')
  return f'{kind}/{make_key(obj_namespace(obj), obj_name(obj))}'


def obj_name(obj):
  return obj.get('metadata', {}).get('name', '')


def obj_namespace(obj):
  return obj.get('metadata', {}).get('namespace', '')


def resource(obj):
  "Wrap the dict OBJ into a Resource, nested maps becoming Munch."
  if isinstance(obj, Resource):
    return obj
  return Resource(Munch.fromDict(dict(obj)))


class Resource(Munch):

  @property
  def name(self):
    return self.get('metadata', {}).get('name', '')

  @property
  def namespace(self):
    return self.get('metadata', {}).get('namespace', '')

  @property
  def key(self):
    return make_key(self.namespace, self.name)

  @property
  def labels(self):
    return self.get('metadata', {}).get('labels') or {}

  @property
  def annotations(self):
    return self.get('metadata', {}).get('annotations') or {}

  def owner_reference(self):
    "An ownerReferences entry pointing to this object."
    ref = {
      'apiVersion': self.get('apiVersion', ''),
      'kind': self.get('kind', ''),
      'name': self.name,
    }
    uid = self.get('metadata', {}).get('uid')
    if uid:
      ref['uid'] = uid
    return ref

  def is_owned_by(self, owner):
    "Check for an ownerReferences entry pointing to OWNER."
    owner_uid = owner.get('metadata', {}).get('uid')
    for ref in self.get('metadata', {}).get('ownerReferences') or []:
      if ref.get('kind') != owner.get('kind') or \
         ref.get('name') != obj_name(owner):
        continue
      if owner_uid and ref.get('uid') and ref.get('uid') != owner_uid:
        continue
      return True
    return False


## ######################################################################
# Selectors

def does_operator_match(value, operator, values):
  if operator == 'In':
    if value not in values:
      return False
  elif operator == 'NotIn':
    if value in values:
      return False
  elif operator == 'Exists':
    if value is None:
      return False
  elif operator == 'DoesNotExist':
    if value is not None:
      return False
  else:
    raise ValueError(f'Unknown operator: {operator}')
  return True


def does_selector_match(selector, obj):
  """Match the label selector SELECTOR against the labels of OBJ.

  An empty selector matches everything.
  """
  labels = obj.get('metadata', {}).get('labels') or {}
  match_labels = selector.get('matchLabels') or {}
  if not all(v == labels.get(k) for k, v in match_labels.items()):
    return False
  for expr in selector.get('matchExpressions') or []:
    value = labels.get(expr['key'])
    if not does_operator_match(value, expr['operator'],
                               expr.get('values') or []):
      return False
  return True


def secret_value(secret, key, encoded=False):
  """Value of KEY in SECRET, None if missing.

  Values under 'stringData' are taken verbatim, values under 'data' are
  base64 decoded unless ENCODED is set.
  """
  string_data = secret.get('stringData') or {}
  if key in string_data:
    v = string_data[key]
    return base64.b64encode(v.encode()).decode() if encoded else v
  data = secret.get('data') or {}
  if key not in data:
    return None
  if encoded:
    return data[key]
  return base64.b64decode(data[key]).decode()


def is_subset(new, old):
  "Check if every field set in NEW has the same value in OLD."
  if isinstance(new, dict):
    if not isinstance(old, dict):
      return False
    return all(k in old and is_subset(v, old[k]) for k, v in new.items())
  if isinstance(new, list):
    if not isinstance(old, list) or len(new) != len(old):
      return False
    return all(is_subset(n, o) for n, o in zip(new, old))
  return new == old
