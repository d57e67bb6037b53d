# status.py: Status conditions of gateway classes and gateways

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

import datetime
from collections import deque

from munch import Munch

from .. import config


def now():
    return datetime.datetime.now(datetime.timezone.utc).strftime(
        '%Y-%m-%dT%H:%M:%SZ')


def _generation(obj):
    return obj.get('metadata', {}).get('generation', 0)


def set_condition(conditions, obj, type, status, reason, message='',
                  capacity=config.MAX_STATUS_CONDITIONS):
    """Return CONDITIONS with the condition TYPE set.

    An existing condition of the same type is replaced in place and keeps
    its transition time if the status did not change.  The list holds at
    most CAPACITY conditions, the oldest ones are evicted first.
    """
    cond = Munch(type=type, status=status, reason=reason, message=message,
                 observedGeneration=_generation(obj),
                 lastTransitionTime=now())
    buf = deque(maxlen=capacity)
    found = False
    for old in conditions or []:
        if old.get('type') != type:
            buf.append(old)
            continue
        if old.get('status') == status and old.get('lastTransitionTime'):
            cond.lastTransitionTime = old['lastTransitionTime']
        buf.append(cond)
        found = True
    if not found:
        buf.append(cond)
    return list(buf)


def get_condition(obj, type):
    for cond in obj.get('status', {}).get('conditions') or []:
        if cond.get('type') == type:
            return cond
    return None


def _set(obj, type, status, reason, message=''):
    obj.setdefault('status', Munch())
    obj.status.conditions = set_condition(
        obj.status.get('conditions'), obj, type, status, reason, message)


## ######################################################################
# GatewayClass

def set_gateway_class_accepted(gc, err=None):
    if err is None:
        _set(gc, 'Accepted', 'True', 'Accepted',
             f'GatewayClass is managed by controller {config.CONTROLLER_NAME}')
    else:
        _set(gc, 'Accepted', 'False', 'InvalidParameters', str(err))


## ######################################################################
# Gateway

def init_gateway_status(gw):
    "Reset the gateway status before rendering its listeners."
    _set(gw, 'Accepted', 'True', 'Accepted', 'Gateway is accepted')
    if get_condition(gw, 'Programmed') is None:
        _set(gw, 'Programmed', 'Unknown', 'Pending', 'Waiting for controller')
    gw.status.setdefault('listeners', [])


def set_gateway_programmed(gw, addr, all_listeners_ok, all_addrs_found=True):
    """Programmed is True iff every listener got rendered and has a public
    address.  ADDR is the address published in the status or None,
    ALL_ADDRS_FOUND is False if some listener has no public address."""
    if addr is not None:
        gw.status.addresses = [Munch(type=addr.type, value=addr.addr)]
    else:
        gw.status.addresses = []

    if addr is None or not all_addrs_found:
        _set(gw, 'Programmed', 'False', 'AddressNotAssigned',
             'Public address not found')
    elif not all_listeners_ok:
        _set(gw, 'Programmed', 'False', 'Invalid',
             'One or more listeners could not be rendered')
    else:
        _set(gw, 'Programmed', 'True', 'Programmed',
             f'Dataplane configuration successfully rendered '
             f'(public address: {addr.addr})')


def set_gateway_invalidated(gw, err):
    _set(gw, 'Programmed', 'False', 'Invalid', str(err))
    gw.status.addresses = []


def _previous_listener_status(gw, name):
    for ls in gw.get('status', {}).get('listeners') or []:
        if ls.get('name') == name:
            return ls
    return Munch(name=name)


def listener_status(gw, listener, err=None, conflicted=False,
                    attached_routes=0):
    "Build the status of LISTENER; ERR is the error that made us skip it."
    prev = _previous_listener_status(gw, listener.get('name'))
    conds = prev.get('conditions')
    if err is None and not conflicted:
        conds = set_condition(conds, gw, 'Accepted', 'True', 'Accepted',
                              'Listener is accepted')
    elif conflicted:
        conds = set_condition(conds, gw, 'Accepted', 'False',
                              'PortUnavailable', str(err or ''))
    else:
        conds = set_condition(conds, gw, 'Accepted', 'False',
                              'UnsupportedProtocol', str(err))
    if conflicted:
        conds = set_condition(conds, gw, 'Conflicted', 'True',
                              'ProtocolConflict',
                              'Listener protocol/port conflicts with '
                              'another listener')
    else:
        conds = set_condition(conds, gw, 'Conflicted', 'False',
                              'NoConflicts', 'No conflicts')
    conds = set_condition(conds, gw, 'ResolvedRefs', 'True', 'ResolvedRefs',
                          'Listener object references resolved')
    return Munch(
        name=listener.get('name'),
        supportedKinds=[Munch(group=config.GROUP, kind='UDPRoute')],
        attachedRoutes=attached_routes,
        conditions=conds,
    )
