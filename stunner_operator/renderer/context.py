# context.py: State of a single unit of rendering work

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

from ..event import Update
from ..util import logger


def _key(obj):
    return obj.key if obj is not None else None


class RenderContext(object):
    """Targets of one unit of work plus the update queue it fills.

    STORE is the object cache shared by all resolvers, CONF the runtime
    settings. GC is the gateway class being rendered, GWS the gateways in
    scope (all gateways of the class in legacy mode, a single one in
    managed mode).
    """

    def __init__(self, store, conf, gc, generation=0, gws=None, log=None):
        self.store = store
        self.conf = conf
        self.gc = gc
        self.gw_conf = None
        self.dp = None
        self.gws = list(gws or [])
        self.generation = generation
        self.update = Update(generation)
        self.log = logger.GenerationAdapter(
            log or logger.getLogger(__name__), {'generation': generation})

    def merge(self, other):
        "Merge the update queue of OTHER, both must target the same class."
        if _key(self.gc) != _key(other.gc):
            raise RuntimeError(
                f'Cannot merge render contexts of different gateway classes: '
                f'{_key(self.gc)} vs {_key(other.gc)}')
        if self.gw_conf is not None and other.gw_conf is not None and \
           _key(self.gw_conf) != _key(other.gw_conf):
            raise RuntimeError(
                f'Cannot merge render contexts of different gateway configs: '
                f'{_key(self.gw_conf)} vs {_key(other.gw_conf)}')
        self.update.merge(other.update)
        if self.gw_conf is None:
            self.gw_conf = other.gw_conf
        return self

    def __str__(self):
        gws = ','.join(gw.key for gw in self.gws)
        return f'RenderContext(gc={_key(self.gc)}, gws=[{gws}])'
