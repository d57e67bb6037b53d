"""
Unit Tests for the event handling and the render loop.
"""

import time
from unittest.mock import MagicMock

import kopf
import pytest
from munch import Munch

from stunner_operator import controller
from stunner_operator.event import Update
from stunner_operator.store import Store
from stunner_operator.util import resource

NS = 'testnamespace'


def gateway_class(name):
    return resource({'kind': 'GatewayClass', 'metadata': {'name': name}})


@pytest.fixture
def state(monkeypatch):
    s = Munch(store=Store(), loop=None)
    monkeypatch.setattr(controller, 'state', s)
    return s


# =============================================================================
# Event Tests
# =============================================================================


class TestHandleEvent:
    """Tests for controller.handle_event."""

    def test_upsert_and_delete(self, state, objs):
        controller.handle_event('ADDED', objs.svc)
        assert state.store.get('Service', NS, 'testservice-ok') is not None
        controller.handle_event('DELETED', objs.svc)
        assert state.store.get('Service', NS, 'testservice-ok') is None

    def test_request(self, state, objs):
        state.loop = MagicMock()
        state.loop.request.return_value = 7
        assert controller.handle_event('MODIFIED', objs.svc) == 7
        state.loop.request.assert_called_once_with(None)

    def test_gateway_class(self, state, objs):
        """A changed GatewayClass is rendered on its own."""
        state.loop = MagicMock()
        controller.handle_event('ADDED', objs.gc)
        gc = state.loop.request.call_args[0][0]
        assert gc.key == 'gatewayclass-ok'

        controller.handle_event('DELETED', objs.gc)
        state.loop.request.assert_called_with(None)

    def test_no_loop(self, state, objs):
        assert controller.handle_event('ADDED', objs.gw) is None
        assert state.store.len('Gateway') == 1


# =============================================================================
# Render Loop Tests
# =============================================================================


class TestRenderLoop:
    """Tests for controller.RenderLoop."""

    def test_request(self):
        loop = controller.RenderLoop(MagicMock(), MagicMock())
        assert loop.request() == 1
        assert loop.request() == 2
        assert loop.que.qsize() == 2

    def test_collect_all(self):
        loop = controller.RenderLoop(MagicMock(), MagicMock())
        loop.request(gateway_class('a'))
        loop.request()
        gen, classes, stop = loop._collect(loop.que.get())
        assert gen == 2
        assert classes == [None]
        assert not stop

    def test_collect_classes(self):
        """Requests for the same class are coalesced."""
        loop = controller.RenderLoop(MagicMock(), MagicMock())
        loop.request(gateway_class('b'))
        loop.request(gateway_class('a'))
        loop.request(gateway_class('b'))
        gen, classes, _ = loop._collect(loop.que.get())
        assert gen == 3
        assert [gc.key for gc in classes] == ['a', 'b']

    def test_collect_stop(self):
        loop = controller.RenderLoop(MagicMock(), MagicMock())
        loop.request()
        loop.que.put(None)
        gen, _, stop = loop._collect(loop.que.get())
        assert gen == 1
        assert stop

    def test_process(self):
        renderer, updater = MagicMock(), MagicMock()
        renderer.render.return_value = Update(4)
        loop = controller.RenderLoop(renderer, updater)
        loop.process(4, [None])
        renderer.render.assert_called_once_with(4, None)
        updater.apply.assert_called_once_with(renderer.render.return_value)

    def test_retry(self, monkeypatch):
        """A temporary error schedules a new render request."""
        timers = []

        class FakeTimer(object):
            def __init__(self, delay, fn, args=()):
                timers.append((delay, fn, args))
                self.daemon = False

            def start(self):
                pass
        monkeypatch.setattr(controller.threading, 'Timer', FakeTimer)

        updater = MagicMock()
        updater.apply.side_effect = kopf.TemporaryError('conflict', delay=3)
        loop = controller.RenderLoop(MagicMock(), updater)
        loop.process(1, [None])
        assert timers == [(3, loop.request, (None,))]

    def test_render_failure_retries(self, monkeypatch):
        """An unexpected error is logged and the render is requested again."""
        retries = []
        monkeypatch.setattr(controller.RenderLoop, 'retry',
                            lambda self, gc, delay: retries.append((gc, delay)))
        renderer, updater = MagicMock(), MagicMock()
        renderer.render.side_effect = RuntimeError('boom')
        loop = controller.RenderLoop(renderer, updater, retry_delay=2)
        loop.process(1, [None])
        assert retries == [(None, 2)]
        updater.apply.assert_not_called()

    def test_dispatcher_survives_render_failure(self, monkeypatch):
        monkeypatch.setattr(controller.RenderLoop, 'retry',
                            lambda self, gc, delay: None)
        renderer, updater = MagicMock(), MagicMock()
        update = Update(2)
        renderer.render.side_effect = [RuntimeError('boom'), update]
        loop = controller.RenderLoop(renderer, updater)
        loop.start()
        loop.request()
        for _ in range(500):
            if renderer.render.call_count:
                break
            time.sleep(0.01)
        loop.request()
        loop.stop(timeout=5)
        assert not loop.thread.is_alive()
        assert renderer.render.call_count == 2
        updater.apply.assert_called_once_with(update)

    def test_dispatcher(self):
        renderer, updater = MagicMock(), MagicMock()
        renderer.render.return_value = Update(1)
        loop = controller.RenderLoop(renderer, updater)
        loop.start()
        loop.request()
        loop.stop(timeout=5)
        assert not loop.thread.is_alive()
        renderer.render.assert_called_once_with(1, None)
