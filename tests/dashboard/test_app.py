import asyncio
import copy
import threading
import time
from collections import deque

import pytest

from tourney.config.loader import DEFAULT_CONFIG
from tourney.dashboard.app import DashboardApp
from tourney.dashboard.kinds import OperationKind, OperationStatus
from tourney.services.simulated import SimulatedOperation, SimulatedRefresher, build_simulated_services
from tourney.ui.keyboard_listener import InputStrategy


class ScriptedInput(InputStrategy):
    """Feeds keys pushed by the test; blocks for the poll timeout when empty."""

    name = "scripted"

    def __init__(self):
        self.keys = deque()
        self.opened = False
        self.closed = False
        self._available = threading.Event()

    def push(self, *keys):
        self.keys.extend(keys)
        self._available.set()

    def open(self):
        self.opened = True

    def read_key(self, timeout):
        if not self.keys:
            self._available.clear()
            self._available.wait(timeout)
        return self.keys.popleft() if self.keys else None

    def close(self):
        self.closed = True


def _config(**dashboard):
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['dashboard'].update(
        fast_refresh_interval=0.02,
        slow_refresh_interval=0.05,
        render_tick=0.01,
        monitor_poll_interval=0.1,
        **dashboard
    )
    config['simulation'].update(step_delay=0.001, steps=3)
    return config


@pytest.mark.integration
@pytest.mark.asyncio
async def test_keys_drive_operations_and_quit_stops_everything(renderer, wait_until):
    config = _config()
    services, refresher = build_simulated_services(config)
    keyboard = ScriptedInput()
    app = DashboardApp(config, renderer, services, refresher, input_strategy=keyboard)

    run_task = asyncio.create_task(app.run())
    assert await wait_until(lambda: app.listener.is_alive)

    keyboard.push('d')
    assert await wait_until(
        lambda: app.tracker.get(OperationKind.TRAINING).status is OperationStatus.COMPLETE
    )
    assert app.tracker.get(OperationKind.DOWNLOAD).status is OperationStatus.COMPLETE
    assert app.auto_train.cycles_fired == 1

    keyboard.push('q')
    assert await asyncio.wait_for(run_task, timeout=3.0) == 0

    assert app.state.running is False
    assert not app.listener.is_alive
    assert keyboard.opened and keyboard.closed
    assert renderer.started and renderer.stopped
    assert renderer.snapshots[-1].running is False
    assert app.event_bus.is_processing is False


@pytest.mark.integration
@pytest.mark.asyncio
async def test_loops_exit_within_150ms_of_quit(renderer, wait_until):
    config = _config()

    async def idle(callbacks):
        await asyncio.sleep(0)

    app = DashboardApp(
        config, renderer, {kind: idle for kind in OperationKind}, enable_input=False
    )
    run_task = asyncio.create_task(app.run())
    assert await wait_until(lambda: renderer.calls > 0)

    # Quit arrives from the keyboard thread
    quit_at = []
    thread = threading.Thread(target=lambda: (quit_at.append(time.monotonic()), app.dispatcher.handle_key('q')))
    thread.start()
    thread.join(timeout=1.0)

    assert await wait_until(
        lambda: app._monitor_task.done() and app._render_task.done(), timeout=1.0, interval=0.005
    )
    assert time.monotonic() - quit_at[0] < 0.15
    await asyncio.wait_for(run_task, timeout=2.0)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_render_cadence_follows_activity(renderer, wait_until):
    config = _config()
    release = asyncio.Event()

    async def training(callbacks):
        callbacks.progress(10.0)
        await release.wait()

    app = DashboardApp(config, renderer, {OperationKind.TRAINING: training}, enable_input=False)
    run_task = asyncio.create_task(app.run())
    assert await wait_until(lambda: renderer.calls > 0)
    assert app.state.refresh_interval == 0.05

    app.dispatcher.handle_key('t')
    assert await wait_until(lambda: app.state.refresh_interval == 0.02)

    release.set()
    assert await wait_until(lambda: app.state.refresh_interval == 0.05)

    app.dispatcher.handle_key('q')
    await asyncio.wait_for(run_task, timeout=2.0)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_renderer_failure_does_not_stop_dashboard(make_renderer, wait_until):
    renderer = make_renderer(fail_on=1)
    config = _config()
    app = DashboardApp(config, renderer, {}, SimulatedRefresher(delay=0.001), enable_input=False)
    run_task = asyncio.create_task(app.run())

    assert await wait_until(lambda: renderer.calls >= 3)
    app.dispatcher.handle_key('r')
    assert await wait_until(
        lambda: any(e.message.startswith("Model performances refreshed") for e in app.state.events.all())
    )

    app.dispatcher.handle_key('q')
    await asyncio.wait_for(run_task, timeout=2.0)
    assert app.scheduler.failure_count == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_operation_is_reported(renderer, wait_until):
    config = _config()
    services = {
        OperationKind.UPLOAD: SimulatedOperation(
            OperationKind.UPLOAD, steps=4, step_delay=0.001, fail_after=1,
            error=ConnectionError("submission endpoint unreachable")
        )
    }
    app = DashboardApp(config, renderer, services, enable_input=False)
    run_task = asyncio.create_task(app.run())

    app.dispatcher.handle_key('u')
    assert await wait_until(
        lambda: app.tracker.get(OperationKind.UPLOAD).status is OperationStatus.FAILED
    )
    errors = [e for e in app.state.events.all() if e.kind == 'error']
    assert errors[-1].message == "Upload failed: submission endpoint unreachable"
    assert errors[-1].category == 'network'

    app.state.stop()
    await asyncio.wait_for(run_task, timeout=2.0)


class SlowCloseInput(ScriptedInput):
    """Takes a while to release the terminal, like a slow tcsetattr drain."""

    def __init__(self, ticks):
        super().__init__()
        self.ticks = ticks
        self.ticks_while_closing = None

    def close(self):
        before = len(self.ticks)
        time.sleep(0.5)
        self.ticks_while_closing = len(self.ticks) - before
        super().close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_shutdown_keeps_event_loop_responsive_while_listener_stops(renderer, wait_until):
    ticks = []
    keyboard = SlowCloseInput(ticks)
    app = DashboardApp(_config(), renderer, {}, input_strategy=keyboard)

    run_task = asyncio.create_task(app.run())
    assert await wait_until(lambda: app.listener.is_alive)

    async def ticker():
        while True:
            ticks.append(time.monotonic())
            await asyncio.sleep(0.01)

    ticker_task = asyncio.create_task(ticker())
    app.state.stop()
    await asyncio.wait_for(run_task, timeout=3.0)
    ticker_task.cancel()

    assert keyboard.closed
    assert keyboard.ticks_while_closing >= 25
