"""
Shared pytest fixtures and utilities for the tourney test suite.
"""

import asyncio
import time
from pathlib import Path
from typing import Dict, Any, Callable, List

import pytest
import yaml

from tourney.dashboard.state import DashboardState
from tourney.dashboard.tracker import OperationTracker
from tourney.ui.event_bus import EventBus

REQUIRED_ARTIFACTS = ['train.parquet', 'validation.parquet', 'live.parquet']


@pytest.fixture
def project_root() -> Path:
    """
    Repository root path for locating the example configuration.
    """
    return Path(__file__).resolve().parent.parent


@pytest.fixture
def state() -> DashboardState:
    """
    Dashboard state with the standard three required artifacts.
    """
    return DashboardState(max_events=100, required_artifacts=REQUIRED_ARTIFACTS)


@pytest.fixture
def tracker(state: DashboardState) -> OperationTracker:
    return OperationTracker(state)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[[Dict[str, Any]], Path]:
    """
    Create a config.yaml in a temp directory.

    Usage:
        path = make_config({"dashboard": {"max_events": 50}})
    """

    def _builder(overrides: Dict[str, Any] | None = None) -> Path:
        cfg_path = tmp_path / "config.yaml"
        cfg_path.write_text(yaml.safe_dump(overrides or {}))
        return cfg_path

    return _builder


class RecordingRenderer:
    """
    Renderer double that records every snapshot it is handed.
    """

    def __init__(self, fail_on: int | None = None):
        self.snapshots: List[Any] = []
        self.calls = 0
        self.fail_on = fail_on
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def render(self, snapshot) -> None:
        self.calls += 1
        if self.fail_on is not None and self.calls == self.fail_on:
            raise RuntimeError("terminal too small")
        self.snapshots.append(snapshot)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def make_renderer() -> Callable[..., RecordingRenderer]:
    """
    Factory for renderers that raise on a given call.

    Usage:
        renderer = make_renderer(fail_on=1)
    """
    return RecordingRenderer


def _messages(state: DashboardState) -> List[str]:
    return [event.message for event in state.events.all()]


@pytest.fixture
def event_messages() -> Callable[[DashboardState], List[str]]:
    """Every retained event message of a state, oldest first."""
    return _messages


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds or the timeout passes."""
    return _wait_until
