import argparse
import asyncio
import logging

import pytest

import tourney.cli as cli
from tourney.config.loader import ConfigError, DEFAULT_CONFIG
from tourney.dashboard.state import DashboardState
from tourney.ui.console_ui import ConsoleUI
from tourney.ui.event_log_handler import EventLogHandler
from tourney.ui.headless_logger import HeadlessLogger


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    services = logging.getLogger('tourney.services')
    saved = (root.handlers[:], root.level, services.handlers[:])
    yield
    root.handlers[:], services.handlers[:] = saved[0], saved[2]
    root.setLevel(saved[1])


def _config():
    import copy
    return copy.deepcopy(DEFAULT_CONFIG)


def test_create_parser_includes_flags():
    parser = cli.create_parser()
    args = parser.parse_args(["--ui", "headless", "--no-auto-train", "--input", "line", "--config", "x.yaml"])
    assert args.ui == "headless"
    assert args.no_auto_train is True
    assert args.input == "line"
    assert str(args.config) == "x.yaml"


def test_parser_defaults():
    args = cli.create_parser().parse_args([])
    assert args.ui == "rich"
    assert args.input is None
    assert args.no_auto_train is False


def test_main_handles_config_error(monkeypatch):
    def broken(path=None):
        raise ConfigError("bad config")

    monkeypatch.setattr(cli, "load_config", broken)
    assert cli.main([]) == 1


def test_main_applies_overrides_and_calls_runner(monkeypatch):
    called = {}

    async def fake_run_dashboard(config, args):
        called["config"] = config
        called["args"] = args
        return 0

    monkeypatch.setattr(cli, "load_config", lambda path=None: _config())
    monkeypatch.setattr(cli, "run_dashboard", fake_run_dashboard)

    assert cli.main(["--no-auto-train", "--input", "line"]) == 0
    assert called["config"]["auto_train"]["enabled"] is False
    assert called["config"]["input"]["mode"] == "line"


def test_main_keyboard_interrupt_returns_130(monkeypatch):
    async def interrupted(config, args):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "load_config", lambda path=None: _config())
    monkeypatch.setattr(cli, "run_dashboard", interrupted)
    assert cli.main([]) == 130


@pytest.mark.parametrize("ui,renderer_type", [("headless", HeadlessLogger), ("rich", ConsoleUI)])
def test_run_dashboard_selects_renderer(monkeypatch, restore_logging, ui, renderer_type):
    built = {}

    class FakeApp:
        def __init__(self, config, renderer, services, refresher, state=None):
            built["renderer"] = renderer
            built["state"] = state

        async def run(self):
            return 0

    monkeypatch.setattr(cli, "DashboardApp", FakeApp)
    args = argparse.Namespace(ui=ui)

    assert asyncio.run(cli.run_dashboard(_config(), args)) == 0
    assert isinstance(built["renderer"], renderer_type)
    assert isinstance(built["state"], DashboardState)


def test_setup_logging_interactive_routes_services_to_event_log(restore_logging):
    state = DashboardState()
    cli._setup_logging(_config(), dashboard_state=state)

    root_types = {type(h) for h in logging.getLogger().handlers}
    assert logging.StreamHandler not in root_types
    assert any(isinstance(h, EventLogHandler) for h in logging.getLogger('tourney.services').handlers)

    logging.getLogger('tourney.services.simulated').warning("Upload slow")
    assert state.events.recent(1)[0].message == "Upload slow"


def test_setup_logging_headless_uses_console_and_file(tmp_path, restore_logging):
    config = _config()
    config['logging']['file'] = str(tmp_path / "logs" / "tourney.log")
    cli._setup_logging(config)

    handlers = logging.getLogger().handlers
    assert any(type(h) is logging.StreamHandler for h in handlers)
    assert any(isinstance(h, logging.FileHandler) for h in handlers)
    assert (tmp_path / "logs").is_dir()
    for handler in handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()
