import asyncio
from unittest.mock import MagicMock

import pytest

from tourney.dashboard.auto_train import AutoTrainCoordinator
from tourney.dashboard.commands import CommandDispatcher, InputMode, KEY_BINDINGS, ESCAPE
from tourney.dashboard.kinds import OperationKind, OperationStatus
from tourney.dashboard.operations import OperationController


@pytest.fixture
def controller():
    controller = MagicMock(spec=OperationController)
    controller.tracker = MagicMock()
    return controller


@pytest.fixture
def dispatcher(state, controller):
    coordinator = AutoTrainCoordinator(state, controller.trigger_training)
    return CommandDispatcher(state, controller, coordinator)


@pytest.mark.unit
@pytest.mark.parametrize("key,kind", [
    ('d', OperationKind.DOWNLOAD),
    ('D', OperationKind.DOWNLOAD),
    ('u', OperationKind.UPLOAD),
    ('s', OperationKind.TRAINING),
    ('t', OperationKind.TRAINING),
    ('p', OperationKind.PREDICTION),
])
def test_operation_keys_trigger_controller(dispatcher, controller, key, kind):
    assert dispatcher.handle_key(key) is True
    controller.trigger.assert_called_once_with(kind)


@pytest.mark.unit
def test_refresh_key(dispatcher, controller):
    dispatcher.handle_key('r')
    controller.refresh.assert_called_once_with()


@pytest.mark.unit
def test_quit_clears_running_flag(dispatcher, state):
    assert state.running is True
    dispatcher.handle_key('q')
    assert state.running is False
    assert state.events.recent(1)[0].message == "Shutting down..."


@pytest.mark.unit
def test_uppercase_quit(dispatcher, state):
    dispatcher.handle_key('Q')
    assert state.running is False


@pytest.mark.unit
def test_unbound_keys_and_escape_sequences_are_ignored(dispatcher, controller, state):
    before = state.events.total_appended
    assert dispatcher.handle_key('x') is False
    assert dispatcher.handle_key('') is False
    assert dispatcher.handle_key('\x1b[A') is False
    assert state.events.total_appended == before
    controller.trigger.assert_not_called()


@pytest.mark.unit
def test_help_lists_bindings_and_auto_train_status(dispatcher, state):
    dispatcher.handle_key('h')
    messages = [e.message for e in state.events.all()]
    assert "q - Quit" in messages
    assert "p - Make predictions" in messages
    assert messages[-1] == "Auto-train ON: 0/3 artifacts ready"


@pytest.mark.unit
def test_every_binding_has_a_handler(dispatcher):
    for key, (label, handler) in KEY_BINDINGS.items():
        assert callable(getattr(dispatcher, handler)), key


@pytest.mark.unit
def test_command_mode_suppresses_single_keys(dispatcher, controller, state):
    dispatcher.handle_key('/')
    assert dispatcher.mode is InputMode.COMMAND
    assert state.events.recent(1)[0].message == "Command mode activated - type command and press Enter"

    for char in 'dq':
        dispatcher.handle_key(char)

    controller.trigger.assert_not_called()
    assert state.running is True
    assert state.modal.command_buffer == 'dq'


@pytest.mark.unit
def test_command_mode_executes_on_enter(dispatcher, controller, state):
    for char in '/train':
        dispatcher.handle_key(char)
    dispatcher.handle_key('\r')

    controller.trigger.assert_called_once_with(OperationKind.TRAINING)
    assert dispatcher.mode is InputMode.NORMAL
    assert state.modal.command_buffer == ""


@pytest.mark.unit
def test_command_mode_backspace_and_escape(dispatcher, controller, state):
    for char in '/dowx':
        dispatcher.handle_key(char)
    dispatcher.handle_key('\x7f')
    assert state.modal.command_buffer == 'dow'

    dispatcher.handle_key(ESCAPE)
    assert dispatcher.mode is InputMode.NORMAL
    assert state.events.recent(1)[0].message == "Command cancelled"
    controller.trigger.assert_not_called()


@pytest.mark.unit
def test_unknown_command_warns(dispatcher, state):
    assert dispatcher.execute_command("launch rockets") is False
    last = state.events.recent(1)[0]
    assert last.kind == 'warning'
    assert last.message == "Unknown command: launch rockets"


@pytest.mark.unit
def test_autotrain_command_toggles(dispatcher, state):
    assert dispatcher.execute_command("autotrain off") is True
    assert state.auto_train.enabled is False
    dispatcher.execute_command("autotrain on")
    assert state.auto_train.enabled is True


@pytest.mark.unit
def test_reset_command_usage(dispatcher, controller, state):
    assert dispatcher.execute_command("reset") is False
    assert state.events.recent(1)[0].message.startswith("Usage: reset")

    controller.tracker.reset.return_value = True
    assert dispatcher.execute_command("reset download") is True
    controller.tracker.reset.assert_called_once_with(OperationKind.DOWNLOAD)


@pytest.mark.unit
def test_wizard_mode_suppresses_keys_until_escape(dispatcher, controller, state):
    dispatcher.handle_key('n')
    assert dispatcher.mode is InputMode.WIZARD

    dispatcher.handle_key('d')
    dispatcher.handle_key('q')
    controller.trigger.assert_not_called()
    assert state.running is True

    dispatcher.handle_key(ESCAPE)
    assert dispatcher.mode is InputMode.NORMAL
    assert state.events.recent(1)[0].message == "Wizard cancelled"

    dispatcher.handle_key('d')
    controller.trigger.assert_called_once_with(OperationKind.DOWNLOAD)


@pytest.mark.unit
def test_wizard_handler_receives_keys_and_can_finish(state, controller):
    seen = []

    def wizard(char):
        seen.append(char)
        return char == '\r'

    dispatcher = CommandDispatcher(state, controller, wizard_handler=wizard)
    for char in 'nab\r':
        dispatcher.handle_key(char)

    assert seen == ['a', 'b', '\r']
    assert dispatcher.mode is InputMode.NORMAL


@pytest.mark.unit
def test_mode_switch_requests_render(dispatcher, state):
    state.consume_render_request()
    dispatcher.handle_key('/')
    assert state.consume_render_request() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_download_key_twice_keeps_single_run(state, tracker, event_bus):
    release = asyncio.Event()

    async def download(callbacks):
        await release.wait()

    controller = OperationController(state, tracker, event_bus, {OperationKind.DOWNLOAD: download})
    controller.attach(asyncio.get_running_loop())
    dispatcher = CommandDispatcher(state, controller)

    dispatcher.handle_key('d')
    dispatcher.handle_key('d')

    assert tracker.get(OperationKind.DOWNLOAD).status is OperationStatus.RUNNING
    assert tracker.get(OperationKind.DOWNLOAD).run_id == 1
    warnings = [e for e in state.events.all() if e.kind == 'warning']
    assert [w.message for w in warnings] == ["Download already in progress"]

    release.set()
    await controller.wait_for_operations(timeout=1.0)
