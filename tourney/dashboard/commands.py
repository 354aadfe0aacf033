"""
Single-keystroke command dispatch

Maps one input character to a dashboard action. Normal mode executes the key
immediately, no Enter required. Command mode ('/') collects a line and runs it
on Enter; wizard mode ('n') hands keys to the wizard until Escape. While a
sub-mode is active every normal key binding is suppressed.
"""

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from tourney.dashboard.auto_train import AutoTrainCoordinator
from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.operations import OperationController
from tourney.dashboard.state import DashboardState

logger = logging.getLogger(__name__)

ESCAPE = '\x1b'
ENTER_KEYS = ('\r', '\n')
BACKSPACE_KEYS = ('\b', '\x7f')
MAX_COMMAND_LENGTH = 64


class InputMode(Enum):
    """Dispatcher modes."""
    NORMAL = "normal"
    COMMAND = "command"
    WIZARD = "wizard"


# Single source of truth for normal-mode key bindings
# Format: key -> (label, handler method name)
KEY_BINDINGS: Dict[str, Tuple[str, str]] = {
    'q': ("Quit", "_quit"),
    'd': ("Download data", "_download"),
    'u': ("Upload predictions", "_upload"),
    's': ("Start training", "_train"),
    't': ("Start training", "_train"),
    'p': ("Make predictions", "_predict"),
    'r': ("Refresh performances", "_refresh"),
    'h': ("Show this help", "_help"),
    'n': ("New model wizard", "_wizard"),
    '/': ("Command mode", "_enter_command_mode"),
}

HELP_LINES = (
    "Instant commands (no Enter required):",
    "q - Quit",
    "d - Download data",
    "u - Upload predictions",
    "s/t - Start training",
    "p - Make predictions",
    "r - Refresh performances",
    "n - New model wizard",
    "h - Show this help",
    "/ - Command mode (download, upload, train, predict, refresh, autotrain on|off, reset <op>, quit)",
)

# Command-mode words -> operation kinds
_COMMAND_KINDS = {
    'download': OperationKind.DOWNLOAD,
    'upload': OperationKind.UPLOAD,
    'submit': OperationKind.UPLOAD,
    'train': OperationKind.TRAINING,
    'training': OperationKind.TRAINING,
    'predict': OperationKind.PREDICTION,
    'prediction': OperationKind.PREDICTION,
}

WizardHandler = Callable[[str], bool]


class CommandDispatcher:
    """
    Dispatches single characters to dashboard actions

    The dispatcher never mutates operation state itself: every operation start
    goes through OperationController.trigger, which owns idempotence and
    event logging.

    Example:
        dispatcher = CommandDispatcher(state, controller, auto_train)
        dispatcher.handle_key('d')   # starts a download
        dispatcher.handle_key('D')   # warning: download already in progress
        dispatcher.handle_key('q')   # running = False
    """

    def __init__(
        self,
        state: DashboardState,
        controller: OperationController,
        auto_train: Optional[AutoTrainCoordinator] = None,
        wizard_handler: Optional[WizardHandler] = None
    ):
        """
        Initialize dispatcher

        Args:
            state: Shared dashboard state
            controller: Trigger surface for operations
            auto_train: Optional coordinator for the autotrain command
            wizard_handler: Optional callable receiving keys while the wizard is
                active; returns True when the wizard has finished
        """
        self.state = state
        self.controller = controller
        self.auto_train = auto_train
        self.wizard_handler = wizard_handler

    @property
    def mode(self) -> InputMode:
        modal = self.state.modal
        if modal.command_mode:
            return InputMode.COMMAND
        if modal.wizard_active:
            return InputMode.WIZARD
        return InputMode.NORMAL

    def handle_key(self, char: str) -> bool:
        """
        Handle one input character

        Args:
            char: Single character read from the terminal

        Returns:
            True if the key was consumed
        """
        if not char:
            return False
        if len(char) > 1:
            # Multi-character escape sequences (arrow keys etc.) are not bound
            logger.debug(f"Ignoring escape sequence: {char!r}")
            return False

        mode = self.mode
        if mode is InputMode.COMMAND:
            return self._handle_command_key(char)
        if mode is InputMode.WIZARD:
            return self._handle_wizard_key(char)

        # '/' is matched literally, everything else case-folded
        key = char if char == '/' else char.lower()
        binding = KEY_BINDINGS.get(key)
        if binding is None:
            logger.debug(f"Unbound key: {char!r}")
            return False

        label, handler_name = binding
        logger.debug(f"Key '{key}': {label}")
        getattr(self, handler_name)()
        return True

    # ========================================================================
    # Normal mode actions
    # ========================================================================

    def _quit(self) -> None:
        self.state.events.info("Shutting down...")
        self.state.stop()

    def _download(self) -> None:
        self.controller.trigger(OperationKind.DOWNLOAD)

    def _upload(self) -> None:
        self.controller.trigger(OperationKind.UPLOAD)

    def _train(self) -> None:
        self.controller.trigger(OperationKind.TRAINING)

    def _predict(self) -> None:
        self.controller.trigger(OperationKind.PREDICTION)

    def _refresh(self) -> None:
        self.controller.refresh()

    def _help(self) -> None:
        for line in HELP_LINES:
            self.state.events.info(line)
        if self.auto_train is not None:
            status = self.auto_train.describe()
            if status:
                self.state.events.info(status)

    def _wizard(self) -> None:
        self.state.update_modal(wizard_active=True)
        self.state.events.info("Starting model creation wizard (Esc to cancel)")

    def _enter_command_mode(self) -> None:
        self.state.update_modal(command_mode=True, command_buffer="")
        self.state.events.info("Command mode activated - type command and press Enter")

    # ========================================================================
    # Sub-modes
    # ========================================================================

    def _handle_command_key(self, char: str) -> bool:
        buffer = self.state.modal.command_buffer

        if char in ENTER_KEYS:
            self.state.update_modal(command_mode=False, command_buffer="")
            self.execute_command(buffer)
        elif char == ESCAPE:
            self.state.update_modal(command_mode=False, command_buffer="")
            self.state.events.info("Command cancelled")
        elif char in BACKSPACE_KEYS:
            if buffer:
                self.state.update_modal(command_buffer=buffer[:-1])
        elif char.isprintable() and len(buffer) < MAX_COMMAND_LENGTH:
            self.state.update_modal(command_buffer=buffer + char)
        return True

    def _handle_wizard_key(self, char: str) -> bool:
        if char == ESCAPE:
            self.state.update_modal(wizard_active=False)
            self.state.events.info("Wizard cancelled")
            return True

        if self.wizard_handler is None:
            return True

        try:
            finished = self.wizard_handler(char)
        except Exception as e:
            logger.error(f"Wizard handler failed: {e}", exc_info=True)
            self.state.events.error(f"Wizard error: {e}", category='wizard')
            finished = True
        if finished:
            self.state.update_modal(wizard_active=False)
        return True

    def execute_command(self, text: str) -> bool:
        """
        Run a command-mode line

        Args:
            text: Command text without the leading '/'

        Returns:
            True if the command was recognized
        """
        words = text.strip().lower().split()
        if not words:
            return False

        name, args = words[0], words[1:]
        logger.debug(f"Executing command: {text.strip()}")

        if name in _COMMAND_KINDS:
            self.controller.trigger(_COMMAND_KINDS[name])
        elif name == 'refresh':
            self.controller.refresh()
        elif name == 'help':
            self._help()
        elif name in ('quit', 'exit'):
            self._quit()
        elif name == 'autotrain':
            return self._autotrain_command(args)
        elif name == 'reset':
            return self._reset_command(args)
        else:
            self.state.events.warning(f"Unknown command: {text.strip()}")
            return False
        return True

    def _autotrain_command(self, args) -> bool:
        if self.auto_train is None:
            self.state.events.warning("Auto-training is not available")
            return False
        if args and args[0] in ('on', 'off'):
            self.auto_train.set_enabled(args[0] == 'on')
            return True
        status = self.auto_train.describe()
        self.state.events.info(status or "Auto-train: no required artifacts configured")
        return True

    def _reset_command(self, args) -> bool:
        kind = _COMMAND_KINDS.get(args[0]) if args else None
        if kind is None:
            self.state.events.warning("Usage: reset download|upload|train|predict")
            return False
        if not self.controller.tracker.reset(kind):
            self.state.events.warning(f"{kind.label} cannot be reset while {self.controller.tracker.get(kind).status.value}")
            return False
        return True
