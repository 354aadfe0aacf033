"""
Keyboard listener for non-blocking single-key dashboard commands

Reads the terminal one character at a time in a background thread and hands
each key to the command dispatcher without waiting for Enter. How keys are
read is decided once, when the listener starts, by an input strategy:

- RawTerminalInput: unbuffered, no-echo (cbreak) terminal mode, polled with select
- LineBufferedInput: documented fallback when raw mode is unavailable; keys
  take effect after Enter
"""

import atexit
import logging
import os
import select
import sys
import threading
import time
from collections import deque
from typing import Optional, Deque, Callable

from tourney.dashboard.errors import InputSetupFailure

if sys.platform != "win32":
    import termios
    import tty
else:
    termios = None
    tty = None

logger = logging.getLogger(__name__)

ESCAPE = '\x1b'
DEFAULT_POLL_INTERVAL = 0.01
INPUT_MODES = ('auto', 'raw', 'line')


class InputStrategy:
    """Interface for reading the next key from a terminal or stream."""

    name = "base"

    def open(self) -> None:
        """Acquire the input resource. Raises InputSetupFailure on failure."""

    def read_key(self, timeout: float) -> Optional[str]:
        """Return the next key, or None if nothing arrived within timeout."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the input resource. Must be safe to call more than once."""

    @property
    def exhausted(self) -> bool:
        """True once the underlying stream has reached end of file."""
        return False


class RawTerminalInput(InputStrategy):
    """
    Character-at-a-time input from a TTY

    The terminal is switched to cbreak mode (no line buffering, no echo) on
    open() and restored on close(). Restoration is also registered with atexit
    so an abnormal exit does not leave the terminal unusable. Escape sequences
    (arrow keys) are returned as one multi-character key.
    """

    name = "raw"

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self._fd: Optional[int] = None
        self._old_settings = None
        self._eof = False

    def open(self) -> None:
        if termios is None:
            raise InputSetupFailure(f"raw terminal input not supported on {sys.platform}")

        try:
            if not self.stream.isatty():
                raise InputSetupFailure("stdin is not a TTY")
            self._fd = self.stream.fileno()
            self._old_settings = termios.tcgetattr(self._fd)
            tty.setcbreak(self._fd)
        except InputSetupFailure:
            raise
        except (termios.error, OSError, ValueError) as e:
            self._old_settings = None
            raise InputSetupFailure(f"could not enable raw terminal mode: {e}") from e

        atexit.register(self.close)
        logger.debug("Terminal switched to cbreak mode")

    def read_key(self, timeout: float) -> Optional[str]:
        if self._fd is None or self._eof:
            return None

        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return None

        data = os.read(self._fd, 1)
        if not data:
            self._eof = True
            return None
        data += self._read_continuation(data[0])
        char = data.decode('utf-8', errors='replace')

        if char == ESCAPE:
            # Collect the rest of an escape sequence if one follows immediately
            ready, _, _ = select.select([self._fd], [], [], 0.01)
            if ready:
                char += os.read(self._fd, 2).decode('utf-8', errors='replace')
        return char

    def _read_continuation(self, lead: int) -> bytes:
        """Read the remaining bytes of a multi-byte UTF-8 character."""
        if lead >= 0xF0:
            remaining = 3
        elif lead >= 0xE0:
            remaining = 2
        elif lead >= 0xC0:
            remaining = 1
        else:
            return b''

        data = b''
        while len(data) < remaining:
            ready, _, _ = select.select([self._fd], [], [], 0.01)
            if not ready:
                break
            chunk = os.read(self._fd, remaining - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def close(self) -> None:
        if self._old_settings is not None and self._fd is not None:
            try:
                termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)
                logger.debug("Terminal settings restored")
            except (termios.error, OSError) as e:
                logger.error(f"Error restoring terminal settings: {e}")
            finally:
                self._old_settings = None
                atexit.unregister(self.close)

    @property
    def exhausted(self) -> bool:
        return self._eof


class LineBufferedInput(InputStrategy):
    """
    Fallback input that reads whole lines and yields their characters

    Used when raw mode cannot be enabled (no controlling terminal, piped stdin,
    unsupported platform). Keys take effect once Enter is pressed, and the
    Enter itself is delivered as '\n' so command mode can finish its line.

    Streams that select() cannot poll (Windows consoles) are read with a
    blocking readline; the listener thread is a daemon, so a pending read
    does not keep the process alive.
    """

    name = "line"

    def __init__(self, stream=None):
        self.stream = stream if stream is not None else sys.stdin
        self._pending: Deque[str] = deque()
        self._eof = False
        self._blocking = sys.platform == "win32"

    def _has_input(self, timeout: float) -> bool:
        if self._blocking:
            return True
        try:
            fd = self.stream.fileno()
        except (AttributeError, OSError, ValueError):
            # In-memory streams never block
            return True
        try:
            ready, _, _ = select.select([fd], [], [], timeout)
        except (OSError, ValueError) as e:
            logger.debug(f"Input stream cannot be polled ({e}) - using blocking reads")
            self._blocking = True
            return True
        return bool(ready)

    def read_key(self, timeout: float) -> Optional[str]:
        if self._pending:
            return self._pending.popleft()
        if self._eof or not self._has_input(timeout):
            return None

        line = self.stream.readline()
        if line == '':
            self._eof = True
            logger.debug("Line input reached end of file")
            return None

        self._pending.extend(line.rstrip('\r\n'))
        if line.endswith('\n'):
            self._pending.append('\n')
        return self._pending.popleft() if self._pending else None

    @property
    def exhausted(self) -> bool:
        return self._eof and not self._pending


class KeyboardListener:
    """
    Background keyboard reader feeding the command dispatcher

    Runs a daemon thread that polls the selected input strategy, checks the
    dashboard running flag on every poll and releases the terminal on exit.

    Example:
        listener = KeyboardListener(state, dispatcher.handle_key)
        listener.start()
        ...
        listener.stop()
    """

    def __init__(
        self,
        state,
        on_key: Callable[[str], object],
        mode: str = 'auto',
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stream=None,
        strategy: Optional[InputStrategy] = None
    ):
        """
        Initialize keyboard listener

        Args:
            state: Shared DashboardState (running flag and event log)
            on_key: Called synchronously with each key (CommandDispatcher.handle_key)
            mode: 'auto' (raw with line fallback), 'raw' or 'line'
            poll_interval: Maximum seconds to wait for input per poll
            stream: Input stream (default: sys.stdin)
            strategy: Explicit strategy, bypassing mode selection
        """
        if mode not in INPUT_MODES:
            raise ValueError(f"input mode must be one of {', '.join(INPUT_MODES)}, got {mode!r}")

        self.state = state
        self.on_key = on_key
        self.mode = mode
        self.poll_interval = poll_interval
        self.stream = stream
        self.strategy: Optional[InputStrategy] = strategy

        self._listener_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.degraded = False

    def _select_strategy(self) -> InputStrategy:
        if self.strategy is not None:
            self.strategy.open()
            return self.strategy

        if self.mode in ('auto', 'raw'):
            raw = RawTerminalInput(self.stream)
            try:
                raw.open()
                return raw
            except InputSetupFailure as e:
                self.degraded = True
                logger.warning(f"Raw keyboard input unavailable ({e}) - using line-buffered input")
                self.state.events.warning(
                    f"Raw keyboard input unavailable ({e}) - press Enter after each key",
                    category='input'
                )

        line = LineBufferedInput(self.stream)
        line.open()
        return line

    def start(self) -> bool:
        """
        Select the input strategy and start the listener thread

        Returns:
            True if the listener started
        """
        try:
            self.strategy = self._select_strategy()
        except InputSetupFailure as e:
            logger.warning(f"Keyboard input disabled: {e}")
            self.state.events.warning(f"Keyboard input disabled: {e}", category='input')
            return False

        self._stop_event.clear()
        self._listener_thread = threading.Thread(
            target=self._listen_loop, name="keyboard-listener", daemon=True
        )
        self._listener_thread.start()
        logger.info(f"Keyboard listener started ({self.strategy.name} input)")
        return True

    def _listen_loop(self) -> None:
        strategy = self.strategy
        try:
            while self.state.running and not self._stop_event.is_set():
                key = strategy.read_key(self.poll_interval)
                if key is None:
                    if strategy.exhausted:
                        time.sleep(self.poll_interval)
                    continue
                self._handle_key(key)

        except Exception as e:
            logger.error(f"Error in keyboard listener loop: {e}", exc_info=True)
            self.state.events.error(f"Keyboard input failed: {e}", category='input')
        finally:
            strategy.close()
            logger.debug("Keyboard listener loop exited")

    def _handle_key(self, key: str) -> None:
        try:
            self.on_key(key)
        except Exception as e:
            logger.error(f"Error handling key press {key!r}: {e}", exc_info=True)
            self.state.events.error(f"Command failed: {e}", category='input')

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the listener thread and wait for the terminal to be restored."""
        self._stop_event.set()
        if self._listener_thread and self._listener_thread.is_alive():
            self._listener_thread.join(timeout=timeout)
            if self._listener_thread.is_alive():
                logger.warning("Keyboard listener did not stop in time")
        logger.debug("Keyboard listener stopped")

    @property
    def is_alive(self) -> bool:
        return self._listener_thread is not None and self._listener_thread.is_alive()
