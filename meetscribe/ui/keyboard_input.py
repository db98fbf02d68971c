"""Single-key recording controls read from the terminal on a background thread."""

import sys
import time
import threading
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

KeyReader = Callable[[], Optional[str]]


class KeyboardInputHandler:
    """Reads single keypresses without waiting for Enter."""

    def __init__(self, callback: Callable[[str], bool],
                 key_reader: Optional[KeyReader] = None,
                 poll_interval: float = 0.1):
        """Initialize keyboard handler.

        Args:
            callback: Takes a lower-cased key, returns True to keep reading, False to stop
            key_reader: Returns the next key or None; defaults to the terminal
            poll_interval: Seconds to wait for a key before checking for stop()
        """
        self.callback = callback
        self.key_reader = key_reader
        self.poll_interval = poll_interval
        self.running = False
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._input_loop, daemon=True)
        self.thread.start()
        logger.info("Keyboard input handler started")

    def stop(self) -> None:
        self.running = False
        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=1.0)
        logger.info("Keyboard input handler stopped")

    def _input_loop(self) -> None:
        if self.key_reader is not None:
            self._read_keys(self.key_reader)
        elif not sys.stdin.isatty():
            logger.warning("stdin is not a terminal; keyboard controls disabled")
        elif sys.platform == "win32":
            self._read_keys(self._get_key_windows)
        else:
            self._read_keys_unix()
        self.running = False
        logger.info("Keyboard input loop ended")

    def _read_keys(self, read_key: KeyReader) -> None:
        while self.running:
            key = read_key()
            if not key:
                continue
            logger.debug(f"Key pressed: {key!r}")
            if not self.callback(key.lower()):
                break

    def _read_keys_unix(self) -> None:
        import termios
        import tty

        fd = sys.stdin.fileno()
        try:
            old_settings = termios.tcgetattr(fd)
            # cbreak keeps Ctrl+C delivering SIGINT
            tty.setcbreak(fd)
        except termios.error as e:
            logger.warning(f"Cannot switch terminal to single-key input: {e}")
            return

        try:
            self._read_keys(self._get_key_unix)
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)

    def _get_key_unix(self) -> Optional[str]:
        import select

        if select.select([sys.stdin], [], [], self.poll_interval)[0]:
            return sys.stdin.read(1)
        return None

    def _get_key_windows(self) -> Optional[str]:
        import msvcrt

        if msvcrt.kbhit():
            return msvcrt.getwch()
        time.sleep(self.poll_interval)
        return None
