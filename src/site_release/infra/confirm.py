"""Confirmation strategies guarding destructive engine commands."""

from __future__ import annotations

import logging
import platform
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional, TextIO

from ..errors import UserAbort

logger = logging.getLogger(__name__)

_CTRL_C = "\x03"
_CTRL_D = "\x04"


class ConfirmationStrategy(ABC):
    """Decides whether a destructive action may proceed."""

    @abstractmethod
    def confirm(self) -> bool:
        """
        Ask for approval.

        Returns:
            True to proceed, False to abort. May raise UserAbort when the
            operator interrupts.
        """
        pass


class AutoApprove(ConfirmationStrategy):
    """Always proceeds. Used with ``--auto-approve`` and in tests."""

    def confirm(self) -> bool:
        logger.info("Auto-approving destructive action")
        return True


class AutoDeny(ConfirmationStrategy):
    """Always refuses. Useful for non-interactive runs."""

    def confirm(self) -> bool:
        logger.info("Refusing destructive action (non-interactive)")
        return False


class CallbackConfirmation(ConfirmationStrategy):
    """
    Confirmation that defers to a callback.
    Useful for GUI or web front-ends.
    """

    def __init__(self, callback: Callable[[], bool]) -> None:
        self.callback = callback

    def confirm(self) -> bool:
        return bool(self.callback())


def _read_posix_key(stream: TextIO) -> str:
    import termios
    import tty

    fd = stream.fileno()
    previous = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        return stream.read(1)
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, previous)


def _read_windows_key(stream: TextIO) -> str:
    import msvcrt

    return msvcrt.getwch()


class KeypressConfirmation(ConfirmationStrategy):
    """
    Blocks until the operator presses a single key.

    Any key proceeds; Ctrl-C (or end of input) aborts. The terminal is put in
    raw mode so the keypress is taken without waiting for Enter.
    """

    def __init__(
        self,
        prompt: str = "Press Ctrl+C to cancel, or any key to continue...",
        stream: Optional[TextIO] = None,
        read_key: Optional[Callable[[TextIO], str]] = None,
        out: Optional[TextIO] = None,
    ) -> None:
        self.prompt = prompt
        self.stream = stream or sys.stdin
        self.out = out or sys.stdout
        self.read_key = read_key or self._default_reader()

    def _default_reader(self) -> Callable[[TextIO], str]:
        if not self.stream.isatty():
            # 非终端输入：读取一个字符即可
            return lambda stream: stream.read(1)
        if platform.system() == "Windows":
            return _read_windows_key
        return _read_posix_key

    def confirm(self) -> bool:
        self.out.write(f"{self.prompt}\n")
        self.out.flush()
        try:
            key = self.read_key(self.stream)
        except KeyboardInterrupt as exc:
            raise UserAbort("Cancelled by operator") from exc
        if key in ("", _CTRL_C, _CTRL_D):
            raise UserAbort("Cancelled by operator")
        return True
