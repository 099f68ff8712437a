"""QProcess-backed line transport to a UCI engine."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from PyQt6.QtCore import QObject, QProcess, pyqtSignal

from chesslens.engine import protocol

_LOGGER = logging.getLogger(__name__)


class UciProcess(QObject):
    """Owns one engine process and turns its stdout into whole lines.

    Every failure of the process (start error, crash, unrequested exit) is
    reported once through :attr:`failed`; the owner is expected to drop the
    transport and create a new one.
    """

    line_received = pyqtSignal(str)
    failed = pyqtSignal(str)

    _QUIT_GRACE_MS = 500

    __slots__ = ("_program", "_args", "_process", "_buffer", "_closing", "_failed")

    def __init__(
        self,
        program: str,
        args: Sequence[str] = (),
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._program = program
        self._args = list(args)
        self._process = QProcess(self)
        self._buffer = b""
        self._closing = False
        self._failed = False
        self._process.readyReadStandardOutput.connect(self._on_ready_read)
        self._process.errorOccurred.connect(self._on_error)
        self._process.finished.connect(self._on_finished)

    def start(self) -> None:
        _LOGGER.debug("Starting engine process %s", self._program)
        self._closing = False
        self._process.start(self._program, self._args)

    def send(self, command: str) -> None:
        if self._process.state() == QProcess.ProcessState.NotRunning:
            return
        _LOGGER.debug(">> %s", command)
        self._process.write(f"{command}\n".encode())

    def close(self) -> None:
        """Ask the engine to quit, then kill it if it lingers."""
        self._closing = True
        if self._process.state() == QProcess.ProcessState.NotRunning:
            return
        self.send(protocol.quit())
        if not self._process.waitForFinished(self._QUIT_GRACE_MS):
            self._process.kill()
            self._process.waitForFinished(self._QUIT_GRACE_MS)

    def _on_ready_read(self) -> None:
        self._feed(bytes(self._process.readAllStandardOutput()))

    def _feed(self, data: bytes) -> None:
        self._buffer += data
        *complete, self._buffer = self._buffer.split(b"\n")
        for raw in complete:
            line = raw.decode(errors="replace").strip()
            if line:
                _LOGGER.debug("<< %s", line)
                self.line_received.emit(line)

    def _on_error(self, error: QProcess.ProcessError) -> None:
        if self._closing:
            return
        self._report_failure(f"Engine process error: {error.name}")

    def _on_finished(self, exit_code: int, _status: QProcess.ExitStatus) -> None:
        if self._closing:
            return
        self._report_failure(f"Engine process exited with code {exit_code}")

    def _report_failure(self, message: str) -> None:
        if self._failed:
            return
        self._failed = True
        self.failed.emit(message)
