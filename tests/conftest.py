"""Shared pytest fixtures used across the test suite."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator

import pytest
from PyQt6.QtCore import QObject, pyqtSignal

# Linux CI runners are often headless. Force an offscreen backend only there.
if (
    sys.platform.startswith("linux")
    and "QT_QPA_PLATFORM" not in os.environ
    and "DISPLAY" not in os.environ
    and "WAYLAND_DISPLAY" not in os.environ
):
    os.environ["QT_QPA_PLATFORM"] = "offscreen"


@pytest.fixture(scope="session")
def qapp() -> Iterator[object]:
    """Provide a singleton QCoreApplication so timers have an event loop."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


class FakeTransport(QObject):
    """In-memory stand-in for ``UciProcess``.

    Records every command sent and lets tests feed engine output. Searches
    are never answered on their own: call :meth:`answer` to reply to the
    oldest outstanding ``go`` with the scripted lines for its position.
    """

    line_received = pyqtSignal(str)
    failed = pyqtSignal(str)

    def __init__(self, scripts: dict[str, list[str]]) -> None:
        super().__init__()
        self.scripts = scripts
        self.sent: list[str] = []
        self.searches: list[str] = []
        self.started = False
        self.closed = False
        self._position: str | None = None

    def start(self) -> None:
        self.started = True

    def send(self, command: str) -> None:
        self.sent.append(command)
        if command.startswith("position fen "):
            self._position = command.removeprefix("position fen ")
        elif command.startswith("go") and self._position is not None:
            self.searches.append(self._position)

    def close(self) -> None:
        self.closed = True

    def feed(self, *lines: str) -> None:
        for line in lines:
            self.line_received.emit(line)

    def handshake(self) -> None:
        self.feed("uciok", "readyok")

    def answer(self) -> str:
        fen = self.searches.pop(0)
        lines = self.scripts.get(fen, ["info depth 1 score cp 0 pv e2e4"])
        self.feed(*lines)
        self.feed("bestmove (none)")
        return fen

    def answer_all(self) -> int:
        answered = 0
        while self.searches:
            self.answer()
            answered += 1
        return answered

    def crash(self, message: str = "Engine process exited with code 1") -> None:
        self.failed.emit(message)


class FakeTransportFactory:
    """Transport factory that keeps every transport it built."""

    def __init__(self) -> None:
        self.scripts: dict[str, list[str]] = {}
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport(self.scripts)
        self.created.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def transport_factory(qapp: object) -> FakeTransportFactory:
    del qapp
    return FakeTransportFactory()
