"""Engine session: lifecycle and command serialization for one UCI process."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from enum import IntEnum, auto
from typing import Protocol

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from chesslens.analysis.models import EngineLine, Evaluation, InfoUpdate
from chesslens.engine import protocol
from chesslens.errors import EngineError, RejectReason, SubmissionRejected
from chesslens.game.moves import validate_fen

_LOGGER = logging.getLogger(__name__)


class SignalLike(Protocol):
    def connect(self, slot: Callable[..., object]) -> object: ...


class EngineTransport(Protocol):
    """Line-oriented channel to an engine process (see ``UciProcess``)."""

    line_received: SignalLike
    failed: SignalLike

    def start(self) -> None: ...

    def send(self, command: str) -> None: ...

    def close(self) -> None: ...


TransportFactory = Callable[[], EngineTransport]
PositionValidator = Callable[[str], None]


# ── Session FSM states ───────────────────────────────────────────────────────


class SessionState(IntEnum):
    """Finite-state-machine states of an engine session."""

    UNINITIALIZED = auto()
    INITIALIZING = auto()
    READY = auto()
    ANALYZING = auto()
    ERRORED = auto()


_READY_STATES = frozenset({SessionState.READY, SessionState.ANALYZING})


@dataclass(slots=True)
class _Submission:
    """One position search and its per-search line accumulator."""

    request_id: int
    fen: str
    depth: int
    line_count: int
    future: Future[Evaluation]
    lines: dict[int, EngineLine] = field(default_factory=dict)
    stop_reason: RejectReason | None = None

    def snapshot(self) -> tuple[EngineLine, ...]:
        return tuple(self.lines[rank] for rank in sorted(self.lines))


# ── Session ──────────────────────────────────────────────────────────────────


class EngineSession(QObject):
    """Owns one engine transport and serializes searches over it.

    ``Uninitialized → Initializing → Ready ⇄ Analyzing``; any transport
    failure moves to ``Errored`` and schedules a single restart after
    ``restart_backoff_ms``. At most one search is active and at most one
    submission waits behind it; a waiting submission is only dispatched once
    the active search has answered with ``bestmove``.
    """

    state_changed = pyqtSignal(object)  # SessionState
    ready_changed = pyqtSignal(bool)
    analyzing_changed = pyqtSignal(bool)
    lines_updated = pyqtSignal(int, str, object)  # request_id, fen, tuple[EngineLine, ...]
    search_finished = pyqtSignal(str, object)  # fen, Evaluation
    failed = pyqtSignal(str)

    __slots__ = (
        "_name",
        "_transport_factory",
        "_position_validator",
        "_configured_lines",
        "_restart_backoff_ms",
        "_restart_timer",
        "_transport",
        "_state",
        "_active",
        "_pending",
        "_next_request_id",
        "_last_lines",
        "_shut_down",
    )

    def __init__(
        self,
        *,
        transport_factory: TransportFactory,
        multipv: int = 1,
        restart_backoff_ms: int = 1000,
        position_validator: PositionValidator = validate_fen,
        name: str = "engine",
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._name = name
        self._transport_factory = transport_factory
        self._position_validator = position_validator
        self._configured_lines = multipv
        self._restart_backoff_ms = restart_backoff_ms

        self._restart_timer = QTimer(self)
        self._restart_timer.setSingleShot(True)
        self._restart_timer.timeout.connect(self._on_restart_timeout)

        self._transport: EngineTransport | None = None
        self._state = SessionState.UNINITIALIZED
        self._active: _Submission | None = None
        self._pending: _Submission | None = None
        self._next_request_id = 0
        self._last_lines: tuple[EngineLine, ...] = ()
        self._shut_down = False

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state in _READY_STATES

    @property
    def is_analyzing(self) -> bool:
        return self._state == SessionState.ANALYZING

    @property
    def lines(self) -> tuple[EngineLine, ...]:
        """Most recently published line table (survives crashes)."""
        return self._last_lines

    @property
    def evaluation(self) -> Evaluation:
        """Rank-1 evaluation of the most recently published line table."""
        if not self._last_lines:
            return Evaluation.empty()
        return self._last_lines[0].evaluation

    @property
    def last_request_id(self) -> int:
        """Identity of the most recent accepted submission (0 before any)."""
        return self._next_request_id

    @property
    def active_fen(self) -> str | None:
        return self._active.fen if self._active is not None else None

    @property
    def pending_fen(self) -> str | None:
        return self._pending.fen if self._pending is not None else None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Launch the engine and begin the UCI handshake."""
        if self._transport is not None:
            return
        self._restart_timer.stop()
        self._shut_down = False
        try:
            transport = self._transport_factory()
        except (EngineError, OSError) as exc:
            _LOGGER.warning("%s: cannot create engine transport: %s", self._name, exc)
            self._set_state(SessionState.ERRORED)
            self.failed.emit(str(exc))
            self._schedule_restart()
            return

        transport.line_received.connect(
            lambda line, t=transport: self._on_line(t, line)
        )
        transport.failed.connect(
            lambda message, t=transport: self._on_transport_failed(t, message)
        )
        self._transport = transport
        self._set_state(SessionState.INITIALIZING)
        _LOGGER.info("%s: starting engine", self._name)
        transport.start()
        self._send(protocol.uci())

    def shutdown(self) -> None:
        """Quit the engine and reject every outstanding submission.

        Later submissions are rejected until the session is started again.
        """
        self._restart_timer.stop()
        self._shut_down = True
        if self._pending is not None:
            _reject(self._pending, RejectReason.SHUTDOWN)
            self._pending = None
        if self._active is not None:
            _reject(self._active, RejectReason.SHUTDOWN)
            self._active = None
        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.close()
        self._set_state(SessionState.UNINITIALIZED)

    # ── Commands ─────────────────────────────────────────────────────────

    def submit(
        self,
        fen: str,
        depth: int,
        line_count: int | None = None,
    ) -> Future[Evaluation]:
        """Search *fen* to *depth*; the future resolves on ``bestmove``.

        The future fails with :class:`SubmissionRejected` when the position
        is invalid, the search is stopped or superseded, or the session
        shuts down.
        """
        future: Future[Evaluation] = Future()
        try:
            self._position_validator(fen)
        except ValueError as exc:
            _LOGGER.warning("%s: rejected position %r: %s", self._name, fen, exc)
            future.set_exception(
                SubmissionRejected(RejectReason.INVALID_POSITION, str(exc))
            )
            return future
        if self._shut_down:
            future.set_exception(SubmissionRejected(RejectReason.SHUTDOWN))
            return future

        self._next_request_id += 1
        submission = _Submission(
            request_id=self._next_request_id,
            fen=fen,
            depth=depth,
            line_count=line_count or self._configured_lines,
            future=future,
        )

        if self._state == SessionState.READY:
            self._dispatch(submission)
            return future

        if self._pending is not None:
            _reject(self._pending, RejectReason.SUPERSEDED)
        self._pending = submission
        if self._state == SessionState.ANALYZING:
            self._request_stop(RejectReason.SUPERSEDED)
        return future

    def stop(self) -> None:
        """Interrupt the active search and drop the waiting submission.

        The state only changes once the engine confirms with ``bestmove``.
        """
        if self._pending is not None:
            _reject(self._pending, RejectReason.CANCELLED)
            self._pending = None
        self._request_stop(RejectReason.CANCELLED)

    # ── Internals ────────────────────────────────────────────────────────

    def _send(self, command: str) -> None:
        if self._transport is not None:
            self._transport.send(command)

    def _set_state(self, state: SessionState) -> None:
        old = self._state
        if old == state:
            return
        self._state = state
        _LOGGER.debug("%s: %s -> %s", self._name, old.name, state.name)
        self.state_changed.emit(state)
        if (old in _READY_STATES) != (state in _READY_STATES):
            self.ready_changed.emit(state in _READY_STATES)
        if (old == SessionState.ANALYZING) != (state == SessionState.ANALYZING):
            self.analyzing_changed.emit(state == SessionState.ANALYZING)

    def _dispatch(self, submission: _Submission) -> None:
        submission.lines.clear()
        self._active = submission
        if submission.line_count != self._configured_lines:
            self._configured_lines = submission.line_count
            self._send(protocol.set_option("MultiPV", submission.line_count))
        self._send(protocol.new_game())
        self._send(protocol.position(submission.fen))
        self._send(protocol.go_depth(submission.depth))
        self._set_state(SessionState.ANALYZING)

    def _flush_pending(self) -> None:
        if self._state != SessionState.READY or self._pending is None:
            return
        submission = self._pending
        self._pending = None
        self._dispatch(submission)

    def _request_stop(self, reason: RejectReason) -> None:
        active = self._active
        if active is None or active.stop_reason is not None:
            return
        active.stop_reason = reason
        self._send(protocol.stop())

    def _on_line(self, transport: EngineTransport, line: str) -> None:
        if transport is not self._transport:
            return
        if line == protocol.UCI_OK:
            self._send(protocol.set_option("MultiPV", self._configured_lines))
            self._send(protocol.isready())
            return
        if line == protocol.READY_OK:
            if self._state == SessionState.INITIALIZING:
                _LOGGER.info("%s: engine ready", self._name)
                self._set_state(SessionState.READY)
                self._flush_pending()
            return
        update = protocol.parse_info_line(line)
        if update is not None:
            self._apply_update(update)
            return
        best = protocol.parse_bestmove_line(line)
        if best is not None:
            self._finish_search(best)

    def _apply_update(self, update: InfoUpdate) -> None:
        active = self._active
        if active is None or update.depth is None:
            return
        current = active.lines.get(update.multipv)
        if current is not None and update.depth < current.evaluation.depth:
            return

        previous = current.evaluation if current is not None else Evaluation.empty()
        if update.score is not None:
            score, mate = update.score, update.mate
        else:
            score, mate = previous.score, previous.mate
        pv = update.pv if update.pv is not None else previous.pv
        evaluation = Evaluation(
            score=score,
            mate=mate,
            depth=update.depth,
            best_move=pv[0] if pv else previous.best_move,
            pv=pv,
        )
        active.lines[update.multipv] = EngineLine(
            rank=update.multipv,
            evaluation=evaluation,
            moves=pv,
            seldepth=update.seldepth,
            nodes=update.nodes,
            nps=update.nps,
        )
        self._last_lines = active.snapshot()
        self.lines_updated.emit(active.request_id, active.fen, self._last_lines)

    def _finish_search(self, best: protocol.BestMove) -> None:
        submission = self._active
        self._active = None
        if self._state == SessionState.ANALYZING:
            self._set_state(SessionState.READY)
        if submission is None:
            self._flush_pending()
            return

        top = submission.lines.get(1)
        evaluation = top.evaluation if top is not None else Evaluation.empty()
        if not evaluation.best_move and best.move:
            evaluation = replace(evaluation, best_move=best.move)

        # Queued work goes out before the result is delivered so that a
        # submission made from a done-callback queues behind it.
        self._flush_pending()

        if submission.stop_reason is not None:
            _reject(submission, submission.stop_reason)
            return
        self.search_finished.emit(submission.fen, evaluation)
        if not submission.future.done():
            submission.future.set_result(evaluation)

    def _on_transport_failed(self, transport: EngineTransport, message: str) -> None:
        if transport is not self._transport:
            return
        _LOGGER.warning("%s: engine failure: %s", self._name, message)
        self._transport = None
        transport.close()

        active = self._active
        self._active = None
        if active is not None:
            if active.stop_reason is not None:
                _reject(active, active.stop_reason)
            elif self._pending is None:
                # Re-run the interrupted search once the engine is back.
                self._pending = active
            else:
                _reject(active, RejectReason.SUPERSEDED)

        self._set_state(SessionState.ERRORED)
        self.failed.emit(message)
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if self._restart_timer.isActive():
            return
        self._restart_timer.start(self._restart_backoff_ms)

    def _on_restart_timeout(self) -> None:
        if self._state != SessionState.ERRORED:
            return
        _LOGGER.info("%s: restarting engine", self._name)
        self.start()


def _reject(submission: _Submission, reason: RejectReason) -> None:
    if not submission.future.done():
        submission.future.set_exception(SubmissionRejected(reason))
