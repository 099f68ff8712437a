"""Tests for the EngineSession state machine."""

from __future__ import annotations

from typing import Any

import pytest

from chesslens.analysis.models import MATE_SCORE, Evaluation
from chesslens.engine.session import EngineSession, SessionState
from chesslens.errors import EngineNotFoundError, RejectReason, SubmissionRejected
from chesslens.game.moves import STARTING_FEN

AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


def _ready_session(factory: Any, *, multipv: int = 1) -> EngineSession:
    session = EngineSession(transport_factory=factory, multipv=multipv, name="test")
    session.start()
    factory.current.handshake()
    return session


def _rejection(future: Any) -> SubmissionRejected:
    exc = future.exception()
    assert isinstance(exc, SubmissionRejected)
    return exc


class TestHandshake:
    def test_start_sends_uci_and_enters_initializing(self, transport_factory: Any) -> None:
        session = EngineSession(transport_factory=transport_factory)
        session.start()

        transport = transport_factory.current
        assert transport.started is True
        assert transport.sent == ["uci"]
        assert session.state == SessionState.INITIALIZING
        assert session.is_ready is False

    def test_uciok_configures_multipv_then_probes_readiness(
        self, transport_factory: Any
    ) -> None:
        session = EngineSession(transport_factory=transport_factory, multipv=3)
        session.start()
        transport_factory.current.feed("id name Fake", "uciok")

        assert transport_factory.current.sent == [
            "uci",
            "setoption name MultiPV value 3",
            "isready",
        ]
        assert session.state == SessionState.INITIALIZING

    def test_readyok_enters_ready(self, transport_factory: Any) -> None:
        ready: list[bool] = []
        session = EngineSession(transport_factory=transport_factory)
        session.ready_changed.connect(ready.append)
        session.start()
        transport_factory.current.handshake()

        assert session.state == SessionState.READY
        assert session.is_ready is True
        assert ready == [True]

    def test_start_twice_keeps_single_transport(self, transport_factory: Any) -> None:
        session = EngineSession(transport_factory=transport_factory)
        session.start()
        session.start()
        assert len(transport_factory.created) == 1

    def test_factory_failure_is_reported(self, qapp: object) -> None:
        del qapp
        errors: list[str] = []

        def _missing() -> Any:
            raise EngineNotFoundError("no engine")

        session = EngineSession(transport_factory=_missing)
        session.failed.connect(errors.append)
        session.start()

        assert session.state == SessionState.ERRORED
        assert errors == ["no engine"]
        assert session._restart_timer.isActive()


class TestSubmit:
    def test_submit_when_ready_sends_search_commands(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        transport = transport_factory.current
        transport.sent.clear()

        session.submit(STARTING_FEN, 16)

        assert transport.sent == [
            "ucinewgame",
            f"position fen {STARTING_FEN}",
            "go depth 16",
        ]
        assert session.state == SessionState.ANALYZING
        assert session.active_fen == STARTING_FEN

    def test_changed_line_count_reconfigures_multipv(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory, multipv=1)
        transport = transport_factory.current
        transport.sent.clear()

        session.submit(STARTING_FEN, 10, 3)

        assert transport.sent[0] == "setoption name MultiPV value 3"

    def test_submit_while_initializing_is_queued_last_wins(
        self, transport_factory: Any
    ) -> None:
        session = EngineSession(transport_factory=transport_factory)
        session.start()
        first = session.submit(STARTING_FEN, 8)
        second = session.submit(AFTER_E4, 8)

        assert _rejection(first).reason == RejectReason.SUPERSEDED
        assert second.done() is False
        assert session.pending_fen == AFTER_E4

        transport_factory.current.handshake()

        assert session.state == SessionState.ANALYZING
        assert session.active_fen == AFTER_E4
        assert transport_factory.current.searches == [AFTER_E4]

    def test_invalid_position_fails_submission_and_stays_ready(
        self, transport_factory: Any
    ) -> None:
        session = _ready_session(transport_factory)
        transport = transport_factory.current
        transport.sent.clear()

        future = session.submit("not a fen", 10)

        assert _rejection(future).reason == RejectReason.INVALID_POSITION
        assert session.state == SessionState.READY
        assert transport.sent == []

    def test_bestmove_resolves_with_top_line(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        finished: list[tuple[str, Evaluation]] = []
        session.search_finished.connect(lambda fen, ev: finished.append((fen, ev)))
        future = session.submit(STARTING_FEN, 12)

        transport_factory.current.feed(
            "info depth 11 score cp 20 pv e2e4 e7e5",
            "info depth 12 score cp 31 pv d2d4 d7d5 c2c4",
            "bestmove d2d4 ponder d7d5",
        )

        evaluation = future.result(timeout=0)
        assert evaluation == Evaluation(
            score=31,
            mate=None,
            depth=12,
            best_move="d2d4",
            pv=("d2d4", "d7d5", "c2c4"),
        )
        assert session.state == SessionState.READY
        assert finished == [(STARTING_FEN, evaluation)]

    def test_bestmove_token_fills_missing_pv(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 5)
        transport_factory.current.feed("info depth 5 score cp 12", "bestmove g1f3")

        evaluation = future.result(timeout=0)
        assert evaluation.best_move == "g1f3"
        assert evaluation.score == 12


class TestLineTable:
    def test_lines_are_keyed_by_rank_and_sorted(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory, multipv=3)
        updates: list[tuple[str, tuple[Any, ...]]] = []
        session.lines_updated.connect(
            lambda _request_id, fen, lines: updates.append((fen, lines))
        )
        session.submit(STARTING_FEN, 20)

        transport_factory.current.feed(
            "info depth 9 multipv 2 score cp 15 pv d2d4",
            "info depth 9 multipv 1 score cp 30 pv e2e4",
            "info depth 9 multipv 3 score cp 5 pv c2c4",
        )

        fen, lines = updates[-1]
        assert fen == STARTING_FEN
        assert [line.rank for line in lines] == [1, 2, 3]
        assert [line.evaluation.best_move for line in lines] == ["e2e4", "d2d4", "c2c4"]
        assert session.evaluation.score == 30

    def test_shallower_update_never_overwrites_deeper(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 20)

        transport_factory.current.feed(
            "info depth 14 score cp 25 pv e2e4",
            "info depth 13 score cp -80 pv a2a3",
            "bestmove e2e4",
        )

        evaluation = future.result(timeout=0)
        assert evaluation.depth == 14
        assert evaluation.score == 25
        assert evaluation.pv == ("e2e4",)

    def test_mate_update_carries_sentinel_score(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 20)
        transport_factory.current.feed(
            "info depth 20 score mate -2 pv g2g4 d8h4",
            "bestmove g2g4",
        )

        evaluation = future.result(timeout=0)
        assert evaluation.mate == -2
        assert evaluation.score == -MATE_SCORE

    def test_info_without_active_search_is_ignored(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        updates: list[object] = []
        session.lines_updated.connect(lambda *args: updates.append(args))

        transport_factory.current.feed("info depth 3 score cp 1 pv e2e4")

        assert updates == []
        assert session.lines == ()


class TestStopAndSupersede:
    def test_stop_waits_for_bestmove_before_ready(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 30)
        transport = transport_factory.current
        transport.feed("info depth 10 score cp 22 pv e2e4")

        session.stop()

        assert transport.sent[-1] == "stop"
        assert session.state == SessionState.ANALYZING
        assert future.done() is False

        transport.feed("bestmove e2e4")

        assert session.state == SessionState.READY
        assert _rejection(future).reason == RejectReason.CANCELLED
        # Streamed lines are kept, not blanked.
        assert session.evaluation.score == 22

    def test_stop_is_sent_once(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        session.submit(STARTING_FEN, 30)
        session.stop()
        session.stop()
        assert transport_factory.current.sent.count("stop") == 1

    def test_stop_when_idle_sends_nothing(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        transport = transport_factory.current
        transport.sent.clear()
        session.stop()
        assert transport.sent == []

    def test_new_submission_waits_for_stop_acknowledgement(
        self, transport_factory: Any
    ) -> None:
        session = _ready_session(transport_factory)
        transport = transport_factory.current
        first = session.submit(STARTING_FEN, 30)
        transport.sent.clear()

        second = session.submit(AFTER_E4, 30)

        assert transport.sent == ["stop"]
        assert session.pending_fen == AFTER_E4

        transport.feed("bestmove e2e4")

        assert _rejection(first).reason == RejectReason.SUPERSEDED
        assert transport.sent[-3:] == [
            "ucinewgame",
            f"position fen {AFTER_E4}",
            "go depth 30",
        ]
        assert session.active_fen == AFTER_E4
        assert second.done() is False

    def test_stop_drops_pending_submission(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        session.submit(STARTING_FEN, 30)
        pending = session.submit(AFTER_E4, 30)

        session.stop()
        transport_factory.current.feed("bestmove e2e4")

        assert _rejection(pending).reason == RejectReason.CANCELLED
        assert session.state == SessionState.READY
        assert session.pending_fen is None


class TestCrashRecovery:
    def test_transport_failure_preserves_lines_and_schedules_restart(
        self, transport_factory: Any
    ) -> None:
        session = _ready_session(transport_factory, multipv=2)
        ready: list[bool] = []
        session.ready_changed.connect(ready.append)
        session.submit(STARTING_FEN, 20)
        transport = transport_factory.current
        transport.feed(
            "info depth 12 multipv 1 score cp 44 pv e2e4",
            "info depth 12 multipv 2 score cp 20 pv d2d4",
        )
        before = session.lines

        transport.crash()

        assert transport.closed is True
        assert session.state == SessionState.ERRORED
        assert session.is_ready is False
        assert ready == [False]
        assert session.lines == before
        assert session.evaluation.score == 44
        assert session._restart_timer.isActive()

    def test_restart_reissues_interrupted_search(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 20)
        transport_factory.current.crash()

        assert session.pending_fen == STARTING_FEN
        session._on_restart_timeout()

        assert len(transport_factory.created) == 2
        restarted = transport_factory.current
        restarted.handshake()

        assert session.is_ready is True
        assert restarted.searches == [STARTING_FEN]
        restarted.feed("info depth 20 score cp 18 pv e2e4", "bestmove e2e4")
        assert future.result(timeout=0).score == 18

    def test_failed_restart_keeps_retrying(self, transport_factory: Any) -> None:
        available = [True]

        def _flaky() -> Any:
            if not available[0]:
                raise EngineNotFoundError("engine binary missing")
            return transport_factory()

        session = EngineSession(transport_factory=_flaky, name="test")
        session.start()
        transport_factory.current.handshake()
        future = session.submit(STARTING_FEN, 10)

        available[0] = False
        transport_factory.current.crash()
        session._on_restart_timeout()

        assert session.state == SessionState.ERRORED
        assert session._restart_timer.isActive()
        assert session.pending_fen == STARTING_FEN
        assert future.done() is False

        available[0] = True
        session._on_restart_timeout()
        transport_factory.current.handshake()

        assert transport_factory.current.searches == [STARTING_FEN]
        transport_factory.current.answer()
        assert future.result(timeout=0).best_move == "e2e4"

    def test_single_restart_in_flight(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        crashed = transport_factory.current
        crashed.crash()
        session._restart_timer.stop()
        session._schedule_restart()
        session._schedule_restart()

        assert session._restart_timer.isActive()
        # Late signals from the dead transport are ignored.
        crashed.crash("again")
        crashed.feed("readyok")
        assert session.state == SessionState.ERRORED

    def test_restart_timeout_ignored_unless_errored(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        session._on_restart_timeout()
        assert len(transport_factory.created) == 1

    def test_crash_while_stopping_rejects_submission(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        future = session.submit(STARTING_FEN, 20)
        session.stop()
        transport_factory.current.crash()

        assert _rejection(future).reason == RejectReason.CANCELLED
        assert session.pending_fen is None


class TestShutdown:
    def test_shutdown_rejects_outstanding_and_closes(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        active = session.submit(STARTING_FEN, 20)
        pending = session.submit(AFTER_E4, 20)

        session.shutdown()

        assert transport_factory.current.closed is True
        assert _rejection(active).reason == RejectReason.SHUTDOWN
        assert _rejection(pending).reason == RejectReason.SHUTDOWN
        assert session.state == SessionState.UNINITIALIZED

    def test_shutdown_before_start_is_noop(self, transport_factory: Any) -> None:
        session = EngineSession(transport_factory=transport_factory)
        session.shutdown()
        assert session.state == SessionState.UNINITIALIZED
        assert transport_factory.created == []

    def test_submit_after_shutdown_is_rejected(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        session.shutdown()

        future = session.submit(STARTING_FEN, 20)

        assert _rejection(future).reason == RejectReason.SHUTDOWN
        assert session.pending_fen is None

    def test_start_after_shutdown_accepts_submissions(self, transport_factory: Any) -> None:
        session = _ready_session(transport_factory)
        session.shutdown()
        session.start()
        future = session.submit(STARTING_FEN, 20)

        transport_factory.current.handshake()

        assert future.done() is False
        assert transport_factory.current.searches == [STARTING_FEN]


@pytest.mark.parametrize("line", ["uciok", "readyok"])
def test_handshake_tokens_after_ready_do_not_change_state(
    transport_factory: Any, line: str
) -> None:
    session = _ready_session(transport_factory)
    transport_factory.current.feed(line)
    assert session.state == SessionState.READY
