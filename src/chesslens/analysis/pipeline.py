"""Full-game analysis sweep: evaluate every position, classify every move."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import Future
from dataclasses import replace
from functools import partial

import chess
from PyQt6.QtCore import QObject, pyqtSignal

from chesslens.analysis.cache import EvaluationCache
from chesslens.analysis.classifier import (
    best_move_was_played,
    centipawn_loss,
    classify_move,
    to_white_perspective,
)
from chesslens.analysis.models import (
    AnalysisProgress,
    ClassifiedMove,
    Evaluation,
    GameMove,
)
from chesslens.analysis.summary import GameSummary, summarize_game
from chesslens.config import AnalysisSettings
from chesslens.engine.session import EngineSession
from chesslens.errors import RejectReason, SubmissionRejected
from chesslens.game.moves import STARTING_FEN, play_san

_LOGGER = logging.getLogger(__name__)

_HALT_REASONS = frozenset(
    {RejectReason.CANCELLED, RejectReason.SUPERSEDED, RejectReason.SHUTDOWN}
)


class GameAnalysisPipeline(QObject):
    """Sequential, cancellable sweep over the positions of one game.

    Positions are analysed one at a time on a dedicated engine session.
    Cancellation is only observed between positions; moves classified
    before a cancel are kept. Starting a new sweep discards the old one.
    """

    progress_changed = pyqtSignal(object)  # AnalysisProgress
    moves_changed = pyqtSignal(object)  # tuple[ClassifiedMove, ...]
    finished = pyqtSignal(object)  # tuple[ClassifiedMove, ...]
    failed = pyqtSignal(str)

    __slots__ = (
        "_session",
        "_cache",
        "_settings",
        "_inflight",
        "_run_id",
        "_cancelled",
        "_board",
        "_sans",
        "_index",
        "_eval_before",
        "_current_move",
        "_moves",
        "_progress",
    )

    def __init__(
        self,
        session: EngineSession,
        cache: EvaluationCache,
        *,
        settings: AnalysisSettings | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._cache = cache
        self._settings = settings or AnalysisSettings()
        self._inflight: dict[str, Future[Evaluation]] = {}

        self._run_id = 0
        self._cancelled = False
        self._board = chess.Board()
        self._sans: list[str] = []
        self._index = 0
        self._eval_before: Evaluation | None = None
        self._current_move: GameMove | None = None
        self._moves: list[ClassifiedMove] = []
        self._progress = AnalysisProgress.idle()

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def progress(self) -> AnalysisProgress:
        return self._progress

    @property
    def analyzed_moves(self) -> tuple[ClassifiedMove, ...]:
        return tuple(self._moves)

    @property
    def is_analyzing(self) -> bool:
        return self._progress.is_analyzing

    @property
    def cache(self) -> EvaluationCache:
        return self._cache

    # ── Public API ───────────────────────────────────────────────────────

    def analyze_position(self, fen: str) -> Future[Evaluation]:
        """Evaluate *fen* at sweep depth, answering from the cache if possible."""
        cached = self._cache.get(fen)
        if cached is not None:
            future: Future[Evaluation] = Future()
            future.set_result(cached)
            return future

        inflight = self._inflight.get(fen)
        if inflight is not None:
            return inflight

        future = self._session.submit(fen, self._settings.game_depth, 1)
        if not future.done():
            self._inflight[fen] = future
        future.add_done_callback(partial(self._store_result, fen))
        return future

    def analyze_game(
        self,
        moves: Iterable[str],
        start_fen: str = STARTING_FEN,
    ) -> bool:
        """Start (or restart) a sweep over SAN *moves* played from *start_fen*."""
        sans = list(moves)
        if not sans:
            return False
        try:
            board = chess.Board(start_fen)
        except ValueError as exc:
            _LOGGER.warning("Cannot analyse game from %r: %s", start_fen, exc)
            self.failed.emit(str(exc))
            return False

        self._abandon_run()
        self._run_id += 1
        self._cancelled = False
        self._board = board
        self._sans = sans
        self._index = 0
        self._eval_before = None
        self._current_move = None
        self._moves = []

        self.moves_changed.emit(())
        self._set_progress(AnalysisProgress(0, len(sans), True, False))
        self._advance(self._run_id)
        return True

    def stop_analysis(self) -> None:
        """Halt after the position currently being analysed."""
        self._cancelled = True
        self._inflight.clear()
        self._session.stop()
        if self._progress.is_analyzing:
            self._set_progress(replace(self._progress, is_analyzing=False))

    def get_evaluation_for_move(self, index: int) -> Evaluation | None:
        if index < 0 or index >= len(self._moves):
            return None
        return self._moves[index].evaluation

    def summary(self) -> GameSummary:
        return summarize_game(self._moves)

    # ── Sweep steps ──────────────────────────────────────────────────────

    def _abandon_run(self) -> None:
        if self._progress.is_analyzing:
            self._inflight.clear()
            self._session.stop()

    def _advance(self, run_id: int) -> None:
        # Cache hits resolve synchronously and are consumed in this loop.
        while run_id == self._run_id:
            if self._cancelled:
                self._halt()
                return
            if self._eval_before is None:
                fen = self._board.fen()
            else:
                if self._index >= len(self._sans):
                    self._complete()
                    return
                san = self._sans[self._index]
                try:
                    self._current_move = play_san(self._board, san)
                except ValueError as exc:
                    self._fail(f"Illegal move {san!r} at ply {self._index + 1}: {exc}")
                    return
                fen = self._current_move.fen_after

            future = self.analyze_position(fen)
            if not future.done():
                future.add_done_callback(partial(self._on_position_done, run_id))
                return
            if not self._consume(future):
                return

    def _on_position_done(self, run_id: int, future: Future[Evaluation]) -> None:
        if run_id != self._run_id:
            return
        if self._consume(future):
            self._advance(run_id)

    def _consume(self, future: Future[Evaluation]) -> bool:
        """Fold one finished position into the sweep; False ends the run."""
        if future.cancelled():
            self._halt()
            return False
        exc = future.exception()
        if isinstance(exc, SubmissionRejected) and exc.reason in _HALT_REASONS:
            self._halt()
            return False
        if exc is not None:
            self._fail(str(exc))
            return False
        if self._cancelled:
            self._halt()
            return False

        evaluation = future.result()
        if self._eval_before is None:
            self._eval_before = evaluation
            return True

        move = self._current_move
        assert move is not None
        # A deeper result for the pre-move position may have landed in the
        # shared cache since it was first analysed.
        before = self._cache.get(move.fen_before) or self._eval_before
        played_best = best_move_was_played(move.uci, before)
        self._moves.append(
            ClassifiedMove(
                move=move,
                evaluation=to_white_perspective(evaluation, not move.color),
                classification=classify_move(before, evaluation, played_best),
                cp_loss=max(0, centipawn_loss(before, evaluation)),
            )
        )
        self._index += 1
        self._eval_before = evaluation

        self.moves_changed.emit(tuple(self._moves))
        self._set_progress(AnalysisProgress(self._index, len(self._sans), True, False))
        return True

    def _complete(self) -> None:
        total = len(self._sans)
        self._set_progress(AnalysisProgress(total, total, False, True))
        _LOGGER.info("Game analysis complete: %d moves", total)
        self.finished.emit(tuple(self._moves))

    def _halt(self) -> None:
        if self._progress.is_analyzing:
            self._set_progress(replace(self._progress, is_analyzing=False))

    def _fail(self, message: str) -> None:
        _LOGGER.warning("Game analysis failed: %s", message)
        self._cancelled = True
        self._halt()
        self.failed.emit(message)

    def _set_progress(self, progress: AnalysisProgress) -> None:
        self._progress = progress
        self.progress_changed.emit(progress)

    def _store_result(self, fen: str, future: Future[Evaluation]) -> None:
        if self._inflight.get(fen) is future:
            del self._inflight[fen]
        if future.cancelled() or future.exception() is not None:
            return
        self._cache.put(fen, future.result())
