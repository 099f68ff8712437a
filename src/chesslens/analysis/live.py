"""Interactive single-position analysis on top of an engine session."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import replace
from functools import partial

from PyQt6.QtCore import QObject, pyqtSignal

from chesslens.analysis.cache import EvaluationCache
from chesslens.analysis.classifier import to_white_perspective
from chesslens.analysis.models import EngineLine, Evaluation, LiveAnalysisState
from chesslens.config import AnalysisSettings
from chesslens.engine.session import EngineSession
from chesslens.errors import RejectReason, SubmissionRejected
from chesslens.game.moves import pv_to_san, side_to_move

_LOGGER = logging.getLogger(__name__)


class LiveAnalysisController(QObject):
    """Keeps a multi-line evaluation feed for the position on screen.

    Only the most recently requested FEN is ever shown: updates for older
    requests are dropped, and the previous lines stay visible until the
    first update for the new FEN replaces them.
    """

    state_changed = pyqtSignal(object)  # LiveAnalysisState

    __slots__ = (
        "_session",
        "_cache",
        "_settings",
        "_state",
        "_request",
        "_request_id",
        "_engine_request_id",
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
        self._state = LiveAnalysisState(is_ready=session.is_ready)
        self._request: Future[Evaluation] | None = None
        self._request_id = 0
        self._engine_request_id = 0

        session.ready_changed.connect(self._on_ready_changed)
        session.lines_updated.connect(self._on_lines_updated)
        session.search_finished.connect(self._on_search_finished)

    @property
    def state(self) -> LiveAnalysisState:
        return self._state

    @property
    def cache(self) -> EvaluationCache:
        return self._cache

    def analyze(
        self,
        fen: str,
        depth: int | None = None,
        line_count: int | None = None,
    ) -> None:
        """Start analysing *fen*, superseding whatever ran before."""
        requested = depth if depth is not None else self._settings.live_depth
        depth = max(1, min(requested, self._settings.max_safe_depth))
        lines = line_count or self._settings.live_lines

        self._request_id += 1
        request_id = self._request_id
        future = self._session.submit(fen, depth, lines)
        self._request = future
        self._engine_request_id = self._session.last_request_id
        # Keep the old lines until the first update for this FEN arrives.
        self._publish(fen=fen, is_analyzing=True)
        future.add_done_callback(partial(self._on_request_done, request_id))

    def stop(self) -> None:
        """Stop analysing; the feed shows idle immediately."""
        self._session.stop()
        if self._state.is_analyzing:
            self._publish(is_analyzing=False)

    def lines_from_white(self) -> tuple[EngineLine, ...]:
        """Current lines with scores re-expressed as positive-favours-White."""
        fen = self._state.fen
        if fen is None:
            return self._state.lines
        try:
            side = side_to_move(fen)
        except ValueError:
            return self._state.lines
        return tuple(
            replace(line, evaluation=to_white_perspective(line.evaluation, side))
            for line in self._state.lines
        )

    def lines_as_san(self) -> tuple[tuple[str, ...], ...]:
        """Current principal variations in SAN, one tuple per line."""
        fen = self._state.fen
        if fen is None:
            return ()
        try:
            return tuple(pv_to_san(fen, line.moves) for line in self._state.lines)
        except ValueError:
            return ()

    def _publish(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)  # type: ignore[arg-type]
        self.state_changed.emit(self._state)

    def _on_ready_changed(self, ready: bool) -> None:
        pending = self._request is not None and not self._request.done()
        self._publish(is_ready=ready, is_analyzing=ready and pending)

    def _on_lines_updated(
        self,
        request_id: int,
        fen: str,
        lines: tuple[EngineLine, ...],
    ) -> None:
        if request_id != self._engine_request_id or fen != self._state.fen or not lines:
            return
        plies = self._settings.display_plies
        lines = tuple(_truncated(line, plies) for line in lines)
        top = lines[0].evaluation
        self._publish(
            lines=lines,
            score=top.score,
            mate=top.mate,
            depth=top.depth,
        )

    def _on_search_finished(self, fen: str, evaluation: Evaluation) -> None:
        self._cache.put(fen, evaluation)

    def _on_request_done(self, request_id: int, future: Future[Evaluation]) -> None:
        if request_id != self._request_id:
            return
        exc = future.exception()
        if isinstance(exc, SubmissionRejected):
            if exc.reason == RejectReason.INVALID_POSITION:
                _LOGGER.warning("Live analysis rejected: %s", exc)
        self._publish(is_analyzing=False)


def _truncated(line: EngineLine, max_plies: int) -> EngineLine:
    if len(line.moves) <= max_plies:
        return line
    return replace(
        line,
        evaluation=line.evaluation.truncated(max_plies),
        moves=line.moves[:max_plies],
    )
