"""Composition root wiring the analysis subsystem together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from PyQt6.QtCore import QObject

from chesslens.analysis.cache import EvaluationCache
from chesslens.analysis.live import LiveAnalysisController
from chesslens.analysis.models import Evaluation
from chesslens.analysis.pipeline import GameAnalysisPipeline
from chesslens.config import AnalysisSettings, resolve_engine_path
from chesslens.engine.process import UciProcess
from chesslens.engine.session import EngineSession, EngineTransport, TransportFactory

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AnalysisServices:
    """Everything the front end needs from the analysis subsystem."""

    cache: EvaluationCache
    live_session: EngineSession
    game_session: EngineSession
    live: LiveAnalysisController
    pipeline: GameAnalysisPipeline

    def start(self) -> None:
        self.live_session.start()
        self.game_session.start()

    def shutdown(self) -> None:
        self.pipeline.stop_analysis()
        self.live.stop()
        self.live_session.shutdown()
        self.game_session.shutdown()

    def get_cached_evaluation(self, fen: str) -> Evaluation | None:
        return self.cache.get(fen)

    def clear_cache(self) -> None:
        self.cache.clear()


def uci_process_factory(settings: AnalysisSettings) -> TransportFactory:
    """Build transports that launch the configured engine binary."""

    def _create() -> EngineTransport:
        path = resolve_engine_path(settings)
        _LOGGER.debug("Using engine binary %s", path)
        return UciProcess(str(path), settings.engine_args)

    return _create


def create_analysis_services(
    settings: AnalysisSettings | None = None,
    *,
    transport_factory: TransportFactory | None = None,
    parent: QObject | None = None,
) -> AnalysisServices:
    """Create the shared cache, two independent sessions and both controllers."""
    settings = settings or AnalysisSettings()
    factory = transport_factory or uci_process_factory(settings)
    cache = EvaluationCache()

    live_session = EngineSession(
        transport_factory=factory,
        multipv=settings.live_lines,
        restart_backoff_ms=settings.restart_backoff_ms,
        name="live",
        parent=parent,
    )
    game_session = EngineSession(
        transport_factory=factory,
        multipv=1,
        restart_backoff_ms=settings.restart_backoff_ms,
        name="game",
        parent=parent,
    )
    return AnalysisServices(
        cache=cache,
        live_session=live_session,
        game_session=game_session,
        live=LiveAnalysisController(live_session, cache, settings=settings, parent=parent),
        pipeline=GameAnalysisPipeline(game_session, cache, settings=settings, parent=parent),
    )
