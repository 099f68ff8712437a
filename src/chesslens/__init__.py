"""Analysis orchestration for an external UCI chess engine."""

from chesslens.analysis import (
    AnalysisProgress,
    ClassifiedMove,
    EngineLine,
    Evaluation,
    EvaluationCache,
    GameAnalysisPipeline,
    LiveAnalysisController,
    MoveClassification,
    classify_move,
)
from chesslens.bootstrap import AnalysisServices, create_analysis_services
from chesslens.config import AnalysisSettings
from chesslens.engine import EngineSession, SessionState

__all__ = [
    "AnalysisProgress",
    "AnalysisServices",
    "AnalysisSettings",
    "ClassifiedMove",
    "EngineLine",
    "EngineSession",
    "Evaluation",
    "EvaluationCache",
    "GameAnalysisPipeline",
    "LiveAnalysisController",
    "MoveClassification",
    "SessionState",
    "classify_move",
    "create_analysis_services",
]
