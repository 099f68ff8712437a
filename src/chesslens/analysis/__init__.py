"""Evaluation models, caching, classification and the analysis controllers."""

from chesslens.analysis.cache import EvaluationCache
from chesslens.analysis.classifier import (
    best_move_was_played,
    centipawn_loss,
    classify_move,
    to_white_perspective,
)
from chesslens.analysis.live import LiveAnalysisController
from chesslens.analysis.models import (
    MATE_SCORE,
    AnalysisProgress,
    ClassifiedMove,
    EngineLine,
    Evaluation,
    GameMove,
    InfoUpdate,
    LiveAnalysisState,
    MoveClassification,
    format_score,
)
from chesslens.analysis.pipeline import GameAnalysisPipeline
from chesslens.analysis.summary import GameSummary, SideSummary, summarize_game

__all__ = [
    "MATE_SCORE",
    "AnalysisProgress",
    "ClassifiedMove",
    "EngineLine",
    "Evaluation",
    "EvaluationCache",
    "GameAnalysisPipeline",
    "GameMove",
    "GameSummary",
    "InfoUpdate",
    "LiveAnalysisController",
    "LiveAnalysisState",
    "MoveClassification",
    "SideSummary",
    "best_move_was_played",
    "centipawn_loss",
    "classify_move",
    "format_score",
    "summarize_game",
    "to_white_perspective",
]
