"""Data models produced by engine analysis."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum

import chess

# Sentinel centipawn value carried alongside a forced mate, used for ordering.
MATE_SCORE = 10000


@dataclass(slots=True, frozen=True)
class Evaluation:
    """Engine verdict for one position at one search depth.

    ``score`` and ``mate`` are relative to the side to move at the analyzed
    position unless the evaluation was explicitly normalized.
    """

    score: int = 0
    mate: int | None = None
    depth: int = 0
    best_move: str = ""
    pv: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> Evaluation:
        return cls()

    @property
    def is_mate(self) -> bool:
        return self.mate is not None

    def negated(self) -> Evaluation:
        """Same evaluation seen from the other side of the board."""
        mate = -self.mate if self.mate is not None else None
        return replace(self, score=-self.score, mate=mate)

    def truncated(self, max_plies: int) -> Evaluation:
        if len(self.pv) <= max_plies:
            return self
        return replace(self, pv=self.pv[:max_plies])


@dataclass(slots=True, frozen=True)
class InfoUpdate:
    """Partial evaluation update extracted from one ``info`` line."""

    multipv: int = 1
    depth: int | None = None
    seldepth: int | None = None
    score: int | None = None
    mate: int | None = None
    nodes: int | None = None
    nps: int | None = None
    pv: tuple[str, ...] | None = None


@dataclass(slots=True, frozen=True)
class EngineLine:
    """One ranked variation reported during multi-line analysis."""

    rank: int
    evaluation: Evaluation
    moves: tuple[str, ...] = ()
    seldepth: int | None = None
    nodes: int | None = None
    nps: int | None = None


class MoveClassification(StrEnum):
    """Human-facing move quality labels."""

    BRILLIANT = "brilliant"
    GREAT = "great"
    BEST = "best"
    EXCELLENT = "excellent"
    GOOD = "good"
    BOOK = "book"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"
    MISSED_WIN = "missed_win"

    @property
    def nag(self) -> str:
        """Chess NAG annotation symbol."""
        return _CLASSIFICATION_NAG[self]

    @property
    def color_hex(self) -> str:
        """Hex colour string for UI display."""
        return _CLASSIFICATION_COLOR[self]

    @property
    def is_significant(self) -> bool:
        """Whether a review timeline should mark moves with this label."""
        return self in _SIGNIFICANT


_CLASSIFICATION_NAG: dict[MoveClassification, str] = {
    MoveClassification.BRILLIANT: "!!",
    MoveClassification.GREAT: "!",
    MoveClassification.BEST: "",
    MoveClassification.EXCELLENT: "",
    MoveClassification.GOOD: "",
    MoveClassification.BOOK: "",
    MoveClassification.INACCURACY: "?!",
    MoveClassification.MISTAKE: "?",
    MoveClassification.BLUNDER: "??",
    MoveClassification.MISSED_WIN: "?",
}

_CLASSIFICATION_COLOR: dict[MoveClassification, str] = {
    MoveClassification.BRILLIANT: "#22d3ee",
    MoveClassification.GREAT: "#60a5fa",
    MoveClassification.BEST: "#4ade80",
    MoveClassification.EXCELLENT: "#86efac",
    MoveClassification.GOOD: "#a3e635",
    MoveClassification.BOOK: "#a8a29e",
    MoveClassification.INACCURACY: "#facc15",
    MoveClassification.MISTAKE: "#fb923c",
    MoveClassification.BLUNDER: "#f87171",
    MoveClassification.MISSED_WIN: "#fca5a5",
}

_SIGNIFICANT = frozenset(
    {
        MoveClassification.BRILLIANT,
        MoveClassification.GREAT,
        MoveClassification.BEST,
        MoveClassification.INACCURACY,
        MoveClassification.MISTAKE,
        MoveClassification.BLUNDER,
        MoveClassification.MISSED_WIN,
    }
)


@dataclass(slots=True, frozen=True)
class GameMove:
    """A played move resolved against the position it was played in."""

    ply: int
    san: str
    uci: str
    color: chess.Color
    fen_before: str
    fen_after: str


@dataclass(slots=True, frozen=True)
class ClassifiedMove:
    """A played move together with its White-relative evaluation and label."""

    move: GameMove
    evaluation: Evaluation | None = None
    classification: MoveClassification | None = None
    cp_loss: int | None = None

    @property
    def san(self) -> str:
        return self.move.san

    @property
    def fen(self) -> str:
        return self.move.fen_after


@dataclass(slots=True, frozen=True)
class AnalysisProgress:
    """Progress of a full-game sweep."""

    current_move: int = 0
    total_moves: int = 0
    is_analyzing: bool = False
    is_complete: bool = False

    @classmethod
    def idle(cls) -> AnalysisProgress:
        return cls()

    @property
    def fraction(self) -> float:
        if self.total_moves <= 0:
            return 0.0
        return self.current_move / self.total_moves


@dataclass(slots=True, frozen=True)
class LiveAnalysisState:
    """Snapshot of the interactive analysis feed."""

    fen: str | None = None
    is_ready: bool = False
    is_analyzing: bool = False
    score: int = 0
    mate: int | None = None
    depth: int = 0
    lines: tuple[EngineLine, ...] = field(default_factory=tuple)


def format_score(score: int, mate: int | None) -> str:
    """Engine-line style score text: ``+0.35``, ``-1.20`` or ``#3``."""
    if mate is not None:
        return f"#{mate}"
    pawns = abs(score) / 100
    sign = "+" if score >= 0 else "-"
    return f"{sign}{pawns:.2f}"
