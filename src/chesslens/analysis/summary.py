"""Per-side aggregates over a classified game."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

import chess

from chesslens.analysis.models import ClassifiedMove, MoveClassification

# Cap centipawn losses so mate swings don't dominate the average.
_CP_CAP = 1500


@dataclass(slots=True, frozen=True)
class SideSummary:
    """Aggregate quality metrics for one side."""

    moves: int
    avg_cp_loss: float
    accuracy: float
    counts: dict[MoveClassification, int] = field(default_factory=dict)

    def count(self, label: MoveClassification) -> int:
        return self.counts.get(label, 0)


@dataclass(slots=True, frozen=True)
class GameSummary:
    white: SideSummary
    black: SideSummary

    def side(self, color: chess.Color) -> SideSummary:
        return self.white if color == chess.WHITE else self.black


def summarize_game(moves: Iterable[ClassifiedMove]) -> GameSummary:
    moves = list(moves)
    return GameSummary(
        white=summarize_side(m for m in moves if m.move.color == chess.WHITE),
        black=summarize_side(m for m in moves if m.move.color == chess.BLACK),
    )


def summarize_side(moves: Iterable[ClassifiedMove]) -> SideSummary:
    counts: Counter[MoveClassification] = Counter()
    total = 0
    loss_sum = 0
    losses = 0
    for move in moves:
        total += 1
        if move.classification is not None:
            counts[move.classification] += 1
        if move.cp_loss is not None:
            loss_sum += max(0, min(_CP_CAP, move.cp_loss))
            losses += 1

    avg = (loss_sum / losses) if losses > 0 else 0.0
    accuracy = accuracy_from_avg_cp_loss(avg) if losses > 0 else 100.0
    return SideSummary(
        moves=total,
        avg_cp_loss=avg,
        accuracy=accuracy,
        counts=dict(counts),
    )


def accuracy_from_avg_cp_loss(avg_cp_loss: float) -> float:
    """Convert average centipawn loss to an accuracy percentage.

    ``103.1668 * exp(-0.04354 * ACPL) - 3.1669`` is the usual
    win-probability-inspired approximation.
    """
    if avg_cp_loss <= 0:
        return 100.0
    raw = 103.1668 * math.exp(-0.04354 * avg_cp_loss) - 3.1669
    return max(0.0, min(100.0, raw))
