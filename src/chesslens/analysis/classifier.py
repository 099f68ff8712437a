"""Move quality classification from a pair of engine evaluations.

``before`` is the evaluation of the position the move was played in, from
the mover's point of view. ``after`` is the evaluation of the resulting
position, from the opponent's point of view (the side to move there).
"""

from __future__ import annotations

import chess

from chesslens.analysis.models import Evaluation, MoveClassification

_BEST_MAX_CP_LOSS = 10
_GOOD_MAX_CP_LOSS = 50
_INACCURACY_MAX_CP_LOSS = 100
_MISTAKE_MAX_CP_LOSS = 200


def centipawn_loss(before: Evaluation, after: Evaluation) -> int:
    """Score the mover gave up, both sides expressed from the mover's view."""
    return before.score - (-after.score)


def best_move_was_played(played_uci: str, before: Evaluation) -> bool:
    return bool(before.best_move) and played_uci == before.best_move


def classify_move(
    before: Evaluation,
    after: Evaluation,
    best_move_was_played: bool,
) -> MoveClassification:
    """Map an evaluation swing onto a :class:`MoveClassification`.

    ``great``, ``book`` and ``missed_win`` are never produced here.
    """
    mate_judgment = _classify_mate_swing(before, after)
    if mate_judgment is not None:
        return mate_judgment

    cp_loss = centipawn_loss(before, after)
    if best_move_was_played and cp_loss <= 0:
        return MoveClassification.BEST
    if cp_loss <= _BEST_MAX_CP_LOSS:
        if best_move_was_played:
            return MoveClassification.BEST
        return MoveClassification.EXCELLENT
    if cp_loss <= _GOOD_MAX_CP_LOSS:
        return MoveClassification.GOOD
    if cp_loss <= _INACCURACY_MAX_CP_LOSS:
        return MoveClassification.INACCURACY
    if cp_loss <= _MISTAKE_MAX_CP_LOSS:
        return MoveClassification.MISTAKE
    return MoveClassification.BLUNDER


def _classify_mate_swing(
    before: Evaluation,
    after: Evaluation,
) -> MoveClassification | None:
    if before.is_mate and not after.is_mate:
        return MoveClassification.BLUNDER

    if after.mate is None:
        return None
    # ``after`` is from the opponent's side: mate <= 0 means the opponent is
    # the one getting mated (0 = already checkmated).
    mover_mates_after = after.mate <= 0

    if before.mate is None:
        if mover_mates_after:
            return MoveClassification.BRILLIANT
        return MoveClassification.BLUNDER

    if before.mate > 0 and not mover_mates_after:
        return MoveClassification.BLUNDER
    if before.mate < 0 and mover_mates_after:
        return MoveClassification.BRILLIANT
    return None


def to_white_perspective(evaluation: Evaluation, side_to_move: chess.Color) -> Evaluation:
    """Re-express a side-to-move evaluation as positive-favours-White."""
    if side_to_move == chess.WHITE:
        return evaluation
    return evaluation.negated()
