"""Rules collaborator: positions and moves via python-chess."""

from chesslens.game.moves import (
    STARTING_FEN,
    play_san,
    pv_to_san,
    resolve_moves,
    side_to_move,
    validate_fen,
)

__all__ = [
    "STARTING_FEN",
    "play_san",
    "pv_to_san",
    "resolve_moves",
    "side_to_move",
    "validate_fen",
]
