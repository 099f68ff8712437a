"""Position and move helpers delegated to python-chess."""

from __future__ import annotations

from collections.abc import Iterable

import chess

from chesslens.analysis.models import GameMove

STARTING_FEN = chess.STARTING_FEN


def validate_fen(fen: str) -> None:
    """Raise ``ValueError`` unless *fen* describes a legal position."""
    board = chess.Board(fen)
    if not board.is_valid():
        raise ValueError(f"Illegal position ({board.status()!r}): {fen!r}")


def side_to_move(fen: str) -> chess.Color:
    """Colour to move in *fen* without building a full board."""
    parts = fen.split()
    if len(parts) < 2 or parts[1] not in ("w", "b"):
        raise ValueError(f"Invalid FEN side to move: {fen!r}")
    return chess.WHITE if parts[1] == "w" else chess.BLACK


def play_san(board: chess.Board, san: str) -> GameMove:
    """Apply *san* to *board* in place and describe the move played.

    Raises ``ValueError`` for illegal, ambiguous or unparsable notation.
    """
    fen_before = board.fen()
    ply = board.ply()
    color = board.turn
    move = board.parse_san(san)
    canonical = board.san(move)
    board.push(move)
    return GameMove(
        ply=ply,
        san=canonical,
        uci=move.uci(),
        color=color,
        fen_before=fen_before,
        fen_after=board.fen(),
    )


def resolve_moves(sans: Iterable[str], start_fen: str = STARTING_FEN) -> list[GameMove]:
    """Replay a SAN move list from *start_fen*."""
    board = chess.Board(start_fen)
    return [play_san(board, san) for san in sans]


def pv_to_san(fen: str, moves: Iterable[str]) -> tuple[str, ...]:
    """SAN for a UCI principal variation, stopping at the first illegal move."""
    board = chess.Board(fen)
    sans: list[str] = []
    for uci in moves:
        try:
            move = chess.Move.from_uci(uci)
        except ValueError:
            break
        if not board.is_legal(move):
            break
        sans.append(board.san(move))
        board.push(move)
    return tuple(sans)
