"""UCI text protocol: inbound line parsing and outbound command builders."""

from __future__ import annotations

from dataclasses import dataclass

from chesslens.analysis.models import MATE_SCORE, InfoUpdate

UCI_OK = "uciok"
READY_OK = "readyok"

_INFO = "info"
_BESTMOVE = "bestmove"
_DIAGNOSTIC = "string"
_NULL_MOVES = frozenset({"(none)", "0000"})

# Integer-valued info fields mapped to InfoUpdate attribute names.
_INT_FIELDS = {
    "depth": "depth",
    "seldepth": "seldepth",
    "multipv": "multipv",
    "nodes": "nodes",
    "nps": "nps",
}


@dataclass(slots=True, frozen=True)
class BestMove:
    """Completion marker of a search."""

    move: str
    ponder: str | None = None


def _parse_int(token: str) -> int | None:
    try:
        return int(token)
    except ValueError:
        return None


def parse_info_line(line: str) -> InfoUpdate | None:
    """Parse an ``info`` line into a partial evaluation update.

    Returns ``None`` for anything that is not an evaluation line: handshake
    tokens, ``info string`` diagnostics, ``bestmove`` and info lines that
    carry neither a score nor a principal variation.
    """
    tokens = line.split()
    if not tokens or tokens[0] != _INFO:
        return None
    if _DIAGNOSTIC in tokens[1:]:
        return None
    if "pv" not in tokens and "score" not in tokens:
        return None

    fields: dict[str, object] = {}
    i = 1
    n = len(tokens)
    while i < n:
        token = tokens[i]
        if token == "pv":
            # PV runs to the end of the line.
            moves = tuple(tokens[i + 1 :])
            if moves:
                fields["pv"] = moves
            break
        if token in _INT_FIELDS:
            if i + 1 < n:
                value = _parse_int(tokens[i + 1])
                if value is not None:
                    fields[_INT_FIELDS[token]] = value
            i += 2
            continue
        if token == "score":
            kind = tokens[i + 1] if i + 1 < n else ""
            value = _parse_int(tokens[i + 2]) if i + 2 < n else None
            if value is not None:
                if kind == "cp":
                    fields["score"] = value
                    fields["mate"] = None
                elif kind == "mate":
                    fields["mate"] = value
                    fields["score"] = MATE_SCORE if value > 0 else -MATE_SCORE
            i += 3
            continue
        i += 1

    return InfoUpdate(**fields)  # type: ignore[arg-type]


def parse_bestmove_line(line: str) -> BestMove | None:
    """Parse ``bestmove <move> [ponder <move>]``."""
    tokens = line.split()
    if not tokens or tokens[0] != _BESTMOVE:
        return None
    move = tokens[1] if len(tokens) > 1 else ""
    if move in _NULL_MOVES:
        move = ""
    ponder = None
    if len(tokens) > 3 and tokens[2] == "ponder":
        ponder = tokens[3]
    return BestMove(move=move, ponder=ponder)


# ── Outbound commands ────────────────────────────────────────────────────────


def uci() -> str:
    return "uci"


def isready() -> str:
    return "isready"


def set_option(name: str, value: object) -> str:
    return f"setoption name {name} value {value}"


def new_game() -> str:
    return "ucinewgame"


def position(fen: str) -> str:
    return f"position fen {fen}"


def go_depth(depth: int) -> str:
    return f"go depth {depth}"


def stop() -> str:
    return "stop"


def quit() -> str:  # noqa: A001
    return "quit"
