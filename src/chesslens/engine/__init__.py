"""UCI engine package: protocol parsing, process transport and sessions."""

from chesslens.engine.process import UciProcess
from chesslens.engine.protocol import BestMove, parse_bestmove_line, parse_info_line
from chesslens.engine.session import EngineSession, EngineTransport, SessionState

__all__ = [
    "BestMove",
    "EngineSession",
    "EngineTransport",
    "SessionState",
    "UciProcess",
    "parse_bestmove_line",
    "parse_info_line",
]
