"""Analysis settings and engine discovery."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from chesslens.errors import EngineNotFoundError

ENGINE_ENV_VARS = ("CHESSLENS_ENGINE", "STOCKFISH_PATH")


@dataclass
class AnalysisSettings:
    """All tunable knobs of the analysis subsystem."""

    # Engine
    engine_path: str | None = None
    engine_args: tuple[str, ...] = field(default_factory=tuple)
    restart_backoff_ms: int = 1000

    # Live analysis
    live_depth: int = 20
    live_lines: int = 3
    max_safe_depth: int = 20
    display_plies: int = 8

    # Game sweep
    game_depth: int = 16


def resolve_engine_path(settings: AnalysisSettings) -> Path:
    """Locate the engine binary: explicit path, environment, then ``PATH``."""
    candidates: list[str] = []
    if settings.engine_path:
        candidates.append(settings.engine_path)
    for var in ENGINE_ENV_VARS:
        value = os.getenv(var)
        if value:
            candidates.append(value)

    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_file():
            return path

    found = shutil.which("stockfish")
    if found:
        return Path(found)

    raise EngineNotFoundError(
        "No UCI engine found. Set engine_path, CHESSLENS_ENGINE or STOCKFISH_PATH."
    )
