"""Process-lifetime evaluation cache keyed by FEN."""

from __future__ import annotations

from chesslens.analysis.models import Evaluation


class EvaluationCache:
    """FEN → best known :class:`Evaluation`, shared by live and game analysis.

    Concurrency contract: all access happens on the Qt thread, and every
    write is a single assignment. Two writers on the same FEN race with
    last-writer-wins and no depth comparison, so a shallow live result may
    replace a deeper sweep result. Entries are never evicted.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, Evaluation] = {}

    def get(self, fen: str) -> Evaluation | None:
        return self._entries.get(fen)

    def put(self, fen: str, evaluation: Evaluation) -> None:
        self._entries[fen] = evaluation

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, fen: object) -> bool:
        return fen in self._entries

    def __len__(self) -> int:
        return len(self._entries)
