"""Error taxonomy for the retrieval core.

Every failure surfaced by a stage is a :class:`RetrievalError`.  The
orchestrator stamps the failing stage onto the exception before re-raising
it, so callers can tell *where* a search broke without string matching.
"""

from __future__ import annotations

from enum import StrEnum


class Stage(StrEnum):
    CLASSIFY = "classify"
    EMBED = "embed"
    VECTOR_SEARCH = "vector_search"
    EXPAND = "expand"
    ASSEMBLE = "assemble"
    COMPOSE = "compose"


class RetrievalError(Exception):
    """Base class for all retrieval failures."""

    retryable: bool = False

    def __init__(self, message: str, *, stage: Stage | None = None) -> None:
        super().__init__(message)
        self.stage = stage

    def at_stage(self, stage: Stage) -> RetrievalError:
        """Record *stage* unless an inner layer already did. Returns ``self``."""
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        msg = super().__str__()
        return f"[{self.stage}] {msg}" if self.stage else msg


class InvalidInputError(RetrievalError):
    """Caller error: wrong vector dimension, hop count, limit, entity type..."""


class StoreUnavailableError(RetrievalError):
    """The graph store could not be reached or failed transiently."""

    retryable = True


class QueryTimeoutError(StoreUnavailableError):
    """A single store query exceeded the configured per-query timeout."""

    def __init__(self, timeout_s: float, query_prefix: str = "") -> None:
        self.timeout_s = timeout_s
        self.query_prefix = query_prefix
        super().__init__(f"Query timed out after {timeout_s}s: {query_prefix}")


class StoreDataError(RetrievalError):
    """The store answered with records of an unexpected shape."""


class EmbeddingUnavailableError(RetrievalError):
    """The embedding gateway failed or returned an unusable vector."""

    retryable = True


class SearchTimeoutError(RetrievalError):
    """The caller-supplied time budget for a search elapsed."""

    def __init__(self, timeout_s: float, *, stage: Stage | None = None) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"Search exceeded its {timeout_s}s budget", stage=stage)
