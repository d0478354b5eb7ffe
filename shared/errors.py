"""Error taxonomy of the memory-card index.

Only EmbeddingUnavailableError and the OS level errors ever leave the
index on purpose; the other signals are raised and handled inside the
consistency manager.
"""


class MemoryIndexError(Exception):
    """Base class for all memory index errors."""


class EmbeddingUnavailableError(MemoryIndexError):
    """The embedding provider is not booted or the embedding call failed."""


class StaleIndexDetected(MemoryIndexError):
    """Internal signal: the index of a scope no longer reflects its cards.

    Attributes:
        scope: Wire form of the affected scope.
        reason: Human-readable drift reason (model change, new card, ...).
    """

    def __init__(self, scope: str, reason: str):
        super().__init__(f"Index for scope '{scope}' is stale: {reason}")
        self.scope = scope
        self.reason = reason


class RebuildInProgress(MemoryIndexError):
    """Internal signal: a rebuild for the scope is already running."""

    def __init__(self, scope: str):
        super().__init__(f"Index rebuild already in progress for scope '{scope}'")
        self.scope = scope

