"""Error taxonomy shared by the graph engine and the knowledge base."""

from __future__ import annotations


class NoodleError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(NoodleError, ValueError):
    """Bad configuration or input; the requested operation never starts."""


class BackendError(NoodleError):
    """A completion or embedding provider failed (transport, auth, quota)."""


class EmbeddingError(BackendError):
    """The embedding backend could not produce a vector."""


class ParseError(NoodleError):
    """Structured model output could not be decoded."""


class StaleRunError(NoodleError):
    """A node run lost its token (newer run started or node was removed)."""
