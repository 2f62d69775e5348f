from __future__ import annotations


class SieveError(Exception):
    pass


class EmbeddingGenerationError(SieveError):
    """Query embedding failed; no retrieval is possible for the call."""


class TransientDependencyError(SieveError):
    pass


class ResourceExhaustedError(SieveError):
    """The remote dependency reported overload; retrying cannot help."""


class RerankerUnavailableError(SieveError):
    pass
