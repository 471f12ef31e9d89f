"""
Error taxonomy for the clustering engine.

  EmbeddingUnavailable : embedding provider failed or timed out for a term
  AnnotationUnavailable: semantic annotation failed for a cluster
  InsufficientData     : not enough terms/snapshots for the requested operation
  DegenerateClustering : density clustering could not partition the input

Only InsufficientData ever reaches a caller of the pipeline, and only for an
empty input list. Everything else is contained at the term or cluster
boundary and turned into degraded output.
"""

from typing import Optional


class NicheEngineError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} [{self.context}]"
        return self.message


class EmbeddingUnavailable(NicheEngineError):
    """`attempts` counts provider calls made for the term (0 if none were)."""

    def __init__(self, message: str, context: Optional[str] = None, attempts: int = 0):
        super().__init__(message, context)
        self.attempts = attempts


class AnnotationUnavailable(NicheEngineError):
    pass


class InsufficientData(NicheEngineError):
    pass


class DegenerateClustering(NicheEngineError):
    pass
