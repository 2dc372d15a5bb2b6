"""
Exception taxonomy for the neighborhood engine.

Callers catch NeighborhoodEngineError for anything the engine raises on
purpose; requests/SQLAlchemy errors are wrapped before they leave a service.
"""

from typing import Optional


class NeighborhoodEngineError(Exception):
    """Base exception for neighborhood engine errors"""
    pass


class ResolutionError(NeighborhoodEngineError):
    """Raised when a coordinate cannot be mapped to any area identifier"""
    pass


class DataFetchError(NeighborhoodEngineError):
    """Raised when demographic statistics cannot be fetched or parsed"""
    pass


class PersistenceError(NeighborhoodEngineError):
    """
    Raised when a store write fails.

    When raised while persisting a score, ``score`` holds the computed value
    so the caller still gets the result even though it was not saved.
    """

    def __init__(self, message: str, score: Optional[float] = None):
        super().__init__(message)
        self.score = score
