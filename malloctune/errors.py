"""
Errors raised while evaluating a candidate.
"""

from typing import Optional


class EvaluationError(RuntimeError):
    """A single evaluation failed for infrastructure reasons."""

    def __init__(self, message: str, container: Optional[str] = None):
        super().__init__(message)
        self.container = container


class PortPoolExhausted(EvaluationError):
    """Every port in the pool is leased."""
