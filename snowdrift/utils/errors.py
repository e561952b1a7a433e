"""Errors tailored for this project.

This module provides:
- ClockRegressionFatal: the wall clock went back and could not be waited out
- GeneratorClosed: the generator was shut down while or before serving a call
- CoordinationUnavailable: the coordination service could not be reached
- AllocationExhausted: no unique worker identity can be guaranteed
"""


class ClockRegressionFatal(RuntimeError):
    """The clock regressed beyond recovery; no identifier was issued."""

    def __init__(self, message: str, last_timestamp: int, observed: int):
        super().__init__(message)
        self.last_timestamp = last_timestamp
        self.observed = observed

    @property
    def offset(self) -> int:
        """How many milliseconds the clock is behind the last issued timestamp."""
        return self.last_timestamp - self.observed

class GeneratorClosed(RuntimeError):
    """The generator is shutting down."""

class CoordinationUnavailable(ConnectionError):
    """The coordination service could not be reached within the retry budget."""

class AllocationExhausted(RuntimeError):
    """The worker identity space is saturated."""
