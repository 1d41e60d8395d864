"""Validation code constants for pipemagic.api.validate().

These constants prevent stringly-typed error codes and ensure
client code uses the correct validation codes.
"""

from enum import Enum


class ValidationCode(str, Enum):
    """Validation error codes."""

    # Structural errors (blocking, reported jointly)
    INVALID_STRUCTURE = "INVALID_STRUCTURE"
    DUPLICATE_ID = "DUPLICATE_ID"
    DANGLING_EDGE = "DANGLING_EDGE"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    ARITY_VIOLATION = "ARITY_VIOLATION"

    # Readiness (blocking, checked at run time)
    MISSING_INPUT = "MISSING_INPUT"
