"""
Derivation Status Codes
=======================

Fixed set of machine-readable outcomes of a derivation pass.

Each pass ends in exactly ONE status. Failures are returned as values,
never raised out of the engine.
"""

from enum import Enum


class DerivationStatus(str, Enum):
    """
    Outcome of one derivation pass.

    Attributes:
        OK: Feasible region is non-empty
        EMPTY: Answered questions contradict each other; no location fits
        FAILED: A question or shape was invalid; see the error block
        BUSY: A pass was in flight and the busy policy rejected this one
    """

    OK = "OK"
    EMPTY = "EMPTY"
    FAILED = "FAILED"
    BUSY = "BUSY"


class BusyPolicy(str, Enum):
    """What `submit` does with a snapshot that arrives mid-pass."""

    COALESCE = "coalesce"
    REJECT = "reject"
