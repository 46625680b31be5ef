"""
j48sspy.exceptions
==================

Error kinds raised by the tree induction engine.

Configuration problems are reported before any training work starts.  Broken
internal bookkeeping (negative weights in a distribution, a corrupted
evaluation cache) is a defect and is reported with its own error type so it
is never mistaken for bad user input.
"""


class ConfigurationError(ValueError):
    """Mutually exclusive or out-of-range hyperparameters."""


class InternalInvariantError(RuntimeError):
    """An internal consistency check failed during training or prediction."""
