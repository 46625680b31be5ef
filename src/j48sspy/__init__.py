# j48sspy/__init__.py
"""
j48sspy: J48-style decision trees over nominal, numeric, sequence and
time series attributes (scikit-learn style).

Exports:
    - J48SSClassifier
    - TreeConfig, PruningStrategy
    - ConfigurationError, InternalInvariantError
"""
from .config import PruningStrategy, TreeConfig
from .exceptions import ConfigurationError, InternalInvariantError
from .tree import J48SSClassifier

__all__ = [
    "J48SSClassifier",
    "TreeConfig",
    "PruningStrategy",
    "ConfigurationError",
    "InternalInvariantError",
]
__version__ = "0.2.0"
