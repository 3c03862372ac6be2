"""
Foresight - Prediction Aggregation and Experimentation

Combines the outputs of several predictors into one calibrated decision,
learns which predictors to run in which context, and compares competing
ensemble configurations with controlled A/B experiments.
"""

__version__ = "0.1.0"

# Configuration is available at top level for convenience
from foresight.config import config

__all__ = ["config", "__version__"]
