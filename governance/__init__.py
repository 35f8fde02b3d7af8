"""AI configuration governance engine.

Evaluation gates, quality baselines, regression detection, model registry,
A/B experiments and an append-only audit trail for AI-facing configuration
changes.
"""

__version__ = "0.1.0"
