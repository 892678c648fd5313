"""MAGI council -- multi-agent deliberation with an admission-controlled gateway."""

__version__ = "0.1.0"
