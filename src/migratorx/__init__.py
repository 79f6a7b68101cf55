"""Gated, checkpointed orchestration for database major-version upgrades."""

__version__ = "0.3.0"
