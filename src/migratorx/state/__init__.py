"""Checkpoint state backends."""

from migratorx.state.base import CheckpointKey, CheckpointState, MemoryState, StateKey, completed_key

__all__ = ["CheckpointKey", "CheckpointState", "MemoryState", "StateKey", "completed_key"]
