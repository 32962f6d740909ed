"""Repositories."""
from opencode_bridge.state.repositories.sessions import SessionRecordRepository
__all__ = ["SessionRecordRepository"]
