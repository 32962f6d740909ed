"""State management module."""
from opencode_bridge.state.database import DatabaseManager
from opencode_bridge.state.repositories import SessionRecordRepository
__all__ = ["DatabaseManager", "SessionRecordRepository"]
