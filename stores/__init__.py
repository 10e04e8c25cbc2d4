"""Durable timing samples and session tool history."""

from stores.session_history import SessionHistoryStore
from stores.timing_store import TimingStore

__all__ = ["SessionHistoryStore", "TimingStore"]
