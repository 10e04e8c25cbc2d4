from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, List


class SessionHistoryStore:
    """Bounded, per-session record of invoked tools.

    Appends are atomic per call; once a session holds ``window`` entries the
    oldest are dropped first.
    """

    def __init__(self, window: int = 20) -> None:
        if window < 1:
            raise ValueError("history window must be >= 1")
        self.window = window
        self._sessions: Dict[str, Deque[str]] = {}
        self._lock = threading.Lock()

    def append_tool(self, session_id: str, tool_id: str) -> List[str]:
        with self._lock:
            history = self._sessions.get(session_id)
            if history is None:
                history = deque(maxlen=self.window)
                self._sessions[session_id] = history
            history.append(tool_id)
            return list(history)

    def get_tool_history(self, session_id: str) -> List[str]:
        with self._lock:
            return list(self._sessions.get(session_id, ()))

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sessions(self) -> List[str]:
        with self._lock:
            return sorted(self._sessions)
