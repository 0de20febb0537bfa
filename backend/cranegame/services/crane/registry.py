import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .engine import ChangeListener, RoundEngine
from .round_config import RoundConfig
from .timers import TaskScheduler


@dataclass
class LiveSession:
    session_id: str
    engine: RoundEngine
    scheduler: TaskScheduler
    lock: threading.RLock = field(default_factory=threading.RLock)
    owner_sid: Optional[str] = None
    # One leaderboard entry per played session
    score_submitted: bool = False

    def restart(self) -> None:
        """Start (or restart) the engine; caller holds ``lock``."""
        self.score_submitted = False
        self.engine.start_session()

    def snapshot(self) -> dict:
        payload = self.engine.snapshot()
        payload['session_id'] = self.session_id
        payload['score_submitted'] = self.score_submitted
        return payload


class SessionRegistry:
    """In-memory map of live crane sessions, one scheduler each."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._sessions: Dict[str, LiveSession] = {}
        self._lock = threading.Lock()

    def create(self, config: RoundConfig, on_change: Optional[ChangeListener] = None,
               owner_sid: Optional[str] = None) -> LiveSession:
        scheduler = TaskScheduler(self.clock)
        engine = RoundEngine(config, scheduler, on_change=on_change)
        with self._lock:
            session_id = secrets.token_hex(4)
            while session_id in self._sessions:
                session_id = secrets.token_hex(4)
            live = LiveSession(session_id=session_id, engine=engine, scheduler=scheduler, owner_sid=owner_sid)
            self._sessions[session_id] = live
        return live

    def get(self, session_id: Optional[str]) -> Optional[LiveSession]:
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def owned_by(self, sid: str):
        with self._lock:
            return [s for s in self._sessions.values() if s.owner_sid == sid]

    def remove(self, session_id: str) -> Optional[LiveSession]:
        with self._lock:
            live = self._sessions.pop(session_id, None)
        if live is not None:
            with live.lock:
                live.engine.shutdown()
        return live

    def clear(self) -> None:
        with self._lock:
            ids = list(self._sessions)
        for session_id in ids:
            self.remove(session_id)


sessions = SessionRegistry()
