from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    owner_id: int
    goal: str
    start_time: datetime
    end_time: datetime

    @property
    def duration_hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600

    def elapsed(self, now: datetime) -> timedelta:
        return max(now - self.start_time, timedelta(0))

    def remaining(self, now: datetime) -> timedelta:
        """Time left until end_time, never negative."""
        return max(self.end_time - now, timedelta(0))


class SessionStore:
    """In-memory owner_id -> Session map. Nothing survives a restart."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock
        self._sessions: dict[int, Session] = {}

    def put(self, owner_id: int, goal: str, duration_hours: float) -> Session:
        now = self.clock()
        session = Session(
            owner_id=owner_id,
            goal=goal,
            start_time=now,
            end_time=now + timedelta(hours=duration_hours),
        )
        self._sessions[owner_id] = session
        return session

    def get(self, owner_id: int) -> Optional[Session]:
        return self._sessions.get(owner_id)

    def remove(self, owner_id: int) -> Optional[Session]:
        return self._sessions.pop(owner_id, None)

    def __contains__(self, owner_id: int) -> bool:
        return owner_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
