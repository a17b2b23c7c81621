# ============================================================================
# Clock
# ============================================================================
from datetime import datetime, timezone
from typing import Optional, Protocol

class Clock(Protocol):
    """Source of the current time, injected so tests can pin it."""

    def now(self) -> datetime:
        ...

class SystemClock:
    """Wall clock returning timezone-aware UTC datetimes"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
