"""Injectable time source."""

from datetime import datetime, timezone


class SystemClock:
    """Implements Clock protocol using the system UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
