from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Request

from config import get_settings


def utcnow() -> datetime:
    """UTC naive, igual que el resto de columnas DateTime del proyecto."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class RequestContext:
    """Origen de la firma: reloj, IP y user-agent que quedan como evidencia."""

    ip_address: str = "unknown"
    user_agent: str = "unknown"
    now: datetime = field(default_factory=utcnow)
    tz_name: Optional[str] = None

    def _local(self) -> datetime:
        tz = ZoneInfo(self.tz_name or get_settings().timezone)
        return self.now.replace(tzinfo=timezone.utc).astimezone(tz)

    @property
    def fecha(self) -> str:
        return self._local().date().isoformat()

    @property
    def horario(self) -> str:
        return self._local().strftime("%H:%M:%S")


def get_request_context(request: Request) -> RequestContext:
    ip = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    return RequestContext(
        ip_address=ip or "unknown",
        user_agent=request.headers.get("user-agent") or "unknown",
    )
