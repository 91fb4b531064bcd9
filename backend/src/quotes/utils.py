import math
import uuid
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Les datetimes naïfs (SQLite, clients sans offset) sont considérés comme UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_quote_number(prefix: str, now: Optional[datetime] = None) -> str:
    """Numéro lisible: PREFIX-AAAAMMJJ-XXXXXX (suffixe aléatoire hexadécimal)."""
    now = now or utcnow()
    return f"{prefix}-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
