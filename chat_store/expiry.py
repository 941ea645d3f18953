import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

DEFAULT_TTL: timedelta = timedelta(hours=24)

# Largest magnitude a JavaScript Date accepts, which the web client relies on.
MAX_TIMESTAMP_MS: int = 8_640_000_000_000_000

_UNIT_FACTORS = {"ms": 1000, "s": 1}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch(moment: datetime, unit: str = "ms") -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * _UNIT_FACTORS[unit])


def default_expiry(now: datetime) -> int:
    """Seconds-since-epoch timestamp after which a record may be purged."""
    return to_epoch(now + DEFAULT_TTL, unit="s")


def _parse_date_string(value: str) -> Optional[datetime]:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _within_range(epoch: int, unit: str) -> bool:
    return abs(epoch) * (1000 // _UNIT_FACTORS[unit]) <= MAX_TIMESTAMP_MS


def parse_timestamp(value: Any, unit: str = "ms") -> Optional[int]:
    """Coerce a loosely typed timestamp into an integer epoch in ``unit``.

    Numbers (and numeric strings) are taken verbatim, as already being in
    ``unit``. ISO-8601 strings and datetimes are converted. Anything else,
    including booleans, NaN and out-of-range values, is invalid and yields
    ``None``.
    """
    if unit not in _UNIT_FACTORS:
        raise ValueError(f"Unknown timestamp unit: {unit}")

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        epoch = to_epoch(value, unit)
        return epoch if _within_range(epoch, unit) else None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            moment = _parse_date_string(text)
            if moment is None:
                return None
            epoch = to_epoch(moment, unit)
            return epoch if _within_range(epoch, unit) else None

    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if isinstance(value, Decimal) and not value.is_finite():
            return None
        epoch = int(value)
        return epoch if _within_range(epoch, unit) else None

    return None
