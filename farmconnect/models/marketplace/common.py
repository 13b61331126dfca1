from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_dt(val: Any) -> Optional[datetime]:
    """
    Coerce stored date values (datetime, epoch seconds/ms, ISO or Y-m-d strings)
    to an aware UTC datetime. Returns None when the value can't be read.
    """
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        # JS clients store milliseconds
        seconds = val / 1000.0 if val > 1e11 else float(val)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(val).strip()
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class Coordinates(BaseModel):
    lat: float = 0.0
    lng: float = 0.0


class Location(BaseModel):
    address: str = ""
    coordinates: Coordinates = Field(default_factory=Coordinates)
