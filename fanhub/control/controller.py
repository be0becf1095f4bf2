"""Fan state controller: applies speed changes to one fan or many.

``status`` is never written on its own: every path goes through
:func:`set_speed`, which derives ON/OFF from the rpm it stores.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from fanhub.db import transaction, utcnow
from fanhub.errors import FanHubError, FanNotFound, ValidationError
from fanhub.provisioning.validator import MAX_RPM, derive_status
from fanhub.records import fan_dict, get_fan, get_floor

logger = logging.getLogger(__name__)

STATUSES = ("ON", "OFF")


def coerce_rpm(value: Any) -> int:
    """Return *value* as an int in ``0..MAX_RPM`` or raise :class:`ValidationError`."""
    if value is None:
        raise ValidationError("rpm is required")
    if isinstance(value, bool):
        raise ValidationError("rpm must be a number", {"rpm": value})
    if isinstance(value, int):
        rpm = value
    elif isinstance(value, float) and value.is_integer():
        rpm = int(value)
    else:
        raise ValidationError("rpm must be a whole number", {"rpm": value})
    if rpm < 0:
        raise ValidationError("rpm must not be negative", {"rpm": rpm})
    if rpm > MAX_RPM:
        raise ValidationError(f"rpm must not exceed {MAX_RPM}", {"rpm": rpm})
    return rpm


def _require_ids(floor_id: Any, fan_id: Any) -> None:
    if not isinstance(floor_id, str) or not isinstance(fan_id, str) or not floor_id or not fan_id:
        raise ValidationError("floorId and fanId are required")


def set_speed(conn: sqlite3.Connection, floor_id: str, fan_id: str, rpm: Any) -> dict:
    """Set a fan's rpm (and derived status); returns the updated fan.

    The update is conditional on both ids, so a fan that lives on another
    floor is reported exactly like a fan that does not exist.
    """
    _require_ids(floor_id, fan_id)
    value = coerce_rpm(rpm)
    status = derive_status(value)

    with transaction(conn):
        cur = conn.execute(
            "UPDATE fans SET rpm = ?, status = ?, updated_at = ? WHERE id = ? AND floor_id = ?",
            (value, status, utcnow(), fan_id, floor_id),
        )
        if cur.rowcount == 0:
            raise FanNotFound(fan_id)
        fan = get_fan(conn, fan_id)

    logger.debug("Fan %s on floor %s set to %d rpm (%s)", fan_id, floor_id, value, status)
    return fan_dict(fan)


def set_status(conn: sqlite3.Connection, floor_id: str, fan_id: str, status: Any) -> dict:
    """Switch a fan ON/OFF without breaking ``status = ON ⟺ rpm > 0``."""
    wanted = str(status or "").strip().upper()
    if wanted not in STATUSES:
        raise ValidationError("status must be ON or OFF", {"status": status})
    _require_ids(floor_id, fan_id)
    if wanted == "OFF":
        return set_speed(conn, floor_id, fan_id, 0)

    fan = get_fan(conn, fan_id, floor_id)
    if fan is None:
        raise FanNotFound(fan_id)
    if fan["rpm"] <= 0:
        raise ValidationError("Set an rpm greater than 0 to turn the fan ON", {"fanId": fan_id})
    return fan_dict(fan)


# ══════════════════════════════════════════════════════════════════
# BULK
# ══════════════════════════════════════════════════════════════════

@dataclass
class BulkSummary:
    floor_id: str
    total: int
    floor_found: bool = True
    results: list[dict] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if not r["success"])

    def to_dict(self) -> dict:
        return {
            "floorId": self.floor_id,
            "total": self.total,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "results": self.results,
        }


def set_multiple(
    conn: sqlite3.Connection,
    floor_id: str,
    items: Sequence[Mapping[str, Any]],
) -> BulkSummary:
    """Apply each ``{fanId, rpm}`` independently; one failure never blocks the rest."""
    if not isinstance(items, (list, tuple)):
        raise ValidationError("fans must be a list of {fanId, rpm}")

    summary = BulkSummary(floor_id=floor_id, total=len(items))
    if not isinstance(floor_id, str) or not floor_id or get_floor(conn, floor_id) is None:
        summary.floor_found = False
        return summary

    for item in items:
        if not isinstance(item, Mapping):
            summary.results.append(
                {"fanId": None, "success": False, "error": "Each item must be an object"}
            )
            continue
        fan_id = item.get("fanId")
        try:
            fan = set_speed(conn, floor_id, fan_id, item.get("rpm"))
        except FanHubError as exc:
            summary.results.append({"fanId": fan_id, "success": False, "error": exc.message})
        else:
            summary.results.append({"fanId": fan_id, "success": True, "fan": fan})

    logger.info(
        "Bulk speed update on floor %s: %d ok, %d failed",
        floor_id, summary.success_count, summary.error_count,
    )
    return summary
