"""Batch row validator: turns one raw CSV row into a typed draft.

Pure and deterministic: no database access, no global uniqueness checks
(those belong to the coordinator).  A raw row never travels past this module;
callers get either a draft or a :class:`RowRejection`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Union

# CSV column headers
REGISTER_COLUMNS = ("Holding register", "Description", "Read/Write", "Value")
FAN_COLUMNS = ("FanId", "Fan Name", "FanModelId", "RPM")

KIND_REGISTER = "register"
KIND_FAN = "fan"

# Rejection reasons
MISSING_REGISTER_FIELDS = "Missing required fields"
MISSING_FAN_FIELDS = "Missing FanId, Fan Name or FanModelId"
INVALID_ACCESS = "Invalid access mode"
INVALID_RPM = "Invalid RPM value"

# Bounds of a SQLite INTEGER column
INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1
MAX_RPM = 1_000_000

ACCESS_MODES = ("Read", "Write", "Read/Write")
_ACCESS_ALIASES = {
    "read": "Read",
    "r": "Read",
    "write": "Write",
    "w": "Write",
    "read/write": "Read/Write",
    "readwrite": "Read/Write",
    "r/w": "Read/Write",
    "rw": "Read/Write",
}


@dataclass(frozen=True)
class RegisterDraft:
    register: int
    description: str
    access: str
    value_range: str


@dataclass(frozen=True)
class FanDraft:
    device_id: int
    name: str
    fan_model_id: str
    rpm: int

    @property
    def status(self) -> str:
        return derive_status(self.rpm)


@dataclass(frozen=True)
class RowRejection:
    row: int
    row_data: dict
    error: str

    def to_dict(self) -> dict:
        return {"row": self.row, "rowData": self.row_data, "error": self.error}


Draft = Union[RegisterDraft, FanDraft]


def derive_status(rpm: int) -> str:
    return "ON" if rpm > 0 else "OFF"


def _text(row: Mapping[str, str | None], column: str) -> str:
    value = row.get(column)
    return value.strip() if isinstance(value, str) else ""


def _parse_int(value: str) -> int | None:
    """Parse *value* as an integer that fits a SQLite INTEGER, else *None*."""
    try:
        number = int(value)
    except ValueError:
        number = None
    if number is not None:
        return number if INT_MIN <= number <= INT_MAX else None
    # Spreadsheets like to export whole numbers as "12.0"
    try:
        as_float = float(value)
    except ValueError:
        return None
    if not as_float.is_integer():
        return None
    number = int(as_float)
    return number if INT_MIN <= number <= INT_MAX else None


def normalize_access(value: str) -> str | None:
    return _ACCESS_ALIASES.get(value.replace(" ", "").lower())


def validate_register_row(row: Mapping[str, str | None], row_index: int) -> RegisterDraft | RowRejection:
    register = _text(row, "Holding register")
    description = _text(row, "Description")
    access = _text(row, "Read/Write")
    value_range = _text(row, "Value")

    number = _parse_int(register) if register else None
    if number is None or not description or not access or not value_range:
        return RowRejection(row_index, dict(row), MISSING_REGISTER_FIELDS)

    mode = normalize_access(access)
    if mode is None:
        return RowRejection(row_index, dict(row), INVALID_ACCESS)

    return RegisterDraft(
        register=number,
        description=description,
        access=mode,
        value_range=value_range,
    )


def validate_fan_row(row: Mapping[str, str | None], row_index: int) -> FanDraft | RowRejection:
    device = _text(row, "FanId")
    name = _text(row, "Fan Name")
    model_id = _text(row, "FanModelId")
    rpm_raw = _text(row, "RPM")

    device_id = _parse_int(device) if device else None
    if device_id is None or not name or not model_id:
        return RowRejection(row_index, dict(row), MISSING_FAN_FIELDS)

    rpm = 0
    if rpm_raw:
        parsed = _parse_int(rpm_raw)
        if parsed is None or not 0 <= parsed <= MAX_RPM:
            return RowRejection(row_index, dict(row), INVALID_RPM)
        rpm = parsed

    return FanDraft(device_id=device_id, name=name, fan_model_id=model_id, rpm=rpm)


def validate_row(row: Mapping[str, str | None], kind: str, row_index: int) -> Draft | RowRejection:
    """Validate *row* as an entity of *kind* (``"register"`` or ``"fan"``)."""
    if kind == KIND_REGISTER:
        return validate_register_row(row, row_index)
    if kind == KIND_FAN:
        return validate_fan_row(row, row_index)
    raise ValueError(f"Unknown row kind: {kind!r}")
