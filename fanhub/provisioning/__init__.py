"""Bulk provisioning from CSV: register maps for fan models, fans for floors."""

from fanhub.provisioning.coordinator import (
    BatchResult,
    ModelTarget,
    ingest_fans,
    ingest_registers,
)
from fanhub.provisioning.tabular import read_rows, stored_upload
from fanhub.provisioning.validator import (
    FAN_COLUMNS,
    REGISTER_COLUMNS,
    FanDraft,
    RegisterDraft,
    RowRejection,
    validate_row,
)

__all__ = [
    "BatchResult",
    "FAN_COLUMNS",
    "FanDraft",
    "ModelTarget",
    "REGISTER_COLUMNS",
    "RegisterDraft",
    "RowRejection",
    "ingest_fans",
    "ingest_registers",
    "read_rows",
    "stored_upload",
    "validate_row",
]
