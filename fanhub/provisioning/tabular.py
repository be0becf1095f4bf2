"""Tabular import source: scoped upload storage and CSV parsing.

Uploaded payloads are copied into a temporary file under ``FANHUB_UPLOAD_DIR``
and removed again whatever happens (success, rejection, parse failure).
The whole file is parsed before any row is validated, so a structural error
aborts the import without partial processing.
"""

from __future__ import annotations

import csv
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Sequence

from fanhub.errors import MalformedInput

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.environ.get("FANHUB_UPLOAD_DIR", tempfile.gettempdir()))
MAX_IMPORT_ROWS = int(os.environ.get("FANHUB_MAX_IMPORT_ROWS", "10000"))

EXTRA_COLUMNS_KEY = "_extra"


@contextmanager
def stored_upload(source: BinaryIO, suffix: str = ".csv") -> Iterator[Path]:
    """Copy *source* to a temp file and yield its path; always deletes it."""
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="fanhub-upload-", suffix=suffix, dir=UPLOAD_DIR)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(source, out)
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Removed upload %s", path)


def read_rows(
    path: Path | str,
    required_columns: Sequence[str] = (),
    max_rows: int | None = None,
) -> list[dict[str, str]]:
    """Parse a CSV file with a header row into a list of dicts.

    Raises :class:`MalformedInput` for undecodable bytes, CSV syntax errors,
    a missing header, missing *required_columns* or too many rows.
    """
    limit = MAX_IMPORT_ROWS if max_rows is None else max_rows
    try:
        with open(path, newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh, strict=True, restkey=EXTRA_COLUMNS_KEY)
            header = reader.fieldnames
            if not header:
                raise MalformedInput("Invalid CSV format", {"reason": "missing header row"})
            header = [h.strip() for h in header]
            reader.fieldnames = header

            missing = [c for c in required_columns if c not in header]
            if missing:
                raise MalformedInput(
                    "Invalid CSV format",
                    {"reason": "missing columns", "columns": missing},
                )

            parsed: list[dict[str, str]] = []
            for record in reader:
                if len(parsed) >= limit:
                    raise MalformedInput(
                        "Too many rows in CSV",
                        {"maxRows": limit},
                    )
                parsed.append(record)
    except UnicodeDecodeError as exc:
        raise MalformedInput("Invalid CSV format", {"reason": f"not UTF-8 text: {exc.reason}"}) from exc
    except csv.Error as exc:
        raise MalformedInput("Invalid CSV format", {"reason": str(exc)}) from exc

    logger.info("Parsed %d CSV rows from %s", len(parsed), path)
    return parsed
