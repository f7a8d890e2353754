"""PDF report upload and retention cleanup.

Reports are generated client side, uploaded here as base64 and shared by
public URL. Anything older than the retention window is removed by
``cleanup_reports`` (scheduled hourly, also exposed for an external cron).
"""

import base64
import binascii
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from app.helpers.date_utils import parse_datetime
from app.storage import REPORTS_FOLDER, ReportStorage, ReportStorageError, report_storage

load_dotenv()

logger = logging.getLogger(__name__)

REPORT_RETENTION_HOURS = int(os.getenv("REPORT_RETENTION_HOURS", "24"))
MAX_REPORT_BYTES = 10 * 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ReportValidationError(ValueError):
    """Bad filename or payload (400)."""


def sanitize_filename(filename: str) -> str:
    """Replace anything outside ``[A-Za-z0-9._-]`` and require a .pdf name."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (filename or "").strip())
    cleaned = cleaned.lstrip(".")
    if not cleaned or not cleaned.lower().endswith(".pdf") or cleaned.lower() == "pdf":
        raise ReportValidationError("Filename must end with .pdf")
    return cleaned


def decode_pdf(base64_content: str) -> bytes:
    if not base64_content:
        raise ReportValidationError("File content is required")
    # data URLs ("data:application/pdf;base64,...") are accepted as-is
    if base64_content.startswith("data:"):
        base64_content = base64_content.split(",", 1)[-1]
    try:
        data = base64.b64decode(base64_content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ReportValidationError("Invalid base64 content") from e
    if not data:
        raise ReportValidationError("File content is required")
    if len(data) > MAX_REPORT_BYTES:
        raise ReportValidationError("Report exceeds the 10 MB limit")
    return data


def _entry_path(name: str, listed_from_root: bool) -> str:
    if listed_from_root and name.startswith(f"{REPORTS_FOLDER}/"):
        return name
    return f"{REPORTS_FOLDER}/{name}"


async def upload_report(
    filename: str, base64_content: str, storage: Optional[ReportStorage] = None
) -> Dict[str, Any]:
    """
    Decode and store one PDF report.

    Returns:
        ``{"success": True, "path": ..., "url": ..., "filename": ...}``

    Raises:
        ReportValidationError: bad name or content.
        ReportStorageError: storage unavailable or upload rejected.
    """
    storage = storage or report_storage
    safe_name = sanitize_filename(filename)
    data = decode_pdf(base64_content)
    path, url = await storage.upload(safe_name, data)
    return {"success": True, "path": path, "url": url, "filename": safe_name}


async def cleanup_reports(
    retention_hours: int = REPORT_RETENTION_HOURS,
    storage: Optional[ReportStorage] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Delete reports created more than ``retention_hours`` ago.

    Folder entries (no ``id``) are skipped. A failed delete is counted and
    recorded but does not stop the sweep.
    """
    storage = storage or report_storage
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=retention_hours)
    logger.info("Starting report cleanup; deleting reports older than %s", cutoff.isoformat())

    entries, listed_from_root = await storage.list_reports()
    if not entries:
        return {
            "success": True,
            "deleted": 0,
            "failed": 0,
            "total": 0,
            "errors": [],
            "message": "No reports to clean up",
        }

    deleted = 0
    failed = 0
    errors = []
    for entry in entries:
        if entry.get("id") is None:
            continue
        created_at = parse_datetime(entry.get("created_at"))
        if created_at is None:
            continue
        if created_at >= cutoff:
            continue

        path = _entry_path(entry.get("name") or "", listed_from_root)
        try:
            await storage.remove(path)
            deleted += 1
            logger.info("Deleted old report %s (created %s)", path, created_at.isoformat())
        except ReportStorageError as e:
            failed += 1
            errors.append(f"{path}: {e}")
            logger.error("Failed to delete report %s: %s", path, e)

    message = f"Deleted {deleted} report(s), {failed} failed"
    logger.info("Report cleanup finished: %s", message)
    return {
        "success": True,
        "deleted": deleted,
        "failed": failed,
        "total": len(entries),
        "errors": errors,
        "message": message,
    }
