"""Supabase Storage integration for generated PDF reports.

Reports live under ``reports/`` in the ``REPORTS_BUCKET`` bucket and are
short-lived: the cleanup job deletes them after ``REPORT_RETENTION_HOURS``.

Usage::

    from app.storage import report_storage

    path, url = await report_storage.upload("status-2026-03-05.pdf", pdf_bytes)
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

REPORTS_BUCKET = os.getenv("REPORTS_BUCKET", "Reports")
REPORTS_FOLDER = "reports"
LIST_LIMIT = 1000


class ReportStorageError(Exception):
    """Storage is unavailable or rejected an operation."""


class ReportStorage:
    """Thin async wrapper around the synchronous supabase-py storage API."""

    def __init__(self, client: Any = None, bucket: str = REPORTS_BUCKET) -> None:
        self._explicit_client = client
        self.bucket = bucket

    def _bucket(self):
        client = self._explicit_client
        if client is None:
            from app.deps import supabase

            client = supabase
        if client is None:
            raise ReportStorageError(
                "Supabase is not configured. Report storage requires SUPABASE_URL "
                "and SUPABASE_SERVICE_KEY."
            )
        return client.storage.from_(self.bucket)

    @staticmethod
    def report_path(filename: str) -> str:
        return f"{REPORTS_FOLDER}/{filename}"

    async def upload(self, filename: str, data: bytes) -> Tuple[str, str]:
        """Store a PDF without overwriting; returns ``(path, public_url)``."""
        bucket = self._bucket()
        path = self.report_path(filename)
        try:
            await asyncio.to_thread(
                bucket.upload,
                path,
                data,
                {"content-type": "application/pdf", "upsert": "false"},
            )
            url = await asyncio.to_thread(bucket.get_public_url, path)
        except Exception as e:
            logger.error("Report upload failed for %s: %s", path, e)
            raise ReportStorageError(str(e)) from e
        logger.info("Uploaded report %s (%d bytes)", path, len(data))
        return path, url

    async def list_reports(self) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Entries in the reports folder, or the bucket root when the folder
        listing fails or is empty. The flag tells whether root was used.
        """
        bucket = self._bucket()
        options = {"limit": LIST_LIMIT, "sortBy": {"column": "created_at", "order": "asc"}}
        try:
            entries = await asyncio.to_thread(bucket.list, REPORTS_FOLDER, options)
            if entries:
                return list(entries), False
        except Exception as e:
            logger.warning("Listing %s/ failed, trying bucket root: %s", REPORTS_FOLDER, e)

        try:
            entries = await asyncio.to_thread(bucket.list, "", options)
        except Exception as e:
            raise ReportStorageError(f"Could not list reports: {e}") from e
        return list(entries or []), True

    async def remove(self, path: str) -> None:
        bucket = self._bucket()
        try:
            await asyncio.to_thread(bucket.remove, [path])
        except Exception as e:
            raise ReportStorageError(str(e)) from e


report_storage = ReportStorage()


def get_report_storage() -> Optional[ReportStorage]:
    return report_storage
