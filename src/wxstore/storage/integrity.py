"""Post-open consistency scan (``PRAGMA integrity_check``)."""

from __future__ import annotations

import enum
import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field

import aiosqlite

from wxstore.storage.errors import is_corruption_error

log = logging.getLogger(__name__)

__all__ = ["IntegrityStatus", "IntegrityReport", "classify_integrity", "check_integrity"]

FATAL_MARKERS = ("corrupt", "malformed")


class IntegrityStatus(enum.Enum):
    HEALTHY = "healthy"
    SUSPICIOUS = "suspicious"
    CORRUPT = "corrupt"


@dataclass(frozen=True)
class IntegrityReport:
    status: IntegrityStatus
    diagnostics: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status is not IntegrityStatus.CORRUPT

    def summary(self) -> str:
        return "; ".join(self.diagnostics) if self.diagnostics else self.status.value


def classify_integrity(diagnostics: Sequence[str]) -> IntegrityStatus:
    """
    Classify ``PRAGMA integrity_check`` output.

    A single ``ok`` is healthy; any line mentioning corruption or a malformed
    structure is fatal; anything else (e.g. on a freshly created file) is
    only suspicious.
    """

    lines = [str(line).strip() for line in diagnostics if str(line).strip()]
    if not lines or (len(lines) == 1 and lines[0].lower() == "ok"):
        return IntegrityStatus.HEALTHY
    if any(marker in line.lower() for line in lines for marker in FATAL_MARKERS):
        return IntegrityStatus.CORRUPT
    return IntegrityStatus.SUSPICIOUS


async def check_integrity(conn: aiosqlite.Connection) -> IntegrityReport:
    """Run the integrity scan on ``conn`` and classify the result."""

    try:
        rows = await conn.execute_fetchall("PRAGMA integrity_check")
    except sqlite3.Error as exc:
        if is_corruption_error(exc):
            log.warning("Integrity check failed with corruption error: %s", exc)
            return IntegrityReport(IntegrityStatus.CORRUPT, (str(exc),))
        raise

    diagnostics = tuple(str(row[0]) for row in rows)
    status = classify_integrity(diagnostics)
    report = IntegrityReport(status, diagnostics)
    if status is IntegrityStatus.SUSPICIOUS:
        log.warning("Database integrity check result: %s", report.summary())
    elif status is IntegrityStatus.CORRUPT:
        log.error("Database integrity check failed: %s", report.summary())
    return report
