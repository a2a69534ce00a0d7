from __future__ import annotations

import logging
from pathlib import Path

from nightly_digest.types import Report


logger = logging.getLogger(__name__)


class ReportWriter:
    def __init__(self, reports_dir: Path) -> None:
        self._dir = reports_dir

    @property
    def reports_dir(self) -> Path:
        return self._dir

    def _target(self, report: Report) -> Path:
        stamp = int(report.generated_at.timestamp() * 1000)
        base = f"{report.kind}-report-{stamp}"
        path = self._dir / f"{base}.md"
        n = 1
        while path.exists():
            path = self._dir / f"{base}-{n}.md"
            n += 1
        return path

    def save(self, report: Report) -> Path:
        """Write the report as Markdown; raises on any filesystem error."""
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._target(report)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            f.write(report.markdown())
        tmp.replace(path)
        logger.info("report saved: %s", path)
        return path
