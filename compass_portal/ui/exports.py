"""Assessment exports: CSV/XLSX resource lists and the PDF report."""

import logging
import re
from pathlib import Path
from typing import Callable
from urllib.parse import unquote

from compass_portal.api.services.assessment_service import AssessmentService, ExportFormat
from compass_portal.api.services.http import Blob
from compass_portal.core.errors import CompassError

logger = logging.getLogger(__name__)

_EXTENDED_FILENAME = re.compile(r"filename\*\s*=\s*([^;]+)", re.IGNORECASE)
_PLAIN_FILENAME = re.compile(r'filename\s*=\s*(?:"([^"]*)"|([^;]+))', re.IGNORECASE)


def _safe_name(name: str) -> str:
    return Path(name.replace("\\", "/")).name.strip()


def filename_from_content_disposition(header: str | None, default: str) -> str:
    """Extract the download filename from a Content-Disposition header.

    The RFC 5987 form (``filename*=UTF-8''Report%20Q1.csv``) wins over a
    plain ``filename=`` token; ``default`` is used when neither is usable.
    """
    if not header:
        return default

    match = _EXTENDED_FILENAME.search(header)
    if match:
        value = match.group(1).strip().strip('"')
        charset, _, rest = value.partition("'")
        if rest:
            _language, _, encoded = rest.partition("'")
        else:
            charset, encoded = "utf-8", value
        try:
            name = _safe_name(unquote(encoded, encoding=charset or "utf-8", errors="strict"))
        except (LookupError, UnicodeDecodeError):
            logger.warning(f"Undecodable extended filename in Content-Disposition: {value}")
            name = ""
        if name:
            return name

    match = _PLAIN_FILENAME.search(header)
    if match:
        name = _safe_name(match.group(1) if match.group(1) is not None else match.group(2).strip())
        if name:
            return name

    return default


def _available_path(directory: Path, filename: str) -> Path:
    path = directory / filename
    counter = 1
    while path.exists():
        path = directory / f"{Path(filename).stem} ({counter}){Path(filename).suffix}"
        counter += 1
    return path


def save_blob(blob: Blob, directory: Path, default_name: str) -> Path:
    """Write ``blob`` into ``directory`` without overwriting existing files."""
    filename = filename_from_content_disposition(blob.content_disposition, default_name)
    directory.mkdir(parents=True, exist_ok=True)
    path = _available_path(directory, filename)
    path.write_bytes(blob.content)
    logger.info(f"Saved {len(blob.content)} bytes to {path}")
    return path


def default_filename(assessment_id: str, fmt: ExportFormat) -> str:
    if fmt == ExportFormat.PDF:
        return f"assessment-{assessment_id}-report.pdf"
    return f"assessment-{assessment_id}-resources.{fmt.value}"


class Exporter:
    """Fetch an export and save it; failures raise a blocking alert.

    Args:
        service: Assessment API operations
        download_dir: Where files are written
        alert: Shows a message the user must acknowledge
    """

    def __init__(self, service: AssessmentService, download_dir: Path, alert: Callable[[str], None]):
        self.service = service
        self.download_dir = Path(download_dir)
        self.alert = alert

    async def export(self, assessment_id: str, fmt: ExportFormat | str) -> Path | None:
        fmt = ExportFormat(fmt)
        try:
            if fmt == ExportFormat.PDF:
                blob = await self.service.export_report(assessment_id)
            else:
                blob = await self.service.export_resources(assessment_id, fmt)
            return save_blob(blob, self.download_dir, default_filename(assessment_id, fmt))
        except (CompassError, OSError) as e:
            message = getattr(e, "message", "") or str(e)
            logger.error(f"{fmt.value.upper()} export of assessment {assessment_id} failed: {message}")
            self.alert(f"Export failed: {message}")
            return None
