"""Prescription document rendering and storage."""

import asyncio
import time
from datetime import date
from html import escape
from pathlib import Path
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from app.config import settings
from app.core.exceptions import TransientNotificationError

logger = structlog.get_logger(__name__)


class PrescriptionDocumentItem(BaseModel):
    """One medication line as printed on the prescription."""

    name: str
    dosage: str
    duration: str
    quantity: int


class PrescriptionSnapshot(BaseModel):
    """Everything the printed prescription shows, captured at posting time."""

    prescription_id: UUID
    pet_name: str
    species: str
    owner_name: str
    staff_name: str
    instructions: str
    items: list[PrescriptionDocumentItem]
    issued_on: date = Field(default_factory=date.today)


_STYLE = """
body { font-family: Helvetica, sans-serif; padding: 40px; color: #333; max-width: 800px; margin: 0 auto; }
.header { border-bottom: 3px solid #10b981; padding-bottom: 20px; margin-bottom: 30px; }
.header h1 { margin: 0; color: #10b981; }
.section-title { font-weight: bold; color: #10b981; text-transform: uppercase; margin: 24px 0 8px; }
table { width: 100%; border-collapse: collapse; }
th, td { text-align: left; padding: 10px; border-bottom: 1px solid #eee; }
.instructions { background: #f9fafb; padding: 20px; border-radius: 8px; }
.signature { margin-top: 40px; text-align: right; }
"""


class DocumentRenderer:
    """Render prescriptions to HTML files and return their public location."""

    def __init__(self, storage_dir: str | Path, url_prefix: str, clinic_name: str):
        """Initialize renderer with target directory and URL prefix."""
        self.storage_dir = Path(storage_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.clinic_name = clinic_name

    def render_html(self, snapshot: PrescriptionSnapshot) -> str:
        """Render the prescription as a standalone HTML page."""
        rows = "".join(
            "<tr>"
            f"<td><strong>{escape(item.name)}</strong></td>"
            f"<td>{escape(item.dosage)}</td>"
            f"<td>{escape(item.duration)}</td>"
            f"<td>{item.quantity}</td>"
            "</tr>"
            for item in snapshot.items
        )
        instructions = "<br>".join(escape(line) for line in snapshot.instructions.splitlines())

        return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><style>{_STYLE}</style></head>
<body>
  <div class="header">
    <h1>{escape(self.clinic_name)}</h1>
    <p><strong>Prescription #:</strong> {snapshot.prescription_id}</p>
    <p><strong>Date:</strong> {snapshot.issued_on.isoformat()}</p>
  </div>
  <div class="section-title">Patient</div>
  <p>{escape(snapshot.pet_name)} ({escape(snapshot.species)}), owner {escape(snapshot.owner_name)}</p>
  <div class="section-title">Medication</div>
  <table>
    <thead><tr><th>Item</th><th>Dosage</th><th>Duration</th><th>Quantity</th></tr></thead>
    <tbody>{rows}</tbody>
  </table>
  <div class="section-title">Instructions</div>
  <div class="instructions">{instructions}</div>
  <div class="signature">Issued by {escape(snapshot.staff_name)}</div>
</body>
</html>
"""

    async def store(self, snapshot: PrescriptionSnapshot) -> str:
        """
        Render and persist a prescription document.

        Returns:
            Public location of the stored document

        Raises:
            TransientNotificationError: If the document cannot be written
        """
        content = self.render_html(snapshot)
        file_name = f"prescription_{snapshot.prescription_id}_{time.time_ns() // 1_000_000}.html"
        path = self.storage_dir / file_name

        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            raise TransientNotificationError(f"Could not store prescription document: {e}") from e

        logger.info("prescription_document_stored", path=str(path))
        return f"{self.url_prefix}/{file_name}"

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def get_document_renderer() -> DocumentRenderer:
    """Dependency for the configured document renderer."""
    return DocumentRenderer(
        storage_dir=settings.prescription_storage_dir,
        url_prefix=settings.prescription_url_prefix,
        clinic_name=settings.clinic_name,
    )
