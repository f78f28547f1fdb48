"""Bulk lead intake from CSV text.

Rows are validated one by one. Good rows are inserted together; bad rows
are reported back with their line number instead of failing the upload.
"""

import csv
import io
import logging
from dataclasses import dataclass, field

from leadcall.errors import ValidationError
from leadcall.store import LeadStore
from leadcall.validation import validate_lead_fields

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "phone", "email")

SAMPLE_ROWS = [
    ("John Doe", "+1234567890", "john@example.com"),
    ("Jane Smith", "+1987654321", "jane@example.com"),
    ("Bob Johnson", "+1555123456", "bob@example.com"),
]


@dataclass
class IntakeResult:
    rows: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    created: list = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.created)

    def to_dict(self) -> dict:
        message = f"Successfully uploaded {self.count} customers"
        if self.errors:
            message += f" ({len(self.errors)} rows skipped)"
        return {"message": message, "count": self.count, "errors": self.errors}


def parse_leads_csv(text: str) -> IntakeResult:
    """Parse and validate CSV text with a name/phone/email header.

    Raises ValidationError when the file is empty or a required column is
    missing; per-row problems are collected in ``errors``.
    """
    # Excel exports often start with a byte-order mark
    text = (text or "").lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("Uploaded file is empty")

    columns = {(name or "").strip().lower(): name for name in reader.fieldnames}
    missing = [col for col in REQUIRED_COLUMNS if col not in columns]
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(missing)}")

    result = IntakeResult()
    # Line 1 is the header
    for line_no, record in enumerate(reader, start=2):
        values = [(record.get(columns[col]) or "") for col in REQUIRED_COLUMNS]
        if not any(v.strip() for v in values):
            continue
        try:
            result.rows.append(validate_lead_fields(*values))
        except ValidationError as e:
            result.errors.append({"row": line_no, "message": e.message})
    return result


def import_leads_csv(store: LeadStore, text: str, campaign_type: str | None = None) -> IntakeResult:
    result = parse_leads_csv(text)
    if not result.rows:
        raise ValidationError("No valid customers found in file")
    result.created = store.create_many(result.rows, campaign_type=campaign_type)
    logger.info(
        "CSV intake: created=%d skipped=%d", result.count, len(result.errors)
    )
    return result


def sample_csv() -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(REQUIRED_COLUMNS)
    writer.writerows(SAMPLE_ROWS)
    return buf.getvalue()
