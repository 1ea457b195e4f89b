"""
CSV import and export for leads.

Export writes the actor's leads (or every lead, for administrators) as a
spreadsheet-friendly CSV. Import turns CSV rows into unowned candidates that
the ownership protocol then claims, so imported rows obey the same
single-owner rules as manual entries.

Security:
- CSV Injection Prevention: Sanitizes all exported fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from io import StringIO
from typing import Iterable, List, TextIO
from uuid import uuid4

from domain.lead import Lead

logger = logging.getLogger(__name__)

# CSV header -> Lead attribute. Website and Instagram live in extras.
EXPORT_COLUMNS = [
    ("Name", "name"),
    ("Category", "category"),
    ("Location", "location"),
    ("Phone", "phone"),
    ("Email", "email"),
    ("Website", "website"),
    ("Instagram", "instagram"),
    ("Status", "status"),
    ("Is Client", "is_client"),
    ("Owner", "owner"),
    ("Next Action", "next_action"),
    ("Next Action Date", "next_action_date"),
    ("Notes", "notes"),
]

# Accepted import headers (case-insensitive), including the Spanish ones
# found in older exports.
_IMPORT_HEADERS = {
    "name": "name",
    "nombre": "name",
    "category": "category",
    "categoria": "category",
    "location": "location",
    "ubicacion": "location",
    "phone": "phone",
    "telefono": "phone",
    "email": "email",
    "contact": "contact_name",
    "contact name": "contact_name",
    "contacto": "contact_name",
    "notes": "notes",
    "notas": "notes",
    "website": "website",
    "web": "website",
    "instagram": "instagram",
}

_EXTRA_FIELDS = {"website", "instagram"}


def sanitize_csv_field(value: object, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "notes")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    # Strip dangerous leading characters
    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


def _export_value(lead: Lead, attribute: str) -> str:
    if attribute == "status":
        return lead.status.value
    if attribute == "is_client":
        return "yes" if lead.is_client else "no"
    if attribute in _EXTRA_FIELDS:
        return sanitize_csv_field(lead.extras.get(attribute), attribute)
    return sanitize_csv_field(getattr(lead, attribute), attribute)


def export_leads_csv(leads: Iterable[Lead]) -> str:
    """
    Generate CSV content for `leads`, in the order given.

    A leading "+" on phone numbers is stripped like any other formula prefix.
    """
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for lead in leads:
        writer.writerow([_export_value(lead, attribute) for _, attribute in EXPORT_COLUMNS])
    return output.getvalue()


@dataclass
class ParsedRows:
    """Candidates read from a CSV, plus the rows that could not be used."""
    candidates: List[Lead] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)


def read_lead_candidates(source: TextIO) -> ParsedRows:
    """
    Read unowned lead candidates from CSV text.

    Requires a name column ("Name" or "Nombre"). Rows without a name are
    skipped and reported; unknown columns are ignored.

    Raises:
        ValueError: If the CSV has no header or no name column
    """
    reader = csv.DictReader(source)
    if not reader.fieldnames:
        raise ValueError("CSV file is empty or malformed")

    columns = {header: _IMPORT_HEADERS.get(header.strip().lower()) for header in reader.fieldnames}
    if "name" not in columns.values():
        raise ValueError("CSV missing required column: Name")

    result = ParsedRows()
    for row_num, row in enumerate(reader, start=2):  # Row 1 is header
        values = {}
        for header, attribute in columns.items():
            value = (row.get(header) or "").strip()
            if attribute and value:
                values[attribute] = value

        if not values.get("name"):
            result.skipped.append({"row_num": row_num, "error": "Missing required field: Name"})
            continue

        extras = {key: values.pop(key) for key in _EXTRA_FIELDS if key in values}
        result.candidates.append(Lead(lead_id=f"lead-{uuid4().hex}", extras=extras, **values))

    return result


__all__ = [
    "EXPORT_COLUMNS",
    "ParsedRows",
    "export_leads_csv",
    "read_lead_candidates",
    "sanitize_csv_field",
]
