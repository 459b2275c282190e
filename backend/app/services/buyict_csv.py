"""
CSV exports of BuyICT opportunities.

Column names vary between exports, so each field is read from the first
alias present in the row. Reference and title are required; rows missing
either are reported and skipped.
"""
from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .buyict_ingest import ExtractedEmail, extract_emails, parse_date

COLUMN_ALIASES: Dict[str, List[str]] = {
    "reference": ["reference", "Reference", "ATM ID", "Opportunity ID"],
    "title": ["title", "Title", "Opportunity Title"],
    "buyer": ["buyer", "Buyer", "Agency", "Department", "Buying Entity"],
    "contact": ["contact", "Contact", "Contact Officer", "Enquiries"],
    "description": ["description", "Description", "Summary"],
    "category": ["category", "Category", "Panel"],
    "publish_date": ["publish_date", "Publish Date", "Published"],
    "closing_date": ["closing_date", "Closing Date", "Close Date", "Closes"],
    "status": ["status", "Status"],
    "url": ["url", "URL", "Link"],
}


@dataclass
class ParsedOpportunity:
    buyict_reference: str
    title: str
    buyer_entity_raw: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    publish_date: Optional[datetime] = None
    closing_date: Optional[datetime] = None
    opportunity_status: str = "Open"
    contact_text_raw: Optional[str] = None
    buyict_url: Optional[str] = None
    emails: List[ExtractedEmail] = field(default_factory=list)


@dataclass
class ParseResult:
    opportunities: List[ParsedOpportunity] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def emails_extracted(self) -> int:
        return sum(len(o.emails) for o in self.opportunities)


def _pick(row: Dict[str, Optional[str]], key: str) -> Optional[str]:
    for alias in COLUMN_ALIASES[key]:
        value = row.get(alias)
        if value is not None and value.strip():
            return value.strip()
    return None


def parse_row(row: Dict[str, Optional[str]], row_number: int) -> ParsedOpportunity:
    reference = _pick(row, "reference")
    if not reference:
        raise ValueError(f"Row {row_number}: Missing reference/ID")
    title = _pick(row, "title")
    if not title:
        raise ValueError(f"Row {row_number}: Missing title")

    contact = _pick(row, "contact")
    description = _pick(row, "description")
    emails: List[ExtractedEmail] = []
    if contact:
        emails.extend(extract_emails(contact, "structured_field"))
    if description:
        emails.extend(extract_emails(description, "page_text"))

    return ParsedOpportunity(
        buyict_reference=reference,
        title=title,
        buyer_entity_raw=_pick(row, "buyer"),
        category=_pick(row, "category"),
        description=description,
        publish_date=parse_date(_pick(row, "publish_date")),
        closing_date=parse_date(_pick(row, "closing_date")),
        opportunity_status=_pick(row, "status") or "Open",
        contact_text_raw=contact,
        buyict_url=_pick(row, "url"),
        emails=emails,
    )


def parse_opportunities_csv(text: str) -> ParseResult:
    result = ParseResult()
    reader = csv.DictReader(io.StringIO((text or "").lstrip("\ufeff")))
    if reader.fieldnames:
        reader.fieldnames = [h.strip() for h in reader.fieldnames]

    for index, row in enumerate(reader, start=1):
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        try:
            result.opportunities.append(parse_row(row, index))
        except ValueError as e:
            result.errors.append(str(e))
    return result
