"""
Ingest BuyICT opportunities into a space.

Two entry points share the same upsert path:

* ``ingest_webhook_payload`` - JSON pushed by the scraper actor when a run finishes.
* ``import_opportunities`` - rows parsed from an uploaded CSV export.

Opportunities are keyed on (space, BuyICT reference). Contacts are keyed on
(space, lowercased email) and linked to each opportunity they appear on.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models.buyict import (
    BuyICTContact,
    BuyICTIntegration,
    BuyICTOpportunity,
    BuyICTOpportunityContact,
    BuyICTSyncJob,
    ConnectionStatus,
    SyncJobStatus,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", re.IGNORECASE)
NAME_RE = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)(?:\s*[<(]|\s+\w+@)")
ROLE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"contact\s*officer", re.I), "Contact Officer"),
    (re.compile(r"enquiries", re.I), "Enquiries"),
    (re.compile(r"technical\s*contact", re.I), "Technical Contact"),
    (re.compile(r"procurement\s*officer", re.I), "Procurement Officer"),
    (re.compile(r"project\s*officer", re.I), "Project Officer"),
]
IGNORED_LOCAL_PARTS = ("noreply", "no-reply", "donotreply")
IGNORED_DOMAIN_PREFIXES = ("example.", "test.")

SOURCE_CONFIDENCE = {"structured_field": 0.95, "page_text": 0.75}
SOURCE_DETAIL = {"structured_field": "Contact field", "page_text": "Page text extraction"}
WEBHOOK_CONFIDENCE = 0.9

# Scraped keys kept verbatim in ``BuyICTOpportunity.details``
DETAIL_FIELDS = (
    "rfq_type",
    "engagement_type",
    "rfq_id",
    "deadline_for_questions",
    "buyer_contact",
    "estimated_start_date",
    "initial_contract_duration",
    "extension_term",
    "extension_term_details",
    "number_of_extensions",
    "industry_briefing",
    "requirements",
    "location",
    "working_arrangement",
    "opportunity_type",
    "key_duties",
    "experience_level",
    "max_hours",
    "security_clearance",
    "target_sector",
    "estimated_value",
)

_DATE_FORMATS = ("%d/%m/%Y", "%d/%m/%Y %H:%M", "%d %B %Y", "%d %b %Y", "%A, %d %B %Y")


@dataclass
class ExtractedEmail:
    email: str
    source_type: str
    source_detail: str
    confidence: float
    name: Optional[str] = None
    role_label: Optional[str] = None


@dataclass
class IngestStats:
    opportunities_added: int = 0
    opportunities_updated: int = 0
    contacts_found: int = 0
    emails_extracted: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)

    def merge(self, other: "IngestStats") -> None:
        for key, value in other.__dict__.items():
            setattr(self, key, getattr(self, key) + value)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Accepts ISO-8601, Australian ``DD/MM/YYYY`` and ``DD Month YYYY``.
    Timezone-aware values are returned as naive UTC. Unparseable input is None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", text)
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(cleaned, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _is_ignored(email: str) -> bool:
    local, _, domain = email.partition("@")
    if any(marker in local for marker in IGNORED_LOCAL_PARTS):
        return True
    return domain.startswith(IGNORED_DOMAIN_PREFIXES)


def extract_emails(text: Optional[str], source_type: str, confidence: Optional[float] = None) -> List[ExtractedEmail]:
    """
    Pull contact emails out of free text, with a best-effort name and role
    taken from the text surrounding each address. Duplicates are dropped.
    """
    if not text:
        return []
    found: List[ExtractedEmail] = []
    seen = set()
    for match in EMAIL_RE.finditer(text):
        email = match.group(0).lower().rstrip(".")
        if email in seen or _is_ignored(email):
            continue
        seen.add(email)

        context = text[max(0, match.start() - 100): match.end() + 50]
        role = next((label for pattern, label in ROLE_PATTERNS if pattern.search(context)), None)
        name_match = NAME_RE.search(context)

        found.append(
            ExtractedEmail(
                email=email,
                source_type=source_type,
                source_detail=SOURCE_DETAIL.get(source_type, source_type),
                confidence=confidence if confidence is not None else SOURCE_CONFIDENCE.get(source_type, 0.5),
                name=name_match.group(1) if name_match else None,
                role_label=role,
            )
        )
    return found


# -- persistence -----------------------------------------------------------


def get_or_create_integration(db: Session, space_id: uuid.UUID, connection_method: str) -> BuyICTIntegration:
    integration = db.query(BuyICTIntegration).filter(BuyICTIntegration.space_id == space_id).first()
    if integration:
        return integration
    integration = BuyICTIntegration(
        space_id=space_id,
        connection_method=connection_method,
        connection_status=ConnectionStatus.CONNECTED.value,
    )
    db.add(integration)
    db.flush()
    return integration


def start_sync_job(db: Session, integration: BuyICTIntegration, sync_type: str, created_by: Optional[str]) -> BuyICTSyncJob:
    job = BuyICTSyncJob(
        space_id=integration.space_id,
        integration_id=integration.id,
        status=SyncJobStatus.RUNNING.value,
        sync_type=sync_type,
        started_at=datetime.utcnow(),
        created_by=created_by,
    )
    db.add(job)
    db.commit()
    return job


def upsert_opportunity(
    db: Session,
    space_id: uuid.UUID,
    job_id: uuid.UUID,
    values: Dict[str, Any],
) -> Tuple[BuyICTOpportunity, bool]:
    """Returns (opportunity, created)."""
    now = datetime.utcnow()
    opp = (
        db.query(BuyICTOpportunity)
        .filter(
            BuyICTOpportunity.space_id == space_id,
            BuyICTOpportunity.buyict_reference == values["buyict_reference"],
        )
        .first()
    )
    created = opp is None
    if created:
        opp = BuyICTOpportunity(space_id=space_id, buyict_reference=values["buyict_reference"])
        db.add(opp)
    for key, value in values.items():
        setattr(opp, key, value)
    opp.last_synced_at = now
    opp.sync_job_id = job_id
    db.flush()
    return opp, created


def record_contact(
    db: Session,
    space_id: uuid.UUID,
    opportunity: BuyICTOpportunity,
    extracted: ExtractedEmail,
) -> bool:
    """
    Upsert the contact and link it to the opportunity. Returns True when the
    contact is new to the space. ``opportunity_count`` grows once per newly
    linked opportunity.
    """
    now = datetime.utcnow()
    contact = (
        db.query(BuyICTContact)
        .filter(BuyICTContact.space_id == space_id, BuyICTContact.email == extracted.email)
        .first()
    )
    is_new = contact is None
    if is_new:
        contact = BuyICTContact(
            space_id=space_id,
            email=extracted.email,
            name=extracted.name,
            opportunity_count=0,
            first_seen_at=now,
        )
        db.add(contact)
        db.flush()
    elif extracted.name and not contact.name:
        contact.name = extracted.name
    contact.last_seen_at = now

    links = (
        db.query(BuyICTOpportunityContact)
        .filter(
            BuyICTOpportunityContact.opportunity_id == opportunity.id,
            BuyICTOpportunityContact.contact_id == contact.id,
        )
        .all()
    )
    link = next((l for l in links if l.source_type == extracted.source_type), None)
    if not links:
        contact.opportunity_count = (contact.opportunity_count or 0) + 1
    if link is None:
        link = BuyICTOpportunityContact(
            opportunity_id=opportunity.id,
            contact_id=contact.id,
            source_type=extracted.source_type,
        )
        db.add(link)
    link.source_detail = extracted.source_detail
    link.role_label = extracted.role_label
    link.extraction_confidence = extracted.confidence
    link.last_seen_at = now
    db.flush()
    return is_new


def finish_sync_job(
    db: Session,
    integration: BuyICTIntegration,
    job: BuyICTSyncJob,
    stats: IngestStats,
    total: int,
    error: Optional[str] = None,
) -> None:
    failed = total > 0 and stats.errors >= total
    job.status = SyncJobStatus.FAILED.value if failed else SyncJobStatus.COMPLETED.value
    job.stats = stats.as_dict()
    job.error = error
    job.completed_at = datetime.utcnow()

    integration.connection_status = ConnectionStatus.CONNECTED.value
    integration.last_sync_at = job.completed_at
    integration.last_sync_error = error if failed else None
    db.commit()


def _ingest_one(
    db: Session,
    space_id: uuid.UUID,
    job: BuyICTSyncJob,
    values: Dict[str, Any],
    emails: Iterable[ExtractedEmail],
    stats: IngestStats,
) -> None:
    """Counters are applied to ``stats`` only once the item has committed."""
    counts = IngestStats()
    with db.begin_nested():
        opp, created = upsert_opportunity(db, space_id, job.id, values)
        if created:
            counts.opportunities_added += 1
        else:
            counts.opportunities_updated += 1
        for extracted in emails:
            counts.emails_extracted += 1
            if record_contact(db, space_id, opp, extracted):
                counts.contacts_found += 1
    db.commit()
    stats.merge(counts)


# -- webhook -----------------------------------------------------------------


def _text(value: Any) -> Optional[str]:
    """Scraped text fields occasionally arrive as lists of lines."""
    if value in (None, "", []):
        return None
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value if v not in (None, ""))
    return str(value)


def opportunity_from_payload(item: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise ValueError(f"Opportunity must be an object, got {type(item).__name__}")
    reference = item.get("buyict_reference") or item.get("reference") or item.get("rfq_id")
    if not reference:
        raise ValueError("Missing buyict_reference")
    title = _text(item.get("title"))
    if not title:
        raise ValueError(f"{reference}: Missing title")

    details = {k: item[k] for k in DETAIL_FIELDS if item.get(k) not in (None, "", [])}
    return {
        "buyict_reference": str(reference),
        "buyict_url": item.get("buyict_url") or item.get("url"),
        "title": title,
        "buyer_entity_raw": _text(item.get("buyer_entity_raw") or item.get("buyer")),
        "category": _text(item.get("category")),
        "description": _text(item.get("description") or item.get("requirements") or item.get("key_duties")),
        "publish_date": parse_date(item.get("publish_date")),
        "closing_date": parse_date(item.get("closing_date")),
        "opportunity_status": item.get("opportunity_status") or "Open",
        "contact_text_raw": _text(item.get("contact_text_raw") or item.get("buyer_contact")),
        "attachments": item.get("attachments") or None,
        "details": details or None,
        "criteria": item.get("criteria") or None,
    }


def ingest_webhook_payload(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Store a scraper run's results. ``payload`` is ``{spaceId, opportunities,
    scrapedAt?, totalCount?, source?}``. Individual bad items are counted as
    errors; the job is failed only when every item fails.
    """
    space_ref = payload.get("spaceId")
    items = payload.get("opportunities")
    if not space_ref or not isinstance(items, list):
        raise ValueError("Missing spaceId or opportunities")
    space_id = uuid.UUID(str(space_ref))

    integration = get_or_create_integration(db, space_id, connection_method="api")
    job = start_sync_job(db, integration, sync_type="full", created_by="system")
    stats = IngestStats()
    last_error: Optional[str] = None

    logger.info(
        "BuyICT webhook received",
        extra={"space_id": str(space_id), "step": "buyict_webhook", "count": len(items)},
    )

    for item in items:
        try:
            values = opportunity_from_payload(item)
            emails = extract_emails(values["contact_text_raw"], "structured_field", WEBHOOK_CONFIDENCE)
            emails += extract_emails(values["description"], "page_text", WEBHOOK_CONFIDENCE)
            _ingest_one(db, space_id, job, values, emails, stats)
        except Exception as e:
            db.rollback()
            stats.errors += 1
            last_error = str(e)
            logger.warning(
                "Failed to ingest BuyICT opportunity: %s",
                e,
                extra={"space_id": str(space_id), "step": "buyict_webhook"},
            )

    finish_sync_job(db, integration, job, stats, total=len(items), error=last_error)
    return {"success": True, "syncJobId": str(job.id), "stats": stats.as_dict()}


# -- CSV upload ----------------------------------------------------------------


def import_opportunities(db: Session, space_id: str | uuid.UUID, parsed, created_by: Optional[str] = None) -> Dict[str, Any]:
    """Persist a ``buyict_csv.ParseResult`` under an ``upload`` sync job."""
    space_uuid = uuid.UUID(str(space_id))
    integration = get_or_create_integration(db, space_uuid, connection_method="upload")
    job = start_sync_job(db, integration, sync_type="upload", created_by=created_by)
    stats = IngestStats(errors=len(parsed.errors))
    errors: List[str] = list(parsed.errors)

    for row in parsed.opportunities:
        values = {
            "buyict_reference": row.buyict_reference,
            "buyict_url": row.buyict_url,
            "title": row.title,
            "buyer_entity_raw": row.buyer_entity_raw,
            "category": row.category,
            "description": row.description,
            "publish_date": row.publish_date,
            "closing_date": row.closing_date,
            "opportunity_status": row.opportunity_status,
            "contact_text_raw": row.contact_text_raw,
        }
        try:
            _ingest_one(db, space_uuid, job, values, row.emails, stats)
        except Exception as e:
            db.rollback()
            stats.errors += 1
            errors.append(f"{row.buyict_reference}: {e.__class__.__name__}")
            logger.exception("Failed to import BuyICT row", extra={"space_id": str(space_uuid)})

    total = len(parsed.opportunities) + len(parsed.errors)
    finish_sync_job(db, integration, job, stats, total=total, error="; ".join(errors[:5]) or None)
    logger.info(
        "BuyICT CSV imported",
        extra={"space_id": str(space_uuid), "step": "buyict_upload", **stats.as_dict()},
    )
    return {"syncJobId": str(job.id), "stats": stats.as_dict(), "errors": errors}
