"""Government agency directory, filled by the directory scraper's webhook."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.gov_agency import GovAgency, GovAgencyPerson
from .buyict_ingest import parse_date

logger = logging.getLogger(__name__)

# (payload key, label) pairs folded into ``GovAgency.notes``; None means unlabelled
NOTE_FIELDS = (
    ("description", "Description"),
    ("gfs_classification", "GFS Classification"),
    ("established_under", "Established Under"),
    ("established_info", None),
    ("classification", "Classification"),
    ("materiality", "Materiality"),
    ("creation_date", "Creation Date"),
    ("fax", "Fax"),
)


def build_notes(agency: Dict[str, Any]) -> str:
    parts = []
    for key, label in NOTE_FIELDS:
        value = agency.get(key)
        if value:
            parts.append(f"{label}: {value}" if label else str(value))
    return "\n\n".join(parts)


def upsert_agency(db: Session, space_id: uuid.UUID, agency: Dict[str, Any]) -> GovAgency:
    if not isinstance(agency, dict):
        raise ValueError(f"Agency must be an object, got {type(agency).__name__}")
    name = str(agency.get("name") or "").strip()
    if not name:
        raise ValueError("Agency name is required")

    row = (
        db.query(GovAgency)
        .filter(GovAgency.space_id == space_id, GovAgency.name == name)
        .first()
    )
    if row is None:
        row = GovAgency(space_id=space_id, name=name)
        db.add(row)

    row.portfolio = agency.get("portfolio")
    row.website = agency.get("website")
    row.phone = agency.get("phone")
    row.email = None
    row.abn = agency.get("abn")
    row.head_office_address = agency.get("address")
    row.agency_type = agency.get("type_of_body")
    row.directory_gov_url = agency.get("directory_gov_url")
    row.notes = build_notes(agency)
    row.org_chart_status = "pending"
    row.last_synced_at = datetime.utcnow()
    db.flush()
    return row


def ingest_directory_payload(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Upsert each agency by (space, name); one bad agency does not stop the batch."""
    space_ref = payload.get("spaceId")
    if not space_ref:
        raise ValueError("Missing spaceId")
    space_id = uuid.UUID(str(space_ref))
    agencies: List[Dict[str, Any]] = payload.get("agencies") or []

    success = errors = 0
    for agency in agencies:
        try:
            with db.begin_nested():
                upsert_agency(db, space_id, agency)
            db.commit()
            success += 1
        except Exception as e:
            db.rollback()
            errors += 1
            logger.warning(
                "Failed to upsert agency %s: %s",
                agency.get("name") if isinstance(agency, dict) else None,
                e,
                extra={"space_id": str(space_id), "step": "gov_directory_sync"},
            )

    logger.info(
        "Directory sync batch stored: %d ok, %d errors",
        success,
        errors,
        extra={"space_id": str(space_id), "step": "gov_directory_sync"},
    )
    return {
        "success": True,
        "processed": len(agencies),
        "successCount": success,
        "errorCount": errors,
        "isFinal": bool(payload.get("isFinal")),
    }


def list_agencies(
    db: Session,
    space_id: str | uuid.UUID,
    search: Optional[str] = None,
    portfolio: Optional[str] = None,
) -> List[GovAgency]:
    q = db.query(GovAgency).filter(GovAgency.space_id == uuid.UUID(str(space_id)))
    if search:
        q = q.filter(GovAgency.name.ilike(f"%{search}%"))
    if portfolio:
        q = q.filter(GovAgency.portfolio == portfolio)
    return q.order_by(GovAgency.name.asc()).all()


def get_agency(db: Session, space_id: str | uuid.UUID, agency_id: str | uuid.UUID) -> GovAgency:
    agency = (
        db.query(GovAgency)
        .filter(
            GovAgency.space_id == uuid.UUID(str(space_id)),
            GovAgency.id == uuid.UUID(str(agency_id)),
        )
        .first()
    )
    if not agency:
        raise LookupError("Agency not found")
    return agency


# -- org chart people ----------------------------------------------------------


def upsert_person(
    db: Session,
    agency: GovAgency,
    person: Dict[str, Any],
    source_url: Optional[str],
    extracted_at: Optional[datetime],
) -> GovAgencyPerson:
    if not isinstance(person, dict):
        raise ValueError(f"Person must be an object, got {type(person).__name__}")
    name = str(person.get("name") or "").strip()
    if not name:
        raise ValueError("Person name is required")

    row = (
        db.query(GovAgencyPerson)
        .filter(GovAgencyPerson.agency_id == agency.id, GovAgencyPerson.name == name)
        .first()
    )
    if row is None:
        row = GovAgencyPerson(agency_id=agency.id, space_id=agency.space_id, name=name)
        db.add(row)

    seniority = person.get("seniority_level")
    row.title = person.get("title") or None
    row.division = person.get("division") or None
    row.seniority_level = int(seniority) if seniority not in (None, "") else None
    row.photo_url = person.get("photo_url") or None
    row.email = person.get("email") or None
    row.phone = person.get("phone") or None
    row.source_url = source_url
    row.extracted_at = extracted_at
    row.extraction_method = "ai"
    db.flush()
    return row


def ingest_people_payload(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Store the people the org chart scraper found for one agency. ``payload`` is
    ``{agencyId, people, orgChartUrl?, extractedAt?, source?}``. People are
    upserted by (agency, name); the agency's org chart status ends up
    ``completed`` when anyone was stored and ``failed`` when every person failed.
    """
    agency_ref = payload.get("agencyId")
    if not agency_ref:
        raise ValueError("Missing agencyId")
    people = payload.get("people") or []
    if not isinstance(people, list):
        raise ValueError("people must be a list")

    agency = db.query(GovAgency).filter(GovAgency.id == uuid.UUID(str(agency_ref))).first()
    if not agency:
        raise LookupError("Agency not found")

    source_url = payload.get("orgChartUrl") or None
    extracted_at = parse_date(payload.get("extractedAt")) or datetime.utcnow()
    log_extra = {"space_id": str(agency.space_id), "agency_id": str(agency.id), "step": "gov_people_sync"}

    success = errors = 0
    for person in people:
        try:
            with db.begin_nested():
                upsert_person(db, agency, person, source_url, extracted_at)
            db.commit()
            success += 1
        except Exception as e:
            db.rollback()
            errors += 1
            logger.warning(
                "Failed to upsert person %s: %s",
                person.get("name") if isinstance(person, dict) else None,
                e,
                extra=log_extra,
            )

    if success:
        agency.org_chart_status = "completed"
        agency.org_chart_url = source_url or agency.org_chart_url
        agency.org_chart_last_scraped = datetime.utcnow()
    elif errors:
        agency.org_chart_status = "failed"
    db.commit()

    logger.info("People sync stored: %d ok, %d errors", success, errors, extra=log_extra)
    return {"success": True, "processed": len(people), "successCount": success, "errorCount": errors}


def list_people(db: Session, space_id: str | uuid.UUID, agency_id: str | uuid.UUID) -> List[GovAgencyPerson]:
    agency = get_agency(db, space_id, agency_id)
    return (
        db.query(GovAgencyPerson)
        .filter(GovAgencyPerson.agency_id == agency.id)
        .order_by(GovAgencyPerson.seniority_level.is_(None), GovAgencyPerson.seniority_level.asc(), GovAgencyPerson.name.asc())
        .all()
    )
