from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models.buyict import (
    BuyICTContact,
    BuyICTOpportunity,
    BuyICTOpportunityContact,
    BuyICTSyncJob,
    SyncJobStatus,
)
from .buyict_mapping import find_unmapped_entities, list_mappings, resolve_department


@dataclass
class OpportunityFilters:
    status: Optional[str] = None
    closing_from: Optional[datetime] = None
    closing_to: Optional[datetime] = None
    search_term: Optional[str] = None
    department: Optional[str] = None
    has_contacts: Optional[bool] = None


def _contacts_by_opportunity(db: Session, opportunity_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[Dict[str, Any]]]:
    if not opportunity_ids:
        return {}
    rows = (
        db.query(BuyICTOpportunityContact, BuyICTContact)
        .join(BuyICTContact, BuyICTContact.id == BuyICTOpportunityContact.contact_id)
        .filter(BuyICTOpportunityContact.opportunity_id.in_(opportunity_ids))
        .all()
    )
    out: Dict[uuid.UUID, List[Dict[str, Any]]] = {}
    for link, contact in rows:
        out.setdefault(link.opportunity_id, []).append(
            {
                "contact_id": contact.id,
                "email": contact.email,
                "name": contact.name,
                "role_label": link.role_label,
                "source_type": link.source_type,
                "source_detail": link.source_detail,
                "extraction_confidence": link.extraction_confidence,
            }
        )
    return out


def list_opportunities(
    db: Session,
    space_id: str | uuid.UUID,
    filters: Optional[OpportunityFilters] = None,
) -> List[Dict[str, Any]]:
    """
    Opportunities for a space, soonest closing first (undated last), each
    enriched with its contacts and the resolved canonical department.
    """
    filters = filters or OpportunityFilters()
    space_uuid = uuid.UUID(str(space_id))

    q = db.query(BuyICTOpportunity).filter(BuyICTOpportunity.space_id == space_uuid)
    if filters.status:
        q = q.filter(BuyICTOpportunity.opportunity_status == filters.status)
    if filters.closing_from:
        q = q.filter(BuyICTOpportunity.closing_date >= filters.closing_from)
    if filters.closing_to:
        q = q.filter(BuyICTOpportunity.closing_date <= filters.closing_to)
    if filters.search_term:
        like = f"%{filters.search_term}%"
        q = q.filter(
            or_(
                BuyICTOpportunity.title.ilike(like),
                BuyICTOpportunity.buyer_entity_raw.ilike(like),
                BuyICTOpportunity.buyict_reference.ilike(like),
            )
        )
    q = q.order_by(BuyICTOpportunity.closing_date.is_(None), BuyICTOpportunity.closing_date.asc())
    opportunities = q.all()

    mappings = list_mappings(db, space_uuid)
    contacts = _contacts_by_opportunity(db, [o.id for o in opportunities])

    results: List[Dict[str, Any]] = []
    for opp in opportunities:
        match = resolve_department(mappings, opp.buyer_entity_raw)
        opp_contacts = contacts.get(opp.id, [])
        canonical = match.mapping.canonical_department if match else None

        if filters.department and filters.department not in (canonical, opp.buyer_entity_raw):
            continue
        if filters.has_contacts is not None and bool(opp_contacts) != filters.has_contacts:
            continue

        results.append(
            {
                "id": opp.id,
                "buyict_reference": opp.buyict_reference,
                "buyict_url": opp.buyict_url,
                "title": opp.title,
                "buyer_entity_raw": opp.buyer_entity_raw,
                "category": opp.category,
                "description": opp.description,
                "publish_date": opp.publish_date,
                "closing_date": opp.closing_date,
                "opportunity_status": opp.opportunity_status,
                "contact_text_raw": opp.contact_text_raw,
                "details": opp.details or {},
                "criteria": opp.criteria or [],
                "last_synced_at": opp.last_synced_at,
                "canonical_department": canonical,
                "canonical_agency": match.mapping.canonical_agency if match else None,
                "mapping_confidence": match.mapping.confidence if match else None,
                "contacts": opp_contacts,
            }
        )
    return results


def list_contacts(
    db: Session,
    space_id: str | uuid.UUID,
    search: Optional[str] = None,
    min_opportunities: Optional[int] = None,
) -> List[BuyICTContact]:
    q = db.query(BuyICTContact).filter(BuyICTContact.space_id == uuid.UUID(str(space_id)))
    if search:
        like = f"%{search}%"
        q = q.filter(or_(BuyICTContact.email.ilike(like), BuyICTContact.name.ilike(like)))
    if min_opportunities:
        q = q.filter(BuyICTContact.opportunity_count >= min_opportunities)
    return q.order_by(BuyICTContact.last_seen_at.desc()).all()


def list_sync_jobs(db: Session, space_id: str | uuid.UUID, limit: int = 10) -> List[BuyICTSyncJob]:
    return (
        db.query(BuyICTSyncJob)
        .filter(BuyICTSyncJob.space_id == uuid.UUID(str(space_id)))
        .order_by(BuyICTSyncJob.created_at.desc())
        .limit(limit)
        .all()
    )


def is_syncing(db: Session, space_id: str | uuid.UUID) -> bool:
    active = (SyncJobStatus.PENDING.value, SyncJobStatus.RUNNING.value)
    return (
        db.query(BuyICTSyncJob.id)
        .filter(
            BuyICTSyncJob.space_id == uuid.UUID(str(space_id)),
            BuyICTSyncJob.status.in_(active),
        )
        .first()
        is not None
    )


def dashboard_stats(db: Session, space_id: str | uuid.UUID, now: Optional[datetime] = None) -> Dict[str, int]:
    space_uuid = uuid.UUID(str(space_id))
    now = now or datetime.utcnow()
    base = db.query(BuyICTOpportunity).filter(BuyICTOpportunity.space_id == space_uuid)

    total = base.count()
    open_count = base.filter(func.lower(BuyICTOpportunity.opportunity_status) == "open").count()
    closing = base.filter(
        BuyICTOpportunity.closing_date >= now,
        BuyICTOpportunity.closing_date <= now + timedelta(days=7),
    ).count()
    contacts = db.query(BuyICTContact).filter(BuyICTContact.space_id == space_uuid).count()

    entities = [
        r[0]
        for r in db.query(BuyICTOpportunity.buyer_entity_raw)
        .filter(BuyICTOpportunity.space_id == space_uuid, BuyICTOpportunity.buyer_entity_raw.isnot(None))
        .distinct()
        .all()
    ]
    mappings = list_mappings(db, space_uuid)
    departments = {
        m.mapping.canonical_department
        for m in (resolve_department(mappings, e) for e in entities)
        if m is not None
    }

    return {
        "totalOpportunities": total,
        "openOpportunities": open_count,
        "totalContacts": contacts,
        "uniqueDepartments": len(departments),
        "unmappedDepartments": len(find_unmapped_entities(mappings, entities)),
        "closingThisWeek": closing,
    }
