from __future__ import annotations

import difflib
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..models.buyict import BuyICTDepartmentMapping, BuyICTOpportunity, MatchType

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 0.85

# Order in which mapping kinds are tried; the first kind that matches wins
MATCH_PRECEDENCE = (MatchType.EXACT, MatchType.CONTAINS, MatchType.REGEX, MatchType.FUZZY)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass
class MappingMatch:
    mapping: BuyICTDepartmentMapping
    score: float = 1.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "canonical_department": self.mapping.canonical_department,
            "canonical_agency": self.mapping.canonical_agency,
            "mapping_confidence": self.mapping.confidence,
            "mapping_approved": self.mapping.is_approved,
            "match_type": self.mapping.match_type,
            "match_score": round(self.score, 3),
        }


def normalize_entity(value: str) -> str:
    """Lowercase, `&` as `and`, punctuation collapsed to single spaces."""
    lowered = (value or "").lower().replace("&", " and ")
    return _NON_ALNUM.sub(" ", lowered).strip()


def fuzzy_score(pattern: str, value: str) -> float:
    """
    Similarity in [0, 1]. Containment of the normalised pattern inside the
    normalised value counts as a full match.
    """
    p = normalize_entity(pattern)
    v = normalize_entity(value)
    if not p or not v:
        return 0.0
    if f" {p} " in f" {v} ":
        return 1.0
    return difflib.SequenceMatcher(None, p, v).ratio()


def mapping_matches(pattern: str, match_type: str, value: Optional[str]) -> bool:
    if not pattern or not value:
        return False
    kind = MatchType(match_type)

    if kind is MatchType.EXACT:
        return value == pattern
    if kind is MatchType.CONTAINS:
        return pattern.lower() in value.lower()
    if kind is MatchType.REGEX:
        try:
            return re.search(pattern, value, re.IGNORECASE) is not None
        except re.error:
            logger.warning("Invalid department mapping regex: %r", pattern)
            return False
    return fuzzy_score(pattern, value) >= FUZZY_THRESHOLD


def resolve_department(
    mappings: Sequence[BuyICTDepartmentMapping],
    buyer_entity: Optional[str],
) -> Optional[MappingMatch]:
    """
    Pick the mapping for a raw buyer entity.

    Kinds are tried exact, contains, regex, then fuzzy. Within the first
    three the first matching mapping wins; for fuzzy the best score wins.
    """
    if not buyer_entity:
        return None

    for kind in MATCH_PRECEDENCE:
        candidates = [m for m in mappings if m.match_type == kind.value]
        if kind is MatchType.FUZZY:
            best: Optional[MappingMatch] = None
            for m in candidates:
                score = fuzzy_score(m.source_pattern, buyer_entity)
                if score >= FUZZY_THRESHOLD and (best is None or score > best.score):
                    best = MappingMatch(m, score)
            if best:
                return best
            continue
        for m in candidates:
            if mapping_matches(m.source_pattern, kind.value, buyer_entity):
                return MappingMatch(m)
    return None


def find_unmapped_entities(
    mappings: Sequence[BuyICTDepartmentMapping],
    entities: Iterable[Optional[str]],
) -> List[str]:
    """Distinct non-empty entities no mapping resolves, in first-seen order."""
    seen: List[str] = []
    for entity in entities:
        if entity and entity not in seen:
            seen.append(entity)
    return [e for e in seen if resolve_department(mappings, e) is None]


# -- persistence -----------------------------------------------------------


def list_mappings(db: Session, space_id: str | uuid.UUID) -> List[BuyICTDepartmentMapping]:
    return (
        db.query(BuyICTDepartmentMapping)
        .filter(BuyICTDepartmentMapping.space_id == uuid.UUID(str(space_id)))
        .order_by(BuyICTDepartmentMapping.canonical_department.asc())
        .all()
    )


def _validate(source_pattern: str, match_type: str) -> None:
    if not source_pattern or not source_pattern.strip():
        raise ValueError("source_pattern is required")
    try:
        kind = MatchType(match_type)
    except ValueError as e:
        raise ValueError(f"Unknown match_type: {match_type}") from e
    if kind is MatchType.REGEX:
        try:
            re.compile(source_pattern)
        except re.error as e:
            raise ValueError(f"Invalid regex: {e}") from e


def create_mapping(
    db: Session,
    space_id: str | uuid.UUID,
    source_pattern: str,
    canonical_department: str,
    match_type: str = MatchType.EXACT.value,
    canonical_agency: Optional[str] = None,
    confidence: float = 1.0,
    is_approved: bool = True,
    is_auto_generated: bool = False,
) -> BuyICTDepartmentMapping:
    _validate(source_pattern, match_type)
    if not canonical_department:
        raise ValueError("canonical_department is required")
    mapping = BuyICTDepartmentMapping(
        space_id=uuid.UUID(str(space_id)),
        source_pattern=source_pattern,
        match_type=match_type,
        canonical_department=canonical_department,
        canonical_agency=canonical_agency,
        confidence=confidence,
        is_approved=is_approved,
        is_auto_generated=is_auto_generated,
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


def _get_mapping(db: Session, space_id: str | uuid.UUID, mapping_id: str | uuid.UUID) -> BuyICTDepartmentMapping:
    mapping = (
        db.query(BuyICTDepartmentMapping)
        .filter(
            BuyICTDepartmentMapping.id == uuid.UUID(str(mapping_id)),
            BuyICTDepartmentMapping.space_id == uuid.UUID(str(space_id)),
        )
        .first()
    )
    if not mapping:
        raise LookupError("Department mapping not found")
    return mapping


def update_mapping(db: Session, space_id: str | uuid.UUID, mapping_id: str | uuid.UUID, updates: Dict[str, Any]) -> BuyICTDepartmentMapping:
    mapping = _get_mapping(db, space_id, mapping_id)
    _validate(
        updates.get("source_pattern", mapping.source_pattern),
        updates.get("match_type", mapping.match_type),
    )
    for key in (
        "source_pattern",
        "match_type",
        "canonical_department",
        "canonical_agency",
        "confidence",
        "is_approved",
    ):
        if key in updates:
            setattr(mapping, key, updates[key])
    db.commit()
    return mapping


def approve_mapping(db: Session, space_id: str | uuid.UUID, mapping_id: str | uuid.UUID) -> BuyICTDepartmentMapping:
    return update_mapping(db, space_id, mapping_id, {"is_approved": True})


def delete_mapping(db: Session, space_id: str | uuid.UUID, mapping_id: str | uuid.UUID) -> None:
    db.delete(_get_mapping(db, space_id, mapping_id))
    db.commit()


def unmapped_buyer_entities(db: Session, space_id: str | uuid.UUID) -> List[str]:
    space_uuid = uuid.UUID(str(space_id))
    rows = (
        db.query(BuyICTOpportunity.buyer_entity_raw)
        .filter(
            BuyICTOpportunity.space_id == space_uuid,
            BuyICTOpportunity.buyer_entity_raw.isnot(None),
        )
        .distinct()
        .all()
    )
    return find_unmapped_entities(list_mappings(db, space_uuid), sorted(r[0] for r in rows))
