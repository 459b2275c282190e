"""
Tests for buyict_mapping.py - department mapping decisions.

exact is case-sensitive; contains and regex are case-insensitive; an invalid
regex never matches; fuzzy matches on normalised similarity >= 0.85 or
normalised containment.
"""
import uuid

import pytest

from app.models.buyict import BuyICTDepartmentMapping, BuyICTOpportunity, MatchType
from app.services.buyict_mapping import (
    create_mapping,
    find_unmapped_entities,
    fuzzy_score,
    mapping_matches,
    normalize_entity,
    resolve_department,
    unmapped_buyer_entities,
)


def _mapping(pattern, match_type, department="Dept", confidence=1.0):
    return BuyICTDepartmentMapping(
        source_pattern=pattern,
        match_type=match_type,
        canonical_department=department,
        confidence=confidence,
        is_approved=True,
    )


class TestMappingMatches:

    @pytest.mark.parametrize(
        "pattern, match_type, value, expected",
        [
            ("Department of Finance", "exact", "Department of Finance", True),
            ("Department of Finance", "exact", "department of finance", False),
            ("finance", "contains", "Department of FINANCE", True),
            ("treasury", "contains", "Department of Finance", False),
            (r"^dept\.? of (health|ageing)", "regex", "Dept of Health and Aged Care", True),
            (r"^dept of health$", "regex", "Dept of Health and Aged Care", False),
            ("([unclosed", "regex", "([unclosed", False),
            ("Australian Taxation Office", "fuzzy", "Australian Taxation Ofice", True),
            ("Taxation Office", "fuzzy", "The Australian Taxation Office (ATO)", True),
            ("Department of Defence", "fuzzy", "Services Australia", False),
        ],
    )
    def test_decisions(self, pattern, match_type, value, expected):
        assert mapping_matches(pattern, match_type, value) is expected

    def test_empty_value_never_matches(self):
        assert mapping_matches("x", "contains", None) is False
        assert mapping_matches("x", "contains", "") is False


class TestFuzzy:

    def test_normalize_entity(self):
        assert normalize_entity("Dept. of Health & Aged-Care") == "dept of health and aged care"

    def test_containment_scores_one(self):
        assert fuzzy_score("health", "Department of Health") == 1.0

    def test_containment_respects_word_boundaries(self):
        assert fuzzy_score("ato", "Senator Office") < 1.0


class TestResolveDepartment:

    def test_exact_beats_contains(self):
        mappings = [
            _mapping("finance", "contains", department="Contains Finance"),
            _mapping("Department of Finance", "exact", department="Exact Finance"),
        ]
        match = resolve_department(mappings, "Department of Finance")
        assert match.mapping.canonical_department == "Exact Finance"

    def test_contains_beats_regex_and_fuzzy(self):
        mappings = [
            _mapping("Department of Finanse", "fuzzy", department="Fuzzy"),
            _mapping("fin.*", "regex", department="Regex"),
            _mapping("finance", "contains", department="Contains"),
        ]
        assert resolve_department(mappings, "Department of Finance").mapping.canonical_department == "Contains"

    def test_regex_beats_fuzzy(self):
        mappings = [
            _mapping("Department of Finance", "fuzzy", department="Fuzzy"),
            _mapping("finance$", "regex", department="Regex"),
        ]
        assert resolve_department(mappings, "Department of Finance").mapping.canonical_department == "Regex"

    def test_best_fuzzy_score_wins(self):
        mappings = [
            _mapping("Department of Financial Services", "fuzzy", department="Loose"),
            _mapping("Department of Finance", "fuzzy", department="Close"),
        ]
        match = resolve_department(mappings, "Department of Finances")
        assert match.mapping.canonical_department == "Close"
        assert match.score >= 0.85

    def test_no_match_returns_none(self):
        assert resolve_department([_mapping("Treasury", "exact")], "Department of Finance") is None
        assert resolve_department([_mapping("Treasury", "exact")], None) is None


class TestUnmappedEntities:

    def test_unmapped_are_distinct_and_ordered(self):
        mappings = [_mapping("finance", "contains")]
        entities = ["Services Australia", "Department of Finance", None, "Services Australia", "ATO"]
        assert find_unmapped_entities(mappings, entities) == ["Services Australia", "ATO"]

    def test_from_database(self, db):
        space_id = uuid.uuid4()
        create_mapping(db, space_id, "finance", "Department of Finance", match_type=MatchType.CONTAINS.value)
        for ref, buyer in [("A", "Department of Finance"), ("B", "Digital Transformation Agency"), ("C", None)]:
            db.add(BuyICTOpportunity(space_id=space_id, buyict_reference=ref, title=ref, buyer_entity_raw=buyer))
        db.commit()

        assert unmapped_buyer_entities(db, space_id) == ["Digital Transformation Agency"]


class TestMappingValidation:

    def test_invalid_regex_rejected_on_create(self, db):
        with pytest.raises(ValueError):
            create_mapping(db, uuid.uuid4(), "([bad", "Dept", match_type="regex")

    def test_unknown_match_type_rejected(self, db):
        with pytest.raises(ValueError):
            create_mapping(db, uuid.uuid4(), "x", "Dept", match_type="soundex")
