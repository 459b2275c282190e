import uuid
from datetime import datetime

import pytest

from app.models.gov_agency import GovAgency, GovAgencyPerson
from app.services.gov_directory import (
    build_notes,
    get_agency,
    ingest_directory_payload,
    ingest_people_payload,
    list_agencies,
    list_people,
)


AGENCY = {
    "name": "Digital Transformation Agency",
    "portfolio": "Finance",
    "description": "Leads digital transformation.",
    "website": "https://www.dta.gov.au",
    "phone": "02 6120 8000",
    "fax": "02 6120 8001",
    "abn": "96 257 979 159",
    "address": "Canberra ACT",
    "type_of_body": "Non-corporate Commonwealth entity",
    "established_info": "Established 2016",
    "materiality": "Small",
    "directory_gov_url": "https://www.directory.gov.au/portfolios/finance/dta",
}


class TestBuildNotes:

    def test_labelled_fields_joined_in_order(self):
        notes = build_notes(AGENCY)
        assert notes == (
            "Description: Leads digital transformation.\n\n"
            "Established 2016\n\n"
            "Materiality: Small\n\n"
            "Fax: 02 6120 8001"
        )

    def test_empty_when_nothing_optional(self):
        assert build_notes({"name": "X"}) == ""


class TestIngestDirectoryPayload:

    def test_missing_space_rejected(self, db):
        with pytest.raises(ValueError):
            ingest_directory_payload(db, {"agencies": []})

    def test_upserts_by_name(self, db):
        space_id = uuid.uuid4()
        payload = {"spaceId": str(space_id), "agencies": [AGENCY], "isFinal": False}

        first = ingest_directory_payload(db, payload)
        second = ingest_directory_payload(db, {**payload, "agencies": [dict(AGENCY, phone="1300 000 000")], "isFinal": True})

        assert first["successCount"] == 1
        assert second["isFinal"] is True
        agency = db.query(GovAgency).one()
        assert agency.phone == "1300 000 000"
        assert agency.head_office_address == "Canberra ACT"
        assert agency.agency_type == "Non-corporate Commonwealth entity"
        assert agency.org_chart_status == "pending"
        assert agency.email is None

    def test_nameless_agency_counted_as_error(self, db):
        space_id = uuid.uuid4()
        result = ingest_directory_payload(db, {"spaceId": str(space_id), "agencies": [AGENCY, {"portfolio": "X"}]})
        assert result == {"success": True, "processed": 2, "successCount": 1, "errorCount": 1, "isFinal": False}

    def test_non_object_agency_counted_as_error(self, db):
        space_id = uuid.uuid4()
        result = ingest_directory_payload(db, {"spaceId": str(space_id), "agencies": ["Treasury", None, AGENCY]})
        assert result["successCount"] == 1
        assert result["errorCount"] == 2
        assert db.query(GovAgency).one().name == "Digital Transformation Agency"

    def test_listing_and_lookup(self, db):
        space_id = uuid.uuid4()
        ingest_directory_payload(db, {"spaceId": str(space_id), "agencies": [AGENCY, dict(AGENCY, name="Australian Taxation Office", portfolio="Treasury")]})

        assert [a.name for a in list_agencies(db, space_id)] == ["Australian Taxation Office", "Digital Transformation Agency"]
        assert [a.name for a in list_agencies(db, space_id, portfolio="Treasury")] == ["Australian Taxation Office"]
        agency = list_agencies(db, space_id, search="digital")[0]
        assert get_agency(db, space_id, agency.id).name == "Digital Transformation Agency"
        with pytest.raises(LookupError):
            get_agency(db, space_id, uuid.uuid4())


class TestIngestPeoplePayload:

    @pytest.fixture
    def agency(self, db):
        space_id = uuid.uuid4()
        ingest_directory_payload(db, {"spaceId": str(space_id), "agencies": [AGENCY]})
        return db.query(GovAgency).one()

    def _payload(self, agency, *people):
        return {
            "agencyId": str(agency.id),
            "people": list(people),
            "orgChartUrl": "https://www.dta.gov.au/about-us/our-structure",
            "extractedAt": "2025-06-03T00:00:00Z",
            "source": "gov-orgchart-scraper",
        }

    def test_people_upserted_by_name_and_status_completed(self, db, agency):
        secretary = {"name": "Chris Fechner", "title": "Chief Executive Officer", "seniority_level": 1}
        first = ingest_people_payload(db, self._payload(agency, secretary, {"name": "Lucy Poole", "title": "General Manager", "division": "Strategy"}))
        second = ingest_people_payload(db, self._payload(agency, dict(secretary, email="ceo@dta.gov.au")))

        assert first == {"success": True, "processed": 2, "successCount": 2, "errorCount": 0}
        assert second["successCount"] == 1
        assert db.query(GovAgencyPerson).count() == 2
        ceo = db.query(GovAgencyPerson).filter(GovAgencyPerson.name == "Chris Fechner").one()
        assert ceo.email == "ceo@dta.gov.au"
        assert ceo.space_id == agency.space_id
        assert ceo.extracted_at == datetime(2025, 6, 3)
        assert ceo.source_url == "https://www.dta.gov.au/about-us/our-structure"

        db.refresh(agency)
        assert agency.org_chart_status == "completed"
        assert agency.org_chart_url == "https://www.dta.gov.au/about-us/our-structure"
        assert agency.org_chart_last_scraped is not None

    def test_bad_people_counted_and_agency_failed_when_none_stored(self, db, agency):
        result = ingest_people_payload(db, self._payload(agency, {"title": "No name"}, "Chris Fechner", None))

        assert result["errorCount"] == 3
        assert db.query(GovAgencyPerson).count() == 0
        db.refresh(agency)
        assert agency.org_chart_status == "failed"

    def test_validation(self, db, agency):
        with pytest.raises(ValueError):
            ingest_people_payload(db, {"people": []})
        with pytest.raises(ValueError):
            ingest_people_payload(db, {"agencyId": str(agency.id), "people": {"name": "x"}})
        with pytest.raises(LookupError):
            ingest_people_payload(db, {"agencyId": str(uuid.uuid4()), "people": []})

    def test_people_listed_by_seniority(self, db, agency):
        ingest_people_payload(db, self._payload(
            agency,
            {"name": "Zoe Adams", "title": "Director"},
            {"name": "Lucy Poole", "title": "General Manager", "seniority_level": 3},
            {"name": "Chris Fechner", "title": "Chief Executive Officer", "seniority_level": 1},
        ))

        people = list_people(db, agency.space_id, agency.id)

        assert [p.name for p in people] == ["Chris Fechner", "Lucy Poole", "Zoe Adams"]
        with pytest.raises(LookupError):
            list_people(db, uuid.uuid4(), agency.id)
