"""
Tests for BuyICT ingestion: CSV parsing, webhook payloads, and the listing
and stats queries built on top of them.
"""
import copy
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models.buyict import (
    BuyICTContact,
    BuyICTIntegration,
    BuyICTOpportunity,
    BuyICTOpportunityContact,
    BuyICTSyncJob,
    ConnectionStatus,
    SyncJobStatus,
)
from app.services import buyict_ingest
from app.services.buyict_csv import parse_opportunities_csv
from app.services.buyict_ingest import (
    extract_emails,
    import_opportunities,
    ingest_webhook_payload,
    parse_date,
)
from app.services.buyict_mapping import create_mapping
from app.services.buyict_queries import (
    OpportunityFilters,
    dashboard_stats,
    is_syncing,
    list_contacts,
    list_opportunities,
)

from tests.fixtures.spaces_fixtures import SAMPLE_CSV, WEBHOOK_OPPORTUNITY


def _payload(space_id, *items):
    return {
        "spaceId": str(space_id),
        "opportunities": [copy.deepcopy(i) for i in items],
        "scrapedAt": "2025-06-03T00:00:00Z",
        "totalCount": len(items),
        "source": "buyict-scraper",
    }


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

class TestParseDate:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2025-03-15", datetime(2025, 3, 15)),
            ("2025-06-30T14:00:00Z", datetime(2025, 6, 30, 14, 0)),
            ("2025-06-30T14:00:00+10:00", datetime(2025, 6, 30, 4, 0)),
            ("15/03/2025", datetime(2025, 3, 15)),
            ("1 May 2025", datetime(2025, 5, 1)),
            ("21st March 2025", datetime(2025, 3, 21)),
            ("", None),
            ("not a date", None),
            (None, None),
        ],
    )
    def test_formats(self, value, expected):
        assert parse_date(value) == expected


class TestExtractEmails:

    def test_contact_field_with_name(self):
        (found,) = extract_emails("Jane Smith <Jane.Smith@Finance.gov.au>", "structured_field")
        assert found.email == "jane.smith@finance.gov.au"
        assert found.name == "Jane Smith"
        assert found.confidence == 0.95
        assert found.source_detail == "Contact field"

    def test_page_text_role_and_confidence(self):
        (found,) = extract_emails("For enquiries contact ops@dta.gov.au today", "page_text")
        assert found.role_label == "Enquiries"
        assert found.confidence == 0.75
        assert found.source_detail == "Page text extraction"

    def test_noreply_and_placeholder_domains_skipped(self):
        text = "noreply@agency.gov.au do-not@example.com no-reply@x.gov.au a@test.gov.au real@agency.gov.au"
        assert [e.email for e in extract_emails(text, "page_text")] == ["real@agency.gov.au"]

    def test_duplicates_dropped(self):
        text = "ops@dta.gov.au or OPS@dta.gov.au"
        assert len(extract_emails(text, "page_text")) == 1

    def test_explicit_confidence(self):
        (found,) = extract_emails("x@agency.gov.au", "structured_field", 0.9)
        assert found.confidence == 0.9


class TestParseOpportunitiesCsv:

    def test_rows_parsed_with_aliases(self):
        result = parse_opportunities_csv(SAMPLE_CSV)
        refs = [o.buyict_reference for o in result.opportunities]
        assert refs == ["ATM-001", "ATM-002", "ATM-005"]

        first = result.opportunities[0]
        assert first.title == "Cloud migration services"
        assert first.buyer_entity_raw == "Department of Finance"
        assert first.closing_date == datetime(2025, 3, 15)
        assert first.opportunity_status == "Open"
        assert [e.email for e in first.emails] == ["jane.smith@finance.gov.au"]

    def test_status_defaults_to_open(self):
        result = parse_opportunities_csv(SAMPLE_CSV)
        assert result.opportunities[1].opportunity_status == "Open"
        assert result.opportunities[2].opportunity_status == "Closed"

    def test_row_errors_collected(self):
        result = parse_opportunities_csv(SAMPLE_CSV)
        assert result.errors == ["Row 3: Missing reference/ID", "Row 4: Missing title"]

    def test_noreply_contact_yields_no_email(self):
        result = parse_opportunities_csv(SAMPLE_CSV)
        assert result.opportunities[2].emails == []
        assert result.emails_extracted == 2

    def test_byte_order_mark_header(self):
        result = parse_opportunities_csv("\ufeffreference,title\nR-1,Thing\n")
        assert result.opportunities[0].buyict_reference == "R-1"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestImportOpportunities:

    def test_upload_creates_job_opportunities_and_contacts(self, db):
        space_id = uuid.uuid4()

        outcome = import_opportunities(db, space_id, parse_opportunities_csv(SAMPLE_CSV), created_by="user-1")

        stats = outcome["stats"]
        assert stats["opportunities_added"] == 3
        assert stats["contacts_found"] == 2
        assert stats["errors"] == 2
        job = db.query(BuyICTSyncJob).one()
        assert job.sync_type == "upload"
        assert job.status == SyncJobStatus.COMPLETED.value
        integration = db.query(BuyICTIntegration).one()
        assert integration.connection_method == "upload"
        assert db.query(BuyICTOpportunityContact).count() == 2

    def test_reimport_updates_instead_of_duplicating(self, db):
        space_id = uuid.uuid4()
        parsed = parse_opportunities_csv(SAMPLE_CSV)
        import_opportunities(db, space_id, parsed)
        outcome = import_opportunities(db, space_id, parse_opportunities_csv(SAMPLE_CSV))

        assert outcome["stats"]["opportunities_updated"] == 3
        assert outcome["stats"]["contacts_found"] == 0
        assert db.query(BuyICTOpportunity).count() == 3
        contact = db.query(BuyICTContact).filter(BuyICTContact.email == "jane.smith@finance.gov.au").one()
        assert contact.opportunity_count == 1


class TestIngestWebhookPayload:

    def test_missing_fields_rejected(self, db):
        with pytest.raises(ValueError):
            ingest_webhook_payload(db, {"opportunities": []})
        with pytest.raises(ValueError):
            ingest_webhook_payload(db, {"spaceId": str(uuid.uuid4())})

    def test_opportunity_stored_with_details(self, db):
        space_id = uuid.uuid4()

        outcome = ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY))

        assert outcome["success"] is True
        opp = db.query(BuyICTOpportunity).one()
        assert opp.buyict_reference == "PRI-1001"
        assert opp.description == WEBHOOK_OPPORTUNITY["requirements"]
        assert opp.contact_text_raw == WEBHOOK_OPPORTUNITY["buyer_contact"]
        assert opp.opportunity_status == "Open"
        assert opp.closing_date == datetime(2025, 6, 30, 14, 0)
        assert opp.publish_date == datetime(2025, 6, 2)
        assert opp.details["location"] == "Canberra"
        assert opp.details["working_arrangement"] == "Hybrid"
        assert opp.criteria == ["Stakeholder engagement", "Process mapping"]

        integration = db.query(BuyICTIntegration).one()
        assert integration.connection_method == "api"
        assert integration.connection_status == ConnectionStatus.CONNECTED.value
        assert integration.last_sync_at is not None

    def test_contacts_extracted_and_test_domains_skipped(self, db):
        space_id = uuid.uuid4()

        outcome = ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY))

        assert outcome["stats"]["contacts_found"] == 1
        contact = db.query(BuyICTContact).one()
        assert contact.email == "alex.chen@ato.gov.au"
        link = db.query(BuyICTOpportunityContact).one()
        assert link.source_type == "structured_field"
        assert link.extraction_confidence == 0.9

    def test_contact_count_grows_per_opportunity(self, db):
        space_id = uuid.uuid4()
        second = dict(WEBHOOK_OPPORTUNITY, buyict_reference="PRI-1002", title="Data Analyst")

        ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY, second))
        ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY))

        contact = db.query(BuyICTContact).one()
        assert contact.opportunity_count == 2

    def test_bad_items_counted_job_still_completes(self, db):
        space_id = uuid.uuid4()
        bad = {"title": "No reference"}

        outcome = ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY, bad))

        assert outcome["stats"]["errors"] == 1
        assert outcome["stats"]["opportunities_added"] == 1
        assert db.query(BuyICTSyncJob).one().status == SyncJobStatus.COMPLETED.value

    def test_job_failed_when_every_item_fails(self, db):
        space_id = uuid.uuid4()

        ingest_webhook_payload(db, _payload(space_id, {"title": "x"}, {"buyict_reference": "R"}))

        job = db.query(BuyICTSyncJob).one()
        assert job.status == SyncJobStatus.FAILED.value
        assert job.stats["errors"] == 2
        assert not is_syncing(db, space_id)

    def test_malformed_items_do_not_leave_job_running(self, db):
        space_id = uuid.uuid4()

        outcome = ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY, "PRI-9999", None))

        assert outcome["stats"]["errors"] == 2
        assert outcome["stats"]["opportunities_added"] == 1
        assert db.query(BuyICTSyncJob).one().status == SyncJobStatus.COMPLETED.value
        assert not is_syncing(db, space_id)

    def test_list_valued_text_fields_joined(self, db):
        space_id = uuid.uuid4()
        item = {k: v for k, v in WEBHOOK_OPPORTUNITY.items() if k != "requirements"}
        item["key_duties"] = ["Run workshops", "Escalate to sam.lee@dta.gov.au"]

        outcome = ingest_webhook_payload(db, _payload(space_id, item))

        assert outcome["stats"]["errors"] == 0
        opp = db.query(BuyICTOpportunity).one()
        assert opp.description == "Run workshops\nEscalate to sam.lee@dta.gov.au"
        emails = {c.email for c in db.query(BuyICTContact).all()}
        assert emails == {"alex.chen@ato.gov.au", "sam.lee@dta.gov.au"}

    def test_failed_item_not_counted_as_added(self, db, monkeypatch):
        def broken_contact(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr(buyict_ingest, "record_contact", broken_contact)
        space_id = uuid.uuid4()

        outcome = ingest_webhook_payload(db, _payload(space_id, WEBHOOK_OPPORTUNITY))

        assert outcome["stats"]["opportunities_added"] == 0
        assert outcome["stats"]["emails_extracted"] == 0
        assert outcome["stats"]["errors"] == 1
        assert db.query(BuyICTOpportunity).count() == 0
        assert db.query(BuyICTSyncJob).one().status == SyncJobStatus.FAILED.value


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@pytest.fixture
def populated(db):
    space_id = uuid.uuid4()
    now = datetime.utcnow()
    items = [
        dict(WEBHOOK_OPPORTUNITY, closing_date=(now + timedelta(days=3)).isoformat()),
        {
            "buyict_reference": "PRI-2000",
            "title": "Network upgrade",
            "buyer_entity_raw": "Department of Finance",
            "closing_date": (now + timedelta(days=20)).isoformat(),
        },
        {
            "buyict_reference": "PRI-3000",
            "title": "Legacy support",
            "buyer_entity_raw": "Services Australia",
            "opportunity_status": "Closed",
        },
    ]
    ingest_webhook_payload(db, _payload(space_id, *items))
    create_mapping(db, space_id, "Taxation", "Treasury", match_type="contains", canonical_agency="ATO")
    return space_id


class TestQueries:

    def test_ordered_by_closing_date_nulls_last(self, db, populated):
        refs = [o["buyict_reference"] for o in list_opportunities(db, populated)]
        assert refs == ["PRI-1001", "PRI-2000", "PRI-3000"]

    def test_enriched_with_department_and_contacts(self, db, populated):
        first = list_opportunities(db, populated)[0]
        assert first["canonical_department"] == "Treasury"
        assert first["canonical_agency"] == "ATO"
        assert first["contacts"][0]["email"] == "alex.chen@ato.gov.au"

    def test_filters(self, db, populated):
        def refs(**kw):
            return [o["buyict_reference"] for o in list_opportunities(db, populated, OpportunityFilters(**kw))]

        assert refs(status="Closed") == ["PRI-3000"]
        assert refs(search_term="network") == ["PRI-2000"]
        assert refs(department="Treasury") == ["PRI-1001"]
        assert refs(department="Services Australia") == ["PRI-3000"]
        assert refs(has_contacts=True) == ["PRI-1001"]
        assert refs(closing_to=datetime.utcnow() + timedelta(days=7)) == ["PRI-1001"]

    def test_dashboard_stats(self, db, populated):
        stats = dashboard_stats(db, populated)
        assert stats == {
            "totalOpportunities": 3,
            "openOpportunities": 2,
            "totalContacts": 1,
            "uniqueDepartments": 1,
            "unmappedDepartments": 2,
            "closingThisWeek": 1,
        }

    def test_contacts_filtering(self, db, populated):
        assert [c.email for c in list_contacts(db, populated, search="alex")] == ["alex.chen@ato.gov.au"]
        assert list_contacts(db, populated, min_opportunities=2) == []
