import json
import uuid

from app.models.brand import BrandProfile
from app.models.campaign import Campaign
from app.services.ideas import generate_campaign_ideas, parse_ideas

from tests.fixtures.spaces_fixtures import FakeLLM


class TestParseIdeas:

    def test_json_array(self):
        assert parse_ideas('["Idea one", " Idea two "]') == ["Idea one", "Idea two"]

    def test_code_fenced_json(self):
        content = '```json\n["Cloud cost traps", "Hiring in a tight market"]\n```'
        assert parse_ideas(content) == ["Cloud cost traps", "Hiring in a tight market"]

    def test_falls_back_to_long_lines(self):
        content = "Here you go:\n1. Why data quality matters\nshort\n2. Lessons from migrations"
        assert parse_ideas(content) == [
            "Here you go:",
            "1. Why data quality matters",
            "2. Lessons from migrations",
        ]


class TestGenerateCampaignIdeas:

    def test_ideas_stored_on_campaign(self, db):
        space_id = uuid.uuid4()
        campaign = Campaign(space_id=space_id, name="Q", target_count=3, generation_settings={"topics": ""})
        db.add(campaign)
        db.add(BrandProfile(space_id=space_id, key_messaging="We build data platforms"))
        db.commit()
        llm = FakeLLM(lambda kw: json.dumps(["A first idea", "A second idea", "A third idea"]))

        ideas = generate_campaign_ideas(db, campaign.id, llm=llm)

        db.refresh(campaign)
        assert ideas == ["A first idea", "A second idea", "A third idea"]
        assert campaign.generation_settings["generated_ideas"] == ideas
        assert "Key Messaging: We build data platforms" in llm.calls[0]["messages"][0]["content"]
        assert llm.calls[0]["temperature"] == 0.9
