"""RFP discovery: listing parsing, dedup and the scan pipeline."""

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import DiscoveredRfp
from schemas.rfp import RfpListing, RfpScore
from services import rfp_monitor
from services.errors import UpstreamError


def _source(name="NYC City Record"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        source_name=name,
        source_url=f"https://example.gov/{name.lower().replace(' ', '-')}",
        last_checked_at=None,
    )


class TestSchemas:

    def test_listing_is_lenient(self):
        listing = RfpListing.model_validate({
            "title": "Elevator filings",
            "rfp_number": " ",
            "due_date": "March 3rd",
            "url": "",
        })
        assert listing.rfp_number is None
        assert listing.due_date is None
        assert listing.url is None

    def test_listing_date_with_time(self):
        listing = RfpListing.model_validate({"title": "X", "due_date": "2026-03-03T17:00:00"})
        assert listing.due_date == date(2026, 3, 3)

    def test_score_is_clamped(self):
        assert RfpScore.model_validate({"relevance_score": 130}).relevance_score == 100
        assert RfpScore.model_validate({"relevance_score": -5}).relevance_score == 0
        assert RfpScore.model_validate({"relevance_score": 72.6}).relevance_score == 73

    def test_zero_value_is_unknown(self):
        assert RfpScore.model_validate({"estimated_value": 0}).estimated_value is None


class TestAgentParsing:

    def test_parse_listings_drops_untitled(self):
        from agents.rfp_extraction_agent import parse_listings

        output = """Here you go:
```json
[{"title": "DOB expediting services", "rfp_number": "PIN 850"}, {"title": ""}, "junk"]
```"""
        listings = parse_listings(output)
        assert [l.title for l in listings] == ["DOB expediting services"]

    def test_parse_listings_requires_array(self):
        from agents.rfp_extraction_agent import parse_listings

        with pytest.raises(ValueError):
            parse_listings("No listings found on this page.")

    def test_parse_score_falls_back_to_default(self):
        from agents.rfp_scoring_agent import parse_score

        assert parse_score("not json").relevance_score == 50
        score = parse_score('{"relevance_score": 88, "service_tags": ["fdny"]}')
        assert score.relevance_score == 88
        assert score.service_tags == ["fdny"]

    def test_keywords_context(self):
        from agents.rfp_scoring_agent import keywords_context

        assert keywords_context(["permit"], None) == "Include keywords: permit\nExclude keywords: "


class TestDedup:

    def test_known_url_and_title_are_dropped(self):
        source = _source()
        candidates = [
            (source, RfpListing(title="Known by URL", url="https://a.gov/1")),
            (source, RfpListing(title="  KNOWN BY TITLE ")),
            (source, RfpListing(title="Fresh", url="https://a.gov/2")),
            (source, RfpListing(title="fresh")),
        ]
        fresh = rfp_monitor.dedup_listings(candidates, {"https://a.gov/1"}, {"known by title"})
        assert [l.title for _, l in fresh] == ["Fresh"]

    def test_pipeline_match_goes_to_review(self):
        source = _source()
        rfp_id = uuid.uuid4()
        listing = RfpListing(title="Code consulting", rfp_number=" PIN-123 ", due_date="2026-05-01")
        score = RfpScore(relevance_score=90, relevance_reason="Strong fit")

        row = rfp_monitor.build_discovered_rfp(uuid.uuid4(), source, listing, score, {"pin-123": rfp_id})

        assert row.status == "reviewing"
        assert row.rfp_id == rfp_id
        assert row.relevance_reason == "Already in pipeline. Strong fit"
        assert row.issuing_agency == "NYC City Record"
        assert row.due_date.date() == date(2026, 5, 1)

    def test_unmatched_listing_is_new(self):
        row = rfp_monitor.build_discovered_rfp(
            uuid.uuid4(), _source(), RfpListing(title="Zoning study"),
            RfpScore(relevance_score=70), {}
        )
        assert row.status == "new"
        assert row.rfp_id is None


class TestScanCompany:

    def _run(self, db, scrape, extract, score):
        return asyncio.run(rfp_monitor.scan_company(
            db, uuid.uuid4(), scrape=scrape, extract=extract, score=score
        ))

    def test_no_sources(self):
        async def unused(*args):
            raise AssertionError("should not be called")

        summary = self._run(FakeSession(), unused, unused, unused)
        assert summary["sources_checked"] == 0
        assert summary["new_count"] == 0

    def test_full_scan(self):
        city = _source("NYC City Record")
        broken = _source("Broken Portal")
        pipeline_id = uuid.uuid4()
        rule = SimpleNamespace(min_relevance_score=60, keyword_include=["dob"], keyword_exclude=[])
        db = FakeSession(results=[
            FakeResult([city, broken]),
            FakeResult([rule]),
            FakeResult([("https://a.gov/known", "Known listing")]),
            FakeResult([(pipeline_id, "PIN-123", "Other pipeline RFP")]),
        ])

        async def scrape(url):
            return None if "broken" in url else "# Listings"

        async def extract(source, page):
            return [
                RfpListing(title="Elevator filing services", rfp_number="PIN-123", url="https://a.gov/1"),
                RfpListing(title="Known listing", url="https://a.gov/known"),
                RfpListing(title="Office furniture", url="https://a.gov/3"),
            ]

        async def score(listing, rules):
            assert rules is rule
            if "furniture" in listing.title:
                return RfpScore(relevance_score=10)
            return RfpScore(relevance_score=85, relevance_reason="DOB work", estimated_value=Decimal("120000"))

        summary = self._run(db, scrape, extract, score)

        assert summary["new_count"] == 1
        assert summary["total_scanned"] == 3
        assert summary["sources_checked"] == 2
        assert summary["source_errors"] == [
            {"source": "Broken Portal", "error": "Firecrawl returned no content"}
        ]
        assert city.last_checked_at is not None
        assert broken.last_checked_at is None

        stored = db.of_type(DiscoveredRfp)
        assert len(stored) == 1
        assert stored[0].status == "reviewing"
        assert stored[0].rfp_id == pipeline_id
        assert db.commits == 2

    def test_quota_error_stops_extraction(self):
        sources = [_source("First"), _source("Second")]
        db = FakeSession(results=[FakeResult(sources), FakeResult([])])
        calls = []

        async def scrape(url):
            return "page"

        async def extract(source, page):
            calls.append(source.source_name)
            raise UpstreamError("Rate limited", 429)

        async def score(listing, rules):
            raise AssertionError("should not be called")

        summary = self._run(db, scrape, extract, score)

        assert calls == ["First"]
        assert summary["source_errors"] == [{"source": "First", "error": "AI error: 429"}]

    def test_scoring_failure_uses_default_score(self):
        source = _source()
        db = FakeSession(results=[FakeResult([source]), FakeResult([])])

        async def scrape(url):
            return "page"

        async def extract(source, page):
            return [RfpListing(title="Permit consulting")]

        async def score(listing, rules):
            raise UpstreamError("Gateway timeout", 504)

        summary = self._run(db, scrape, extract, score)

        # Default score 50 falls below the default minimum of 60
        assert summary["new_count"] == 0
        assert db.of_type(DiscoveredRfp) == []
