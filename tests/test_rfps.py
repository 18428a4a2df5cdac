"""Pipeline RFPs: document extraction and promotion of discovered listings."""

import asyncio
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from agents import rfp_extraction_agent
from agents.rfp_extraction_agent import PARSE_FAILURE_NOTE, parse_document_fields
from config.settings import settings
from database.models import Rfp
from schemas.rfp import ExtractedRfp
from services import rfps
from services.errors import InvalidOperation


class TestExtractedRfp:

    def test_money_and_counts_as_models_write_them(self):
        extracted = ExtractedRfp.model_validate({
            "title": "On-call code consulting",
            "contract_value": "$1,500,000",
            "mwbe_goal_min": "30%",
            "estimated_staff_count": 2.5,
            "estimated_duration_months": "36",
        })
        assert extracted.contract_value == Decimal("1500000")
        assert extracted.mwbe_goal_min == 30.0
        assert extracted.estimated_staff_count == 2
        assert extracted.estimated_duration_months == 36

    def test_one_bad_field_keeps_the_rest(self):
        extracted = ExtractedRfp.model_validate({
            "title": "Facade inspections",
            "rfp_number": 20261234,
            "contract_value": "to be negotiated",
            "insurance_requirements": "see appendix C",
            "key_dates": [{"label": "Pre-bid", "date": "2026-05-01"}, "Q&A closes May 8"],
            "required_sections": ["Approach", {"name": "Staffing"}],
            "due_date": "June 1st",
        })
        assert extracted.title == "Facade inspections"
        assert extracted.rfp_number == "20261234"
        assert extracted.contract_value is None
        assert extracted.insurance_requirements is None
        assert [d.label for d in extracted.key_dates] == ["Pre-bid"]
        assert extracted.required_sections == ["Approach"]
        assert extracted.due_date is None

    def test_extra_keys_are_kept(self):
        extracted = ExtractedRfp.model_validate({"title": "Boiler permits", "bonding_required": True})
        assert extracted.model_dump(mode="json")["bonding_required"] is True


class TestParseDocumentFields:

    def test_fenced_reply(self):
        reply = '```json\n{"title": "Elevator filings", "contract_value": "$250,000", "due_date": "2026-07-15"}\n```'
        extracted = parse_document_fields(reply)
        assert extracted.title == "Elevator filings"
        assert extracted.contract_value == Decimal("250000")
        assert extracted.due_date == date(2026, 7, 15)
        assert extracted.notes is None

    @pytest.mark.parametrize("reply", ["not json at all", "[1, 2, 3]"])
    def test_unusable_reply_asks_for_manual_entry(self, reply):
        assert parse_document_fields(reply).notes == PARSE_FAILURE_NOTE


class TestExtractFromDocument:

    def test_creates_prospect_with_full_extraction(self, company, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "data_dir", tmp_path)
        monkeypatch.setattr(rfps, "extract_document_text", lambda content, filename: {
            "text": "REQUEST FOR PROPOSALS ...", "warnings": ["page 3 had no text"],
        })
        monkeypatch.setattr(rfp_extraction_agent, "extract_document_fields", lambda text: ExtractedRfp.model_validate({
            "title": "Sidewalk shed permits",
            "agency": "NYC DDC",
            "contract_value": "$400,000",
            "submission_method": "PASSPort",
        }))
        db = FakeSession()

        result = asyncio.run(rfps.extract_from_document(db, company.id, "ddc-rfp.pdf", b"%PDF-1.4"))

        rfp = result["rfp"]
        assert rfp.title == "Sidewalk shed permits"
        assert rfp.contract_value == Decimal("400000")
        assert rfp.status == "prospect"
        assert rfp.extracted["submission_method"] == "PASSPort"
        assert result["warnings"] == ["page 3 had no text"]
        assert list((tmp_path / "rfp_documents" / str(company.id)).iterdir())
        assert db.commits == 1

    def test_empty_document_is_refused(self, company, monkeypatch, tmp_path):
        monkeypatch.setattr(settings, "data_dir", tmp_path)
        monkeypatch.setattr(rfps, "extract_document_text", lambda content, filename: {"text": "", "warnings": []})

        with pytest.raises(InvalidOperation):
            asyncio.run(rfps.extract_from_document(FakeSession(), company.id, "scan.pdf", b"%PDF"))


class TestPromote:

    def _discovered(self, **overrides):
        values = dict(
            id=uuid.uuid4(),
            title="Elevator filing services",
            rfp_number="PIN-123",
            issuing_agency="NYCHA",
            due_date=datetime(2026, 6, 30, tzinfo=timezone.utc),
            estimated_value=Decimal("120000"),
            original_url="https://a.gov/1",
            status="new",
            rfp_id=None,
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_creates_pipeline_rfp_and_links_it(self, company):
        discovered = self._discovered()
        db = FakeSession(results=[FakeResult([discovered])])

        rfp = asyncio.run(rfps.promote_to_pipeline(db, company.id, discovered.id))

        assert isinstance(rfp, Rfp)
        assert rfp.agency == "NYCHA"
        assert rfp.due_date == date(2026, 6, 30)
        assert rfp.contract_value == Decimal("120000")
        assert rfp.status == "prospect"
        assert discovered.rfp_id == rfp.id
        assert discovered.status == "pursuing"
        assert db.commits == 1

    def test_already_promoted_returns_existing(self, company):
        existing = SimpleNamespace(id=uuid.uuid4(), title="Elevator filing services")
        discovered = self._discovered(rfp_id=existing.id, status="pursuing")
        db = FakeSession(results=[FakeResult([discovered]), FakeResult([existing])])

        assert asyncio.run(rfps.promote_to_pipeline(db, company.id, discovered.id)) is existing
        assert db.of_type(Rfp) == []
        assert db.commits == 0
