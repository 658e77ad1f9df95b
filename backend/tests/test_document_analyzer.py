"""Tests for the AI document analyzer: verdict shape, clamping, degradation."""

import json
from datetime import datetime

import pytest

from app.services.document_analyzer import (
    DocumentAnalyzer,
    DocumentRef,
    GeminiTransport,
    normalize_verdict,
    parse_model_json,
)
from conftest import FakeTransport

NOW = datetime(2026, 3, 1, 12, 0, 0)

COMPLETE_SET = [
    DocumentRef(type="drivers_license", url="https://signed.test/license", file_name="license.jpg"),
    DocumentRef(type="business_license", url="https://signed.test/business", file_name="business.pdf"),
]


def analyze(settings, transport, documents=COMPLETE_SET, kind="seller"):
    return DocumentAnalyzer(settings, transport=transport).analyze(
        kind, documents, "Casey Rivera", "casey@example.com", now=NOW
    )


class TestMissingDocuments:
    def test_identity_only_fails_without_model_call(self, settings):
        transport = FakeTransport()
        verdict = analyze(settings, transport, documents=COMPLETE_SET[:1])

        assert verdict["status"] == "failed"
        assert verdict["confidence"] == 100
        assert verdict["flags"] == ["Missing required documents"]
        assert transport.calls == []

    def test_credential_only_fails_without_model_call(self, settings):
        transport = FakeTransport()
        verdict = analyze(settings, transport, documents=COMPLETE_SET[1:])

        assert verdict["status"] == "failed"
        assert transport.calls == []

    def test_contractor_accepts_insurance_certificate_as_credential(self, settings):
        transport = FakeTransport()
        documents = [
            DocumentRef(type="passport", url="https://signed.test/passport"),
            DocumentRef(type="insurance_certificate", url="https://signed.test/insurance"),
        ]
        verdict = analyze(settings, transport, documents=documents, kind="contractor")

        assert verdict["status"] == "passed"
        assert len(transport.calls) == 1

    def test_ein_document_is_not_a_contractor_credential(self, settings):
        transport = FakeTransport()
        documents = [
            DocumentRef(type="passport", url="https://signed.test/passport"),
            DocumentRef(type="ein_document", url="https://signed.test/ein"),
        ]
        verdict = analyze(settings, transport, documents=documents, kind="contractor")

        assert verdict["status"] == "failed"
        assert transport.calls == []


class TestModelResponse:
    def test_passing_response_normalized(self, settings):
        transport = FakeTransport()
        verdict = analyze(settings, transport)

        assert verdict["status"] == "passed"
        assert verdict["confidence"] == 92
        assert verdict["nameMatchScore"] == 95
        assert verdict["processedAt"] == NOW.isoformat()
        call = transport.calls[0]
        assert call["timeout"] == settings.AI_TIMEOUT_SECONDS
        assert "Casey Rivera" in call["prompt"]
        assert "1. drivers_license" in call["prompt"]
        assert [d.type for d in call["documents"]] == ["drivers_license", "business_license"]

    def test_out_of_range_scores_are_clamped(self, settings):
        transport = FakeTransport(response=json.dumps({
            "status": "passed", "confidence": 150, "nameMatchScore": -20, "tamperingScore": 101,
        }))
        verdict = analyze(settings, transport)

        assert verdict["confidence"] == 100
        assert verdict["nameMatchScore"] == 0
        assert verdict["tamperingScore"] == 100

    def test_missing_fields_take_defaults(self, settings):
        verdict = analyze(settings, FakeTransport(response="{}"))

        assert verdict["status"] == "flagged"
        assert verdict["confidence"] == 50
        assert verdict["nameMatchScore"] == 0
        assert verdict["tamperingScore"] == 50
        assert verdict["flags"] == []
        assert verdict["recommendation"] == "needs_review"

    def test_fenced_json_is_accepted(self, settings):
        fenced = "```json\n" + json.dumps({"status": "failed", "confidence": 80}) + "\n```"
        verdict = analyze(settings, FakeTransport(response=fenced))

        assert verdict["status"] == "failed"
        assert verdict["confidence"] == 80

    def test_expired_document_adds_flag(self):
        verdict = normalize_verdict({"status": "flagged", "documentExpired": True}, NOW)
        assert "Document appears to be expired" in verdict["flags"]

    def test_unknown_status_becomes_flagged(self):
        verdict = normalize_verdict({"status": "looks good"}, NOW)
        assert verdict["status"] == "flagged"


class TestDegradation:
    @pytest.mark.parametrize(
        "transport",
        [
            FakeTransport(error=TimeoutError("AI analysis deadline exceeded")),
            FakeTransport(error=RuntimeError("upstream 503")),
            FakeTransport(response="not json at all"),
            FakeTransport(response=""),
            FakeTransport(response="[1, 2, 3]"),
        ],
        ids=["timeout", "upstream-error", "malformed", "empty", "not-an-object"],
    )
    def test_failures_degrade_to_flagged(self, settings, transport):
        verdict = analyze(settings, transport)

        assert verdict["status"] == "flagged"
        assert verdict["confidence"] == 0
        assert verdict["flags"] == ["AI analysis failed"]
        assert len(transport.calls) == 1

    def test_unconfigured_gemini_degrades(self, settings):
        transport = GeminiTransport(settings)
        assert transport.available is False

        verdict = analyze(settings, transport)
        assert verdict["status"] == "flagged"
        assert "GEMINI_API_KEY" in verdict["notes"]


class TestParseModelJson:
    def test_plain_fence(self):
        assert parse_model_json('```\n{"status": "passed"}\n```') == {"status": "passed"}

    def test_invalid_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_model_json("{status: passed")
