"""Model-reply parsing and the fallbacks used when the model is unavailable."""

import pytest

from civic import ai


def fake_chat(reply):
    async def _chat(messages, json_mode=False, max_retries=3):
        return reply
    return _chat


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(ai, "is_configured", lambda: True)


# ═══════════════════════════════════════════════════════════════════════════════
# PARSING
# ═══════════════════════════════════════════════════════════════════════════════

class TestExtractJson:
    def test_plain_object(self):
        assert ai.extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert ai.extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_embedded_in_prose(self):
        assert ai.extract_json('Sure! Here it is: {"a": {"b": 2}} hope that helps') == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", [None, "", "no json here", "[1, 2]", "{broken"])
    def test_unusable(self, text):
        assert ai.extract_json(text) is None


class TestParseAssessment:
    def test_snake_case(self):
        out = ai.parse_assessment(
            '{"severity": "high", "reason": "Deep hole on arterial road", '
            '"suggested_department": "Roads", "suggested_skill": "Asphalt", "estimated_time": "4 hours"}',
            "Pothole")
        assert out == {"severity": "High", "reason": "Deep hole on arterial road",
                       "suggested_department": "Roads", "suggested_skill": "Asphalt",
                       "estimated_time": "4 hours"}

    def test_camel_case_and_defaults(self):
        out = ai.parse_assessment('{"severity": "Critical", "reason": "Live wire", '
                                  '"suggestedDepartment": "Electrical"}', "Street Light")
        assert out["suggested_department"] == "Electrical"
        assert out["suggested_skill"] == "General"
        assert out["estimated_time"] == "24 hours"

    def test_unknown_severity_becomes_medium(self):
        out = ai.parse_assessment('{"severity": "Severe", "reason": "r", "suggested_department": "d"}', "X")
        assert out["severity"] == "Medium"

    def test_missing_fields_fall_back(self):
        assert ai.parse_assessment('{"severity": "High"}', "Pothole") == ai.default_assessment("Pothole")

    def test_garbage_falls_back(self):
        out = ai.parse_assessment("I cannot help with that", "Pothole")
        assert out["suggested_department"] == "Pothole"
        assert out["reason"] == "AI assessment parsing failed - manual review recommended"


class TestKeywordIntent:
    @pytest.mark.parametrize("text,intent", [
        ("Yes please", "CONFIRM"), ("ok submit it", "CONFIRM"), ("CANCEL", "CANCEL"),
        ("no, stop", "CANCEL"),
        ("it has been there for a week", "UPDATE"), ("nothing more", "UPDATE"),
    ])
    def test_word_matching(self, text, intent):
        assert ai.keyword_intent(text)["intent"] == intent


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL CALLS
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_assess_ticket_uses_model_reply(monkeypatch):
    monkeypatch.setattr(ai, "openai_chat", fake_chat(
        '{"severity": "Low", "reason": "Cosmetic", "suggested_department": "Parks"}'))
    out = await ai.assess_ticket("Tree", "Parks & Gardens", "Leaning branch", "Park Road")
    assert out["severity"] == "Low"
    assert out["suggested_department"] == "Parks"


@pytest.mark.asyncio
async def test_verify_offline_when_unconfigured(monkeypatch):
    monkeypatch.setattr(ai, "is_configured", lambda: False)
    out = await ai.verify_complaint("MG Road", "Pothole", "Roads")
    assert out == ai.OFFLINE_VERDICT
    assert out["is_valid"] is True


@pytest.mark.asyncio
async def test_verify_model_error_is_offline(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat(None))
    out = await ai.verify_complaint("MG Road", "Pothole", "Roads")
    assert out["feedback"] == "AI Offline. Proceeding with manual review."


@pytest.mark.asyncio
async def test_verify_unparseable_is_invalid(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat("definitely valid"))
    out = await ai.verify_complaint("MG Road", "Pothole", "Roads")
    assert out == {"is_valid": False, "feedback": "AI Verification failed to parse.",
                   "severity": None, "summary": None}


@pytest.mark.asyncio
async def test_verify_valid_without_summary(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat('{"is_valid": true, "feedback": "Looks good", '
                                                     '"severity": "high"}'))
    description = "Water has been leaking from the main pipe near the temple gate for two days"
    out = await ai.verify_complaint("Temple Street, Ward 3", description, "Water Leak")
    assert out["is_valid"] is True
    assert out["severity"] == "High"
    assert out["summary"] == description[:50] + "..."


@pytest.mark.asyncio
async def test_verify_rejection(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat('{"is_valid": false, "feedback": "Location too vague"}'))
    out = await ai.verify_complaint("here", "bad road", "Roads")
    assert out["is_valid"] is False
    assert out["feedback"] == "Location too vague"
    assert out["summary"] is None


@pytest.mark.asyncio
async def test_confirmation_falls_back_to_keywords(monkeypatch):
    monkeypatch.setattr(ai, "is_configured", lambda: False)
    out = await ai.analyze_confirmation("yes", {})
    assert out["intent"] == "CONFIRM"


@pytest.mark.asyncio
async def test_confirmation_update(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat(
        '{"intent": "update", "updatedSeverity": "High", "updatedSummary": "Pipe burst flooding road", '
        '"feedback": "Severity raised"}'))
    out = await ai.analyze_confirmation("it is flooding the road now", {"category": "Water Leak"})
    assert out == {"intent": "UPDATE", "feedback": "Severity raised", "updated_severity": "High",
                   "updated_summary": "Pipe burst flooding road"}


@pytest.mark.asyncio
async def test_confirmation_bad_intent_confirms(monkeypatch, configured):
    monkeypatch.setattr(ai, "openai_chat", fake_chat('{"intent": "MAYBE"}'))
    out = await ai.analyze_confirmation("hmm", {})
    assert out == {"intent": "CONFIRM", "feedback": "Proceeding with submission."}
