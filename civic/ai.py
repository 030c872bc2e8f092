"""LLM pass-through.

Ticket assessment for staff, plus the two citizen-facing checks used while
a complaint is being filed: pre-validation and confirmation intent. The
model is reached through the OpenAI client; ``OPENAI_BASE_URL`` points it at
any OpenAI-compatible endpoint. Every call degrades to a fixed fallback so a
flaky model never blocks a citizen from filing.
"""

import asyncio
import json
import logging
import re
from typing import Optional

import openai as openai_mod
from openai import AsyncOpenAI

from .config import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL
from .models import Intent, Severity

logger = logging.getLogger(__name__)

_client: Optional[AsyncOpenAI] = None

def is_configured() -> bool:
    return bool(OPENAI_API_KEY)

def get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
    return _client

async def openai_chat(messages: list, json_mode: bool = False, max_retries: int = 3) -> Optional[str]:
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    for attempt in range(max_retries):
        try:
            resp = await get_client().chat.completions.create(
                model=OPENAI_MODEL, messages=messages, **kwargs)
            return (resp.choices[0].message.content or "").strip()
        except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
            logger.warning("OpenAI retry %d: %s", attempt + 1, e)
            if attempt == max_retries - 1:
                raise
            await asyncio.sleep(2 ** attempt)
        except Exception as e:
            logger.error("OpenAI error: %s", e)
            return None
    return None

# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

def extract_json(text: Optional[str]) -> Optional[dict]:
    """Pull the first JSON object out of a model reply, tolerating ```json fences."""
    if not text:
        return None
    cleaned = text.replace("```json", "").replace("```", "").strip()
    candidates = [cleaned]
    match = _JSON_OBJECT.search(cleaned)
    if match:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None

def normalize_severity(value, default: Optional[Severity] = Severity.MEDIUM) -> Optional[Severity]:
    if isinstance(value, str):
        for sev in Severity:
            if sev.value.lower() == value.strip().lower():
                return sev
    return default

def _pick(data: dict, *keys):
    for key in keys:
        if data.get(key):
            return data[key]
    return None

# ---------------------------------------------------------------------------
# Ticket assessment (staff)
# ---------------------------------------------------------------------------
def default_assessment(category: str) -> dict:
    return {
        "severity": Severity.MEDIUM.value,
        "reason": "AI assessment parsing failed - manual review recommended",
        "suggested_department": category,
        "suggested_skill": "General",
        "estimated_time": "24 hours",
    }

def parse_assessment(text: Optional[str], category: str) -> dict:
    data = extract_json(text)
    if not data:
        logger.error("Failed to parse AI assessment: %r", (text or "")[:200])
        return default_assessment(category)
    severity = _pick(data, "severity")
    reason = _pick(data, "reason")
    department = _pick(data, "suggested_department", "suggestedDepartment")
    if not (severity and reason and department):
        logger.error("AI assessment missing required fields: %s", sorted(data))
        return default_assessment(category)
    return {
        "severity": normalize_severity(severity).value,
        "reason": str(reason)[:500],
        "suggested_department": str(department)[:100],
        "suggested_skill": str(_pick(data, "suggested_skill", "suggestedSkill") or "General")[:100],
        "estimated_time": str(_pick(data, "estimated_time", "estimatedTime") or "24 hours")[:100],
    }

async def assess_ticket(type_: str, category: str, description: str, address: str) -> dict:
    prompt = (
        "You are an AI assistant for a government civic issue management system.\n"
        "Analyze the following civic issue ticket and provide an assessment.\n\n"
        f"Issue Details:\n- Type: {type_}\n- Category: {category}\n"
        f"- Description: {description}\n- Location: {address}\n\n"
        "Provide your assessment as a JSON object with these exact keys:\n"
        '{"severity": "Critical" | "High" | "Medium" | "Low", '
        '"reason": "Brief explanation of severity assessment (max 200 chars)", '
        '"suggested_department": "Best fit city department name", '
        '"suggested_skill": "Required skill/expertise for the team", '
        '"estimated_time": "Estimated resolution time (e.g. \'2 hours\', \'1 day\')"}'
    )
    try:
        text = await openai_chat([{"role": "user", "content": prompt}], json_mode=True)
    except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
        logger.error("Ticket assessment unavailable: %s", e)
        text = None
    return parse_assessment(text, category)

# ---------------------------------------------------------------------------
# Citizen complaint checks
# ---------------------------------------------------------------------------
OFFLINE_VERDICT = {"is_valid": True, "feedback": "AI Offline. Proceeding with manual review.",
                   "severity": Severity.MEDIUM.value, "summary": None}

async def verify_complaint(location: str, description: str, category: str) -> dict:
    prompt = (
        "You are a civic grievance verification AI.\n"
        f"Category: {category}\nLocation provided: \"{location}\"\n"
        f"Description provided: \"{description}\"\n\n"
        "Task: Strictly analyze if this is a valid, specific civic complaint.\n"
        "1. Location Check: Must be specific (street name, landmark, colony). Reject vague inputs "
        "like \"my house\", \"main road\", \"here\".\n"
        "2. Description Check: Must clearly state a civic issue. Reject gibberish, greetings or "
        "irrelevant text.\n"
        "3. Abusive Language: Check for profanity.\n\n"
        "Output strictly as JSON:\n"
        '{"is_valid": boolean, "feedback": "string", "severity": "High" | "Medium" | "Low", '
        '"summary": "short 10-15 word summary of the complaint"}'
    )
    if not is_configured():
        return dict(OFFLINE_VERDICT)
    try:
        text = await openai_chat([{"role": "user", "content": prompt}], json_mode=True)
    except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
        logger.error("Complaint verification unavailable: %s", e)
        return dict(OFFLINE_VERDICT)
    if text is None:
        return dict(OFFLINE_VERDICT)

    data = extract_json(text)
    if data is None:
        return {"is_valid": False, "feedback": "AI Verification failed to parse.", "severity": None, "summary": None}

    is_valid = bool(_pick(data, "is_valid", "isValid"))
    severity = normalize_severity(data.get("severity"), None)
    summary = _pick(data, "summary")
    if is_valid and not summary:
        summary = description[:50] + "..."
    return {
        "is_valid": is_valid,
        "feedback": str(data.get("feedback") or ("pre-filing check passed" if is_valid else
                    "This does not seem like a valid complaint. Please describe a specific civic issue.")),
        "severity": severity.value if severity else None,
        "summary": str(summary)[:500] if summary else None,
    }

_CONFIRM_WORDS = re.compile(r"\b(yes|yeah|confirm|ok|okay|submit)\b", re.IGNORECASE)
_CANCEL_WORDS = re.compile(r"\b(no|cancel|stop)\b", re.IGNORECASE)

def keyword_intent(user_response: str) -> dict:
    if _CONFIRM_WORDS.search(user_response):
        return {"intent": Intent.CONFIRM.value, "feedback": "Proceeding with submission."}
    if _CANCEL_WORDS.search(user_response):
        return {"intent": Intent.CANCEL.value, "feedback": "Complaint cancelled."}
    return {"intent": Intent.UPDATE.value, "feedback": "Additional context noted."}

async def analyze_confirmation(user_response: str, complaint: dict) -> dict:
    prompt = (
        "You are analyzing a user's response during a complaint confirmation flow.\n\n"
        "Current Complaint Details:\n"
        f"- Category: {complaint.get('category')}\n- Location: {complaint.get('location')}\n"
        f"- Description: {complaint.get('description')}\n"
        f"- Current Severity: {complaint.get('severity')}\n"
        f"- Current Summary: {complaint.get('summary') or 'Not provided'}\n\n"
        f"User's Response: \"{user_response}\"\n\n"
        "Determine the user's intent:\n"
        "1. CONFIRM - the user wants to submit\n"
        "2. CANCEL - the user wants to cancel\n"
        "3. UPDATE - the user adds context or corrects the severity; re-assess the severity and "
        "write an updated summary\n\n"
        "Output strictly as JSON:\n"
        '{"intent": "CONFIRM" | "CANCEL" | "UPDATE", "updated_severity": "High" | "Medium" | "Low", '
        '"updated_summary": "string", "feedback": "brief acknowledgment"}'
    )
    if not is_configured():
        return keyword_intent(user_response)
    try:
        text = await openai_chat([{"role": "user", "content": prompt}], json_mode=True)
    except (openai_mod.RateLimitError, openai_mod.APIConnectionError) as e:
        logger.error("Confirmation analysis unavailable: %s", e)
        return keyword_intent(user_response)
    if text is None:
        return keyword_intent(user_response)

    data = extract_json(text)
    intent = str((data or {}).get("intent", "")).upper()
    if intent not in Intent.__members__:
        return {"intent": Intent.CONFIRM.value, "feedback": "Proceeding with submission."}

    result = {"intent": intent, "feedback": str(data.get("feedback") or "Understood.")}
    if intent == Intent.UPDATE.value:
        severity = normalize_severity(_pick(data, "updated_severity", "updatedSeverity"), None)
        summary = _pick(data, "updated_summary", "updatedSummary")
        if severity:
            result["updated_severity"] = severity.value
        if summary:
            result["updated_summary"] = str(summary)[:500]
    return result
