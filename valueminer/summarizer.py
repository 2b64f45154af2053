import json
import logging
import re
from typing import Optional

import google.generativeai as genai

from . import config

logger = logging.getLogger(__name__)

ALLOWED_CATEGORIES = [
    "Business",
    "Health",
    "Mindset",
    "Politics",
    "Religion",
    "Productivity",
    "Other",
]
DEFAULT_CATEGORY = "Other"
SYSTEM_INSTRUCTION = "You output strict JSON only."
TEMPERATURE = 0.4

PROMPT_TEMPLATE = """You are a concise assistant.
Return JSON with keys: analysis (exactly 3 sentences), actionPlan (array of exactly 3 steps), and category.
Choose category from this exact list only: {categories}.
If unsure or mixed topic, set category to "Other".
Focus on turning the transcript into actionable guidance.
Transcript:
{transcript}"""

FENCE = chr(96) * 3


class SummarizerError(Exception):
    def __init__(self, message: str, status_code: int = 502, details: Optional[str] = None):
        super().__init__(details or message)
        self.message = message
        self.status_code = status_code
        self.details = details


def build_prompt(transcript: str) -> str:
    return PROMPT_TEMPLATE.format(
        categories=", ".join(ALLOWED_CATEGORIES),
        transcript=transcript,
    )


def normalize_category(value) -> str:
    """Map the model's category onto the allow-list, case-insensitively."""
    if isinstance(value, str):
        for category in ALLOWED_CATEGORIES:
            if category.lower() == value.strip().lower():
                return category
    return DEFAULT_CATEGORY


def strip_code_fences(raw_text: str) -> str:
    cleaned = raw_text.strip()
    if cleaned.startswith(FENCE):
        cleaned = cleaned[len(FENCE):]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        if FENCE in cleaned:
            cleaned = cleaned.split(FENCE, 1)[0]
    return cleaned.strip()


def parse_model_json(raw_text: str) -> dict:
    cleaned = strip_code_fences(raw_text or "")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        m = re.search(r"\{[\s\S]*\}", cleaned)
        if not m:
            raise SummarizerError("LLM returned invalid JSON.", details=raw_text)
        try:
            parsed = json.loads(m.group(0))
        except json.JSONDecodeError:
            raise SummarizerError("LLM returned invalid JSON.", details=raw_text)

    if not isinstance(parsed, dict):
        raise SummarizerError("LLM returned invalid JSON.", details=raw_text)
    return parsed


def shape_analysis(parsed: dict, strict: bool = False, raw_text: str = "") -> dict:
    """Reduce parsed model output to analysis, 3-step action plan and category.

    Lenient mode fills gaps with empty values; strict mode rejects output that is
    missing the analysis or the action plan list.
    """
    analysis = parsed.get("analysis")
    action_plan = parsed.get("actionPlan")

    if strict and (not analysis or not isinstance(action_plan, list)):
        raise SummarizerError("LLM returned an incomplete response.", details=raw_text)

    return {
        "analysis": analysis if isinstance(analysis, str) else "",
        "actionPlan": [str(step) for step in action_plan[:3]] if isinstance(action_plan, list) else [],
        "category": normalize_category(parsed.get("category")),
    }


def call_model(prompt: str) -> str:
    if not config.GEMINI_API_KEY:
        raise SummarizerError("Missing GEMINI_API_KEY server configuration.", status_code=500)

    genai.configure(api_key=config.GEMINI_API_KEY)
    model = genai.GenerativeModel(config.MODEL_NAME, system_instruction=SYSTEM_INSTRUCTION)
    try:
        resp = model.generate_content(
            prompt,
            generation_config={
                "temperature": TEMPERATURE,
                "response_mime_type": "application/json",
            },
        )
        return (resp.text or "").strip()
    except Exception as e:
        logger.error(f"Gemini request failed: {e}")
        raise SummarizerError("LLM request failed.", details=str(e))


def analyze_transcript(text: str, strict: bool = False) -> dict:
    raw_text = call_model(build_prompt(text))
    parsed = parse_model_json(raw_text)
    return shape_analysis(parsed, strict=strict, raw_text=raw_text)
