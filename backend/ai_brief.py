# ai_brief.py — Turns a free-text client requirement into a structured task brief
# Calls an OpenAI-compatible chat-completions endpoint (Groq by default).
# Anything unusable coming back is an UpstreamFailure; callers never see raw
# provider errors.
import os
import re
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from errors import UpstreamFailure

logger = logging.getLogger("boardflow.ai")

GROQ_API_URL = os.getenv("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

REQUIRED_FIELDS = ("summary", "explanation", "role")

SYSTEM_PROMPT = " ".join([
    "You turn client requirements into a clear brief for a non-technical manager.",
    "Reply with valid JSON ONLY (no markdown, no extra text).",
    "Explain what has to be done and how to solve it in simple terms.",
    "Where possible, say exactly where to configure things and what to change.",
    "If something is uncertain, say so and ask for the missing detail.",
    "Always suggest a responsible role and the reason for it.",
    "Keep sentences short and concrete.",
])

_CONTROL_CHARS = re.compile(r"[\x00-\x1f]+")
_RUNS_OF_SPACE = re.compile(r"\s{2,}")


def build_user_prompt(input_text: str, context: Optional[str] = None) -> str:
    lines = [
        "Analyse the following requirement and return JSON with exactly this shape:",
        "{",
        '  "title": "suggested title (optional)",',
        '  "summary": "short summary in 1-2 sentences",',
        '  "explanation": "plain explanation for a non-technical reader",',
        '  "implementation_notes": "how to implement it with concrete steps (panel, setting, file, etc.)",',
        '  "task_type": "dev | content | seo | design | ops | other",',
        '  "role": "suggested role (e.g. manager, dev, content, seo, design)",',
        '  "role_reason": "why that role fits",',
        '  "steps": ["step 1 with place + action", "step 2 with place + action"],',
        '  "acceptance_criteria": ["criterion 1", "criterion 2"],',
        '  "questions": ["question 1", "question 2"]',
        "}",
    ]
    if context and context.strip():
        lines.append(f"Project context: {context.strip()}")
    lines.append("Requirement:")
    lines.append(input_text.strip())
    return "\n".join(lines)


def extract_json(raw: str) -> str:
    """Slice from the first '{' to the last '}'"""
    trimmed = raw.strip()
    start, end = trimmed.find("{"), trimmed.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise UpstreamFailure("AI response did not contain a JSON object")
    return trimmed[start:end + 1]


def sanitize_json(value: str) -> str:
    return _RUNS_OF_SPACE.sub(" ", _CONTROL_CHARS.sub(" ", value)).strip()


def normalize_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]


def _text(payload: Dict[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    return value.strip() if isinstance(value, str) else default


def parse_brief(raw: str) -> Dict[str, Any]:
    try:
        payload = json.loads(sanitize_json(extract_json(raw)))
    except json.JSONDecodeError as e:
        raise UpstreamFailure(f"AI response was not valid JSON: {e.msg}")
    if not isinstance(payload, dict):
        raise UpstreamFailure("AI response was not a JSON object")

    brief = {
        "title": _text(payload, "title") or None,
        "summary": _text(payload, "summary"),
        "explanation": _text(payload, "explanation"),
        "implementation_notes": _text(payload, "implementation_notes"),
        "task_type": _text(payload, "task_type", "other") or "other",
        "role": _text(payload, "role"),
        "role_reason": _text(payload, "role_reason"),
        "steps": normalize_list(payload.get("steps")),
        "acceptance_criteria": normalize_list(payload.get("acceptance_criteria")),
        "questions": normalize_list(payload.get("questions")),
    }
    missing = [name for name in REQUIRED_FIELDS if not brief[name]]
    if missing:
        raise UpstreamFailure(f"AI response missing required fields: {', '.join(missing)}")
    return brief


class BriefGenerator:
    """Chat-completions client; pass a transport to swap the network out"""

    def __init__(
        self,
        api_url: str = GROQ_API_URL,
        model: str = GROQ_MODEL,
        timeout: float = AI_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def generate(self, api_key: str, input_text: str, context: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(input_text, context)},
            ],
            "temperature": 0.2,
            "max_tokens": 700,
        }
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.api_url, headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"AI provider unreachable ({self.model}): {e}")
            raise UpstreamFailure("AI provider failed to respond")

        if resp.status_code >= 400:
            logger.warning(f"AI provider error {resp.status_code}: {resp.text[:200]}")
            raise UpstreamFailure("AI provider failed to respond")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("AI provider returned an unexpected payload")
            raise UpstreamFailure("Invalid AI response")
        if not isinstance(content, str) or not content.strip():
            raise UpstreamFailure("Invalid AI response")

        try:
            return parse_brief(content)
        except UpstreamFailure as e:
            logger.warning(f"AI brief rejected: {e.message}")
            raise


def get_brief_generator() -> BriefGenerator:
    return BriefGenerator()
