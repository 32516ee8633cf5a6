from __future__ import annotations

import json
import os
import re
import time
import hashlib
from typing import Any, Dict


def make_request_id(prefix: str = "req") -> str:
    seed = f"{prefix}-{time.time_ns()}-{os.getpid()}"
    return hashlib.sha256(seed.encode()).hexdigest()[:16]


_KEY_SEPARATORS = re.compile(r"[\s/]+")


def _slug(value: str) -> str:
    return _KEY_SEPARATORS.sub("-", value.strip().lower())


def derive_college_key(name: str, city: str) -> str:
    """Storage id used to deduplicate scraped colleges: ``<name>-<city>``.

    Firestore ids may not contain ``/``, be ``.`` or ``..``, or match
    ``__.*__``. Slashes become hyphens like whitespace does, and the joining
    hyphen rules out the dot ids.
    """
    key = f"{_slug(name)}-{_slug(city)}"
    if key.startswith("__") and key.endswith("__"):
        key = key.strip("_")
    return key


def render_template(template: str, values: Dict[str, Any]) -> str:
    """Fill ``{{{field}}}`` placeholders. Unknown placeholders render empty."""
    def _sub(match: re.Match) -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return re.sub(r"\{\{\{\s*(\w+)\s*\}\}\}", _sub, template)


def strip_code_fences(text: str) -> str:
    text = (text or "").strip()
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if match:
        return match.group(1).strip()
    return text


def extract_json_from_response(text: str) -> Dict[str, Any]:
    """Extract a JSON object from a model response.

    Handles markdown code fences and leading/trailing chatter around the
    object. Raises ``ValueError`` when no JSON object can be recovered.
    """
    if not text:
        raise ValueError("Empty model response")

    body = strip_code_fences(text)
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        # Trim anything outside the outermost braces and try once more
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise ValueError(f"No JSON object found in response: {body[:200]!r}")
        try:
            parsed = json.loads(body[start : end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed JSON in response: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def redact_long_text(text: str, max_len: int = 800) -> str:
    if len(text) <= max_len:
        return text
    head = text[: max_len // 2]
    tail = text[-max_len // 2 :]
    return head + "\n...\n" + tail
