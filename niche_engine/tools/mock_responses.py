"""
Mock LLM responses for offline runs and tests.

Provides deterministic responses derived from the prompt text. Designed to
work with pydantic-ai's FunctionModel: structured requests are answered with
a call to the agent's output tool, plain-text requests with a TextPart.
"""

import hashlib
import logging
import re
from typing import Any, Dict, List

from pydantic_ai.messages import ModelResponse, TextPart, ToolCallPart

logger = logging.getLogger(__name__)

_SAMPLE_RE = re.compile(r"Search Terms \(sample\):\s*(.+)")
_TERMS_RE = re.compile(r"(?:pattern|relationship|terms)[^:]*:\s*(.+?)(?:\.\s|\n|$)", re.IGNORECASE)

_MOCK_TAGS = [
    {"category": "Function", "value": "Everyday use", "confidence": 0.6},
    {"category": "Audience", "value": "General shoppers", "confidence": 0.5},
    {"category": "Behavior", "value": "Comparison shopping", "confidence": 0.4},
]


def _extract_terms(prompt: str) -> List[str]:
    match = _SAMPLE_RE.search(prompt) or _TERMS_RE.search(prompt)
    if not match:
        return []
    return [t.strip() for t in match.group(1).split(",") if t.strip()]


def get_mock_payload(prompt: str, fields: List[str]) -> Dict[str, Any]:
    """Deterministic structured payload for the requested output fields."""
    terms = _extract_terms(prompt)
    prompt_hash = int(hashlib.md5(prompt.encode()).hexdigest()[:8], 16)
    lead = terms[0] if terms else "related search terms"

    if "title" in fields:
        return {
            "title": f"{lead.title()} Shoppers",
            "description": f"Shoppers searching for {lead} and {max(0, len(terms) - 1)} related terms.",
            "tags": _MOCK_TAGS,
        }
    confidence = 0.5 + (prompt_hash % 5) / 10.0
    return {
        "description": f"Terms centered on {lead}",
        "confidence": round(confidence, 2),
    }


def get_mock_response_for_function_model(messages: list[Any], info: Any) -> ModelResponse:
    """Adapter for pydantic-ai FunctionModel.

    Extracts the user prompt from the message history and answers through
    the output tool when the agent expects structured output.
    """
    prompt = ""
    for msg in messages:
        for part in getattr(msg, 'parts', []):
            if "User" in type(part).__name__ and isinstance(getattr(part, 'content', None), str):
                prompt = part.content

    output_tools = getattr(info, 'output_tools', None) or []
    if not output_tools:
        return ModelResponse(parts=[TextPart(content=f"Mock response: {prompt[:80]}")])

    tool = output_tools[0]
    schema = getattr(tool, 'parameters_json_schema', {}) or {}
    fields = list(schema.get("properties", {}).keys())
    return ModelResponse(parts=[ToolCallPart(tool_name=tool.name, args=get_mock_payload(prompt, fields))])
