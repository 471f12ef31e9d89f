"""
Inner Pydantic models for LLM structured output.

These models define ONLY what the LLM produces; cluster ids, metrics and
term lists are set programmatically. Used with LLMService.run_structured()
to get typed, validated output with automatic retry on validation failure.

Convention: Suffix with "LLM" to distinguish from the full output schemas.
"""

from typing import Annotated, List
from pydantic import BaseModel, Field, field_validator
from pydantic.functional_validators import BeforeValidator


def _coerce_to_str(v):
    if isinstance(v, dict):
        for key in ("value", "text", "name", "description"):
            if key in v and v[key]:
                return str(v[key])
        vals = [str(x) for x in v.values() if x and isinstance(x, (str, int, float))]
        return ", ".join(vals) if vals else str(v)
    return str(v) if v is not None else ""


def _coerce_confidence(v, default: float):
    if v is None or v == "":
        return default
    try:
        return min(1.0, max(0.0, float(v)))
    except (TypeError, ValueError):
        return default


StrFromDict = Annotated[str, BeforeValidator(_coerce_to_str)]


class TagLLM(BaseModel):
    """One tag as emitted by the annotator."""
    category: StrFromDict = Field(default="Unknown", description="Format, Function, Values, Audience or Behavior")
    value: StrFromDict = ""
    confidence: float = Field(default=0.5, description="0-1")

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v):
        return v if v else "Unknown"

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        return _coerce_confidence(v, 0.5)


class ClusterAnnotationLLM(BaseModel):
    """LLM output for cluster title/description/tags."""
    title: StrFromDict = Field(default="", description="Max 10 words, core user intent or theme")
    description: StrFromDict = Field(default="", description="1-2 sentences on theme and user behavior")
    tags: List[TagLLM] = Field(default_factory=list, description="5-7 tags")

    @field_validator('tags', mode='before')
    @classmethod
    def coerce_tags(cls, v):
        if v is None:
            return []
        if isinstance(v, dict):
            return [v]
        return [t for t in v if t]


class PatternDescriptionLLM(BaseModel):
    """LLM output for a pattern or relationship description."""
    description: StrFromDict = ""
    confidence: float = Field(default=0.0, description="0-1")

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        return _coerce_confidence(v, 0.0)


class InsightLLM(BaseModel):
    """LLM output for a business insight drawn from a pattern."""
    description: StrFromDict = ""
    confidence: float = Field(default=0.0, description="0-1")

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        return _coerce_confidence(v, 0.0)
