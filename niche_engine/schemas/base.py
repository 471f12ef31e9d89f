"""
Common enums and value objects shared by the clustering engine.

They define the vocabulary of the system: which categorical attributes a
search term can carry, which tag categories the annotator may emit, and the
small immutable value objects (Tag, KeyMetric) that ride along on clusters.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS - Classification Types
# ══════════════════════════════════════════════════════════════════════════════

class AttributeKey(str, Enum):
    """Categorical attribute keys inferred for a search term."""
    FUNCTION = "function"
    FORMAT = "format"
    VALUES = "values"


class TagCategory(str, Enum):
    """Tag categories the annotator is asked to use."""
    FORMAT = "Format"
    FUNCTION = "Function"
    VALUES = "Values"
    AUDIENCE = "Audience"
    BEHAVIOR = "Behavior"
    UNKNOWN = "Unknown"


class RelationshipKind(str, Enum):
    """Attribute-key pairs joined by the metadata analyzer."""
    FUNCTION_FORMAT = "functionFormat"
    FUNCTION_VALUE = "functionValue"
    FORMAT_VALUE = "formatValue"


class AnnotationStatus(str, Enum):
    """How a cluster's descriptive fields were produced."""
    ANNOTATED = "annotated"       # annotator returned a result
    PLACEHOLDER = "placeholder"   # annotator failed, placeholders used
    EMPTY = "empty"               # cluster had no terms
    SKIPPED = "skipped"           # annotation disabled for this run


# Relationship kind → (first key, second key)
RELATIONSHIP_KEYS = {
    RelationshipKind.FUNCTION_FORMAT: (AttributeKey.FUNCTION, AttributeKey.FORMAT),
    RelationshipKind.FUNCTION_VALUE: (AttributeKey.FUNCTION, AttributeKey.VALUES),
    RelationshipKind.FORMAT_VALUE: (AttributeKey.FORMAT, AttributeKey.VALUES),
}


# ══════════════════════════════════════════════════════════════════════════════
# VALUE OBJECTS - Immutable, Reusable
# ══════════════════════════════════════════════════════════════════════════════

class Tag(BaseModel):
    """Descriptive tag attached to a cluster. Never used as a clustering key."""
    category: str
    value: str
    confidence: Optional[float] = None

    @field_validator('confidence', mode='before')
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return None
        try:
            return min(1.0, max(0.0, float(v)))
        except (TypeError, ValueError):
            return None

    def label(self) -> str:
        return f"{self.category}: {self.value}"

    class Config:
        frozen = True


class KeyMetric(BaseModel):
    """A named cluster metric with a short explanation, used as evidence."""
    name: str
    value: float
    significance: str = ""

    class Config:
        frozen = True


class PatternDescription(BaseModel):
    """Natural-language description of a term grouping, with confidence."""
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
