"""
Search-term input models.

TermRecord is the unit the whole engine works on: one search term with its
market metrics, optional categorical attributes and (after embedding) its
vector. Records are read-only once created; embedding produces a copy.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
from pydantic import BaseModel, Field, field_validator

from .base import AttributeKey

logger = logging.getLogger(__name__)

# Export column → attribute key
_ATTRIBUTE_COLUMNS = {
    "Function_Inferred": AttributeKey.FUNCTION.value,
    "Format_Inferred": AttributeKey.FORMAT.value,
    "Values_Inferred": AttributeKey.VALUES.value,
}


def _as_float(v: Any) -> Optional[float]:
    """Parse a cell value into a finite float, or None if blank/unparseable."""
    if v is None:
        return None
    if isinstance(v, str):
        v = v.strip().replace(",", "")
        if not v:
            return None
        if v.endswith("%"):
            try:
                return float(v[:-1]) / 100.0
            except ValueError:
                return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    if math.isnan(f) or math.isinf(f):
        return None
    return f


class TermRecord(BaseModel):
    """One search term with its market metrics."""
    term: str
    volume: float = 0.0
    click_share: float = 0.0
    growth: float = 0.0           # fractional, 0.2 = +20%
    competition: float = 0.0      # unnormalized, roughly 0-100
    embedding: Optional[List[float]] = Field(default=None, repr=False)
    attributes: Dict[str, str] = Field(default_factory=dict)

    @field_validator('term', mode='before')
    @classmethod
    def validate_term(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("term must be a non-empty string")
        return str(v).strip()

    @field_validator('volume', mode='before')
    @classmethod
    def clamp_volume(cls, v):
        f = _as_float(v)
        return max(0.0, f) if f is not None else 0.0

    @field_validator('click_share', mode='before')
    @classmethod
    def clamp_click_share(cls, v):
        f = _as_float(v)
        return min(1.0, max(0.0, f)) if f is not None else 0.0

    @field_validator('growth', 'competition', mode='before')
    @classmethod
    def coerce_number(cls, v):
        f = _as_float(v)
        return f if f is not None else 0.0

    @field_validator('attributes', mode='before')
    @classmethod
    def drop_blank_attributes(cls, v):
        if not v:
            return {}
        return {str(k): str(val).strip() for k, val in dict(v).items() if val is not None and str(val).strip()}

    @property
    def vector(self) -> np.ndarray:
        """Embedding as a float64 array. Raises if the term was never embedded."""
        if self.embedding is None:
            raise ValueError(f"Term '{self.term}' has no embedding")
        return np.asarray(self.embedding, dtype=np.float64)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None and len(self.embedding) > 0

    def with_embedding(self, vector) -> "TermRecord":
        """Return a copy carrying the given embedding."""
        return self.model_copy(update={"embedding": [float(x) for x in vector]})

    def with_attributes(self, attributes: Mapping[str, str]) -> "TermRecord":
        """Return a copy with extra attributes; existing keys win."""
        merged = dict(attributes)
        merged.update(self.attributes)
        return self.model_copy(update={"attributes": merged})

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TermRecord":
        """Build a record from an already-parsed search-term export row.

        Column names are matched case-insensitively. Growth falls back from
        Growth_180 to Growth_90 to 0.
        """
        lookup = {str(k).strip().lower(): v for k, v in row.items()}

        def get(name: str):
            return lookup.get(name.lower())

        growth = _as_float(get("Growth_180"))
        if growth is None:
            growth = _as_float(get("Growth_90")) or 0.0

        attributes = {}
        for column, key in _ATTRIBUTE_COLUMNS.items():
            value = get(column)
            if value is not None and not (isinstance(value, float) and math.isnan(value)) and str(value).strip():
                attributes[key] = str(value).strip()

        return cls(
            term=get("Search_Term"),
            volume=get("Volume"),
            click_share=get("Click_Share"),
            growth=growth,
            competition=get("Competition"),
            attributes=attributes,
        )

    class Config:
        frozen = True


class HistoricalSnapshot(BaseModel):
    """Term metrics as they were at one point in time."""
    timestamp: datetime
    terms: List[TermRecord] = Field(default_factory=list)


class FailedTerm(BaseModel):
    """A term that could not be embedded and was left out of clustering."""
    term: str
    error: str = ""
    attempts: int = 0
