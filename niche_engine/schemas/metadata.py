"""
Metadata pattern models.

A PatternGroup is one block of a per-attribute partition (all terms whose
`format` is "gummies"). A RelationshipGroup is one block of the AND join of
two partitions (function="sleep aid" AND format="gummies").
"""

from typing import Dict, List

from pydantic import BaseModel, Field


class PatternGroup(BaseModel):
    attribute: str
    value: str
    terms: List[str] = Field(default_factory=list)
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)


class RelationshipGroup(BaseModel):
    kind: str                     # functionFormat | functionValue | formatValue
    first_attribute: str
    first_value: str
    second_attribute: str
    second_value: str
    terms: List[str] = Field(default_factory=list)
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)


class MetadataInsight(BaseModel):
    """Business insight derived from a pattern or relationship.
    confidence = insight confidence × source pattern confidence."""
    type: str
    description: str = ""
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    supporting_terms: List[str] = Field(default_factory=list)


class MetadataAnalysis(BaseModel):
    """Per-attribute partitions plus pairwise relationships for one cluster."""
    patterns: Dict[str, List[PatternGroup]] = Field(default_factory=dict)
    relationships: List[RelationshipGroup] = Field(default_factory=list)
    insights: List[MetadataInsight] = Field(default_factory=list)
    described: bool = False       # False when the annotator was unavailable
