"""
Metadata pattern analysis for a cluster's categorical attributes.

Grouping is done here; only the natural-language descriptions come from the
semantic annotator.

  patterns:       per attribute key, a partition of the terms carrying that
                  key by value. Terms without the key are left out.
  relationships:  per key pair (function×format, function×values,
                  format×values), groups of terms sharing BOTH values.
                  A term must carry both keys (AND join).
  insights:       one business insight per described group,
                  confidence = insight confidence × group confidence.

Annotator failures leave descriptions empty with confidence 0; the grouping
itself is always returned.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import AnnotationUnavailable
from ..schemas.base import RELATIONSHIP_KEYS, AttributeKey, PatternDescription
from ..schemas.clusters import Cluster
from ..schemas.metadata import MetadataAnalysis, MetadataInsight, PatternGroup, RelationshipGroup
from ..schemas.terms import TermRecord

logger = logging.getLogger(__name__)

NO_PATTERN = "No pattern identified"
NO_RELATIONSHIP = "No relationship identified"
NO_INSIGHT = "No insight generated"

# Insight type per attribute key
_INSIGHT_TYPES = {
    AttributeKey.FUNCTION.value: "function",
    AttributeKey.FORMAT.value: "format",
    AttributeKey.VALUES.value: "value",
}


def partition_by_attribute(terms: Sequence[TermRecord], key: str) -> Dict[str, List[str]]:
    """value → term texts, in first-seen order. Terms lacking `key` are excluded."""
    groups: Dict[str, List[str]] = {}
    for record in terms:
        value = record.attributes.get(key)
        if value is None:
            continue
        groups.setdefault(value, []).append(record.term)
    return groups


def join_attributes(terms: Sequence[TermRecord], first: str, second: str) -> Dict[Tuple[str, str], List[str]]:
    """(first value, second value) → term texts, for terms carrying both keys."""
    groups: Dict[Tuple[str, str], List[str]] = {}
    for record in terms:
        a = record.attributes.get(first)
        b = record.attributes.get(second)
        if a is None or b is None:
            continue
        groups.setdefault((a, b), []).append(record.term)
    return groups


class MetadataPatternAnalyzer:
    """Partitions cluster terms by attribute and describes the groups."""

    def __init__(self, annotator=None, keys: Optional[Sequence[str]] = None, with_insights: bool = True):
        self.annotator = annotator
        self.keys = list(keys) if keys else [k.value for k in AttributeKey]
        self.with_insights = with_insights

    def group(self, cluster: Cluster) -> MetadataAnalysis:
        """Grouping only, no descriptions."""
        patterns: Dict[str, List[PatternGroup]] = {}
        for key in self.keys:
            partition = partition_by_attribute(cluster.terms, key)
            patterns[key] = [
                PatternGroup(attribute=key, value=value, terms=terms)
                for value, terms in partition.items()
            ]

        relationships = []
        for kind, (first, second) in RELATIONSHIP_KEYS.items():
            if first.value not in self.keys or second.value not in self.keys:
                continue
            for (a, b), terms in join_attributes(cluster.terms, first.value, second.value).items():
                relationships.append(RelationshipGroup(
                    kind=kind.value,
                    first_attribute=first.value, first_value=a,
                    second_attribute=second.value, second_value=b,
                    terms=terms,
                ))
        return MetadataAnalysis(patterns=patterns, relationships=relationships)

    async def _describe(self, coro, fallback: str) -> Tuple[PatternDescription, bool]:
        try:
            return await coro, True
        except AnnotationUnavailable as e:
            logger.warning(f"Metadata description unavailable: {e}")
            return PatternDescription(description=fallback, confidence=0.0), False

    async def analyze(self, cluster: Cluster) -> MetadataAnalysis:
        """Group the cluster's terms and describe every group via the annotator."""
        analysis = self.group(cluster)
        if self.annotator is None:
            return analysis

        pattern_groups = [g for groups in analysis.patterns.values() for g in groups]
        results = await asyncio.gather(
            *[self._describe(self.annotator.describe_pattern(g.terms), NO_PATTERN) for g in pattern_groups],
            *[self._describe(self.annotator.describe_relationship(r.terms), NO_RELATIONSHIP)
              for r in analysis.relationships],
        )
        all_ok = True
        for target, (desc, ok) in zip(pattern_groups + analysis.relationships, results):
            target.description = desc.description
            target.confidence = desc.confidence
            all_ok = all_ok and ok

        if self.with_insights:
            analysis.insights = await self._insights(pattern_groups, analysis.relationships)
        analysis.described = all_ok
        logger.debug(
            f"Cluster {cluster.id}: {len(pattern_groups)} pattern groups, "
            f"{len(analysis.relationships)} relationship groups, {len(analysis.insights)} insights"
        )
        return analysis

    async def _insights(
        self,
        patterns: Sequence[PatternGroup],
        relationships: Sequence[RelationshipGroup],
    ) -> List[MetadataInsight]:
        sources = [(_INSIGHT_TYPES.get(p.attribute, p.attribute), p) for p in patterns if p.confidence > 0]
        sources += [(r.kind, r) for r in relationships if r.confidence > 0]

        async def _one(kind: str, group) -> MetadataInsight:
            try:
                insight = await self.annotator.generate_insight(group.description, kind, group.terms)
            except AnnotationUnavailable as e:
                logger.debug(f"Insight unavailable for {kind}: {e}")
                return MetadataInsight(type=kind, description=NO_INSIGHT, confidence=0.0, supporting_terms=group.terms)
            return MetadataInsight(
                type=kind,
                description=insight.description or NO_INSIGHT,
                confidence=insight.confidence * group.confidence,
                supporting_terms=group.terms,
            )

        return list(await asyncio.gather(*[_one(kind, group) for kind, group in sources]))
