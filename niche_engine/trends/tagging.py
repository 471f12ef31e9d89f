"""
Keyword tagging from a tag ontology.

An ontology row is (Category, Tag, Trigger) where Trigger lists phrases
separated by '|' or ','. A keyword gets a tag when any trigger phrase is a
substring of the lower-cased keyword.

Also fills missing function/format/values attributes on term records from
the first matching Function / Format / Values tag, so the metadata analyzer
has something to group even when the export carried no inferred columns.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel

from ..schemas.base import AttributeKey
from ..schemas.terms import TermRecord

logger = logging.getLogger(__name__)

_DEFAULT_ONTOLOGY_PATH = Path(__file__).resolve().parent.parent / "data" / "tag_ontology.json"
_TRIGGER_SPLIT = re.compile(r"[|,]")

# Ontology category → term attribute key
_CATEGORY_ATTRIBUTES = {
    "Function": AttributeKey.FUNCTION.value,
    "Format": AttributeKey.FORMAT.value,
    "Values": AttributeKey.VALUES.value,
}


class OntologyTag(BaseModel):
    category: str
    tag: str
    trigger: str = ""

    @property
    def triggers(self) -> List[str]:
        return [t.strip().lower() for t in _TRIGGER_SPLIT.split(self.trigger or "") if t.strip()]

    class Config:
        frozen = True


def parse_tag_ontology(rows: Iterable[Mapping[str, Any]]) -> List[OntologyTag]:
    """Rows with Category/Tag/Trigger keys → OntologyTag list. Incomplete rows are skipped."""
    if rows is None:
        logger.error("Invalid tag ontology data provided; expected a list of rows")
        return []
    tags = []
    for row in rows:
        category = row.get("Category") or row.get("category")
        tag = row.get("Tag") or row.get("tag")
        if not category or not tag:
            continue
        tags.append(OntologyTag(category=str(category), tag=str(tag), trigger=str(row.get("Trigger") or row.get("trigger") or "")))
    logger.debug(f"Parsed {len(tags)} tags from ontology")
    return tags


def load_default_ontology(path: Optional[Path] = None) -> List[OntologyTag]:
    """Sample ontology shipped with the package (supplements, snacks)."""
    with open(path or _DEFAULT_ONTOLOGY_PATH, encoding="utf-8") as f:
        return parse_tag_ontology(json.load(f))


def apply_tags(keyword: str, ontology: Sequence[OntologyTag]) -> Dict[str, List[str]]:
    """category → matching tag names. Every ontology category is present,
    possibly with an empty list. Tags without usable triggers are skipped."""
    result: Dict[str, List[str]] = {}
    if not ontology:
        logger.warning("No tags provided for tagging; returning empty result")
        return result

    k = keyword.lower()
    for tag in ontology:
        result.setdefault(tag.category, [])
        triggers = tag.triggers
        if not triggers:
            continue
        if any(trigger in k for trigger in triggers):
            result[tag.category].append(tag.tag)
    return result


def infer_attributes(record: TermRecord, ontology: Sequence[OntologyTag]) -> TermRecord:
    """Copy of `record` with missing function/format/values filled from the
    first matching ontology tag of the corresponding category."""
    applied = apply_tags(record.term, ontology)
    inferred = {}
    for category, key in _CATEGORY_ATTRIBUTES.items():
        matches = applied.get(category) or []
        if matches and key not in record.attributes:
            inferred[key] = matches[0]
    if not inferred:
        return record
    return record.with_attributes(inferred)


def tag_records(records: Sequence[TermRecord], ontology: Sequence[OntologyTag]) -> List[TermRecord]:
    return [infer_attributes(r, ontology) for r in records]
