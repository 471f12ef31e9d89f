"""Ontology tagging and attribute inference."""
from conftest import make_term
from niche_engine.trends.tagging import (
    apply_tags,
    infer_attributes,
    load_default_ontology,
    parse_tag_ontology,
)

ROWS = [
    {"Category": "Format", "Tag": "Gummies", "Trigger": "gummy|gummies"},
    {"Category": "Format", "Tag": "Capsules", "Trigger": "capsule, pill"},
    {"Category": "Function", "Tag": "Sleep Aid", "Trigger": "sleep|night"},
    {"Category": "Values", "Tag": "Vegan", "Trigger": ""},
    {"Category": "", "Tag": "Broken"},
]


def test_parse_skips_incomplete_rows():
    ontology = parse_tag_ontology(ROWS)
    assert [t.tag for t in ontology] == ["Gummies", "Capsules", "Sleep Aid", "Vegan"]
    assert ontology[1].triggers == ["capsule", "pill"]


def test_apply_tags_matches_lowercased_substrings():
    tags = apply_tags("Nighttime SLEEP Gummies", parse_tag_ontology(ROWS))
    assert tags == {"Format": ["Gummies"], "Function": ["Sleep Aid"], "Values": []}


def test_apply_tags_with_empty_ontology():
    assert apply_tags("anything", []) == {}


def test_infer_attributes_fills_only_missing_keys():
    ontology = parse_tag_ontology(ROWS)
    record = make_term("sleep gummy pill", format="Powder")
    inferred = infer_attributes(record, ontology)
    assert inferred.attributes == {"format": "Powder", "function": "Sleep Aid"}
    assert record.attributes == {"format": "Powder"}


def test_infer_attributes_without_matches_returns_same_record():
    record = make_term("wireless mouse")
    assert infer_attributes(record, parse_tag_ontology(ROWS)) is record


def test_default_ontology_ships_with_package():
    ontology = load_default_ontology()
    assert {t.category for t in ontology} >= {"Format", "Function", "Values", "Audience", "Behavior"}
    tags = apply_tags("kids sleep gummies", ontology)
    assert "Gummies" in tags["Format"]
    assert tags["Function"][0] == "Sleep Aid"
    assert "Kids" in tags["Audience"]
