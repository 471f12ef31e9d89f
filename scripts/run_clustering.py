"""
Run the niche clustering pipeline on a search-term export.

    python scripts/run_clustering.py terms.csv
    python scripts/run_clustering.py terms.csv jan.csv:2024-01-01 feb.csv:2024-02-01 --mock

CSV columns: Search_Term, Volume, Click_Share, Growth_180 / Growth_90,
Competition and optionally Function_Inferred / Format_Inferred /
Values_Inferred. Snapshot files use the same columns.
"""
import argparse
import asyncio
import json
import logging
import os
import re
import sys
from datetime import datetime

import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from niche_engine.config import get_settings
from niche_engine.schemas import HistoricalSnapshot, TermRecord
from niche_engine.trends import NicheClusteringEngine, configure_logging, load_default_ontology

logger = logging.getLogger(__name__)

_SNAPSHOT_RE = re.compile(r"^(.+?\.\w+):(.+)$")


def read_terms(path: str):
    """Rows of a CSV export → TermRecords. Rows without a usable term are skipped."""
    frame = pd.read_csv(path)
    frame = frame.where(pd.notna(frame), None)
    records = []
    for row in frame.to_dict(orient="records"):
        try:
            records.append(TermRecord.from_row(row))
        except ValueError as e:
            logger.debug(f"Skipping row in {path}: {e}")
    logger.info(f"Read {len(records)}/{len(frame)} terms from {path}")
    return records


def parse_snapshot_arg(value: str) -> HistoricalSnapshot:
    match = _SNAPSHOT_RE.match(value)
    if not match:
        raise argparse.ArgumentTypeError(f"Expected <snapshot.csv>:<ISO date>, got '{value}'")
    path, stamp = match.groups()
    try:
        timestamp = datetime.fromisoformat(stamp)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO date '{stamp}': {e}")
    return HistoricalSnapshot(timestamp=timestamp, terms=read_terms(path))


async def cli_main():
    parser = argparse.ArgumentParser(description="Search-term niche clustering")
    parser.add_argument("terms", help="Search-term export (CSV)")
    parser.add_argument("snapshots", nargs="*", help="Historical snapshots as <snapshot.csv>:<ISO date>")
    parser.add_argument("--output", default="clustering_result.json", help="Where to write the JSON run result")
    parser.add_argument("--mock", action="store_true", help="Mock annotation (no LLM calls)")
    parser.add_argument("--no-annotate", action="store_true", help="Skip cluster annotation entirely")
    parser.add_argument("--tag", action="store_true", help="Infer missing attributes from the bundled tag ontology")
    parser.add_argument("--top", type=int, default=15, help="Clusters to print (default: 15)")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    if args.mock:
        os.environ["MOCK_MODE"] = "true"
        get_settings.cache_clear()

    records = read_terms(args.terms)
    history = [parse_snapshot_arg(s) for s in args.snapshots]

    engine = NicheClusteringEngine(
        annotate=not args.no_annotate,
        ontology=load_default_ontology() if args.tag else None,
    )
    try:
        result = await engine.run(records, history=history or None)
    finally:
        await engine.aclose()

    with open(args.output, "w", encoding="utf-8") as f:
        json.dump(result.model_dump(mode="json"), f, indent=2)

    print("\n" + "=" * 72)
    print(f"NICHE CLUSTERS ({len(result.clusters)} nodes, {result.embedded_count}/{result.term_count} terms)")
    print("=" * 72)
    for c in result.clusters[:args.top]:
        trend = ""
        if c.temporal_metrics is not None:
            trend = f"  growth={c.temporal_metrics.growth_rate:+.1f} emergence={c.temporal_metrics.emergence_score:.2f}"
        print(f"[{c.opportunity_score:3d}] L{c.level} #{c.id:<4d} {c.title[:50]:<50} ({len(c.terms)} terms){trend}")

    if result.enrichment_incomplete:
        print(f"\nEnrichment incomplete: {len(result.failed_terms)} failed terms, "
              f"{len(result.annotation_failures)} annotation failures")
        for warning in result.warnings[:5]:
            print(f"   - {warning}")
    print(f"\nRun result written to {args.output} ({result.duration_seconds:.2f}s)")
    print("=" * 72 + "\n")


def main():
    asyncio.run(cli_main())


if __name__ == "__main__":
    main()
