"""
Agglomerative merge tree over level-0 clusters.

Repeatedly merges the two clusters whose centroids have the highest cosine
similarity until one cluster remains:

  1. centroid of every working cluster (mean of member embeddings)
  2. pairwise cosine similarity
  3. best pair; ties go to the first pair found scanning i < j in working order
  4. new node: terms = union, level = max(child levels) + 1,
     similarity = matched similarity, children = (left id, right id)
  5. the pair leaves the working set, the new node joins at the end

Nodes live in an arena keyed by integer id; merged nodes reference children
by id only, so the tree has no back-references and serialises as-is.

Output is every node ever constructed (leaves and merged nodes), sorted by
descending opportunity score. Picking a granularity level is the caller's
choice.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..schemas.clusters import Cluster, MergeRecord
from ..tools.embeddings import cosine_similarity_matrix
from .scoring import score_cluster

logger = logging.getLogger(__name__)


@dataclass
class MergeHierarchy:
    """Arena of cluster nodes plus the merge ledger."""
    nodes: Dict[int, Cluster] = field(default_factory=dict)
    merges: List[MergeRecord] = field(default_factory=list)
    ranked: List[Cluster] = field(default_factory=list)    # every node, best opportunity first
    root_id: Optional[int] = None

    @property
    def root(self) -> Optional[Cluster]:
        return self.nodes.get(self.root_id) if self.root_id is not None else None

    def children_of(self, node_id: int) -> Tuple[Cluster, ...]:
        node = self.nodes[node_id]
        if node.children is None:
            return ()
        return tuple(self.nodes[c] for c in node.children)

    def parent_of(self, node_id: int) -> Optional[Cluster]:
        for merge in self.merges:
            if node_id in (merge.left_child_id, merge.right_child_id):
                return self.nodes[merge.id]
        return None

    def leaves(self) -> List[Cluster]:
        return [n for n in self.nodes.values() if n.children is None]

    def at_level(self, level: int) -> List[Cluster]:
        return [n for n in self.ranked if n.level == level]


class HierarchicalMerger:
    """Builds the merge tree. Stateless; safe to reuse across runs."""

    @staticmethod
    def _best_pair(centroids: np.ndarray) -> Tuple[int, int, float]:
        sims = cosine_similarity_matrix(centroids)
        n = sims.shape[0]
        best_i, best_j, best = 0, 1, float(sims[0, 1])
        for i in range(n):
            for j in range(i + 1, n):
                if sims[i, j] > best:
                    best_i, best_j, best = i, j, float(sims[i, j])
        return best_i, best_j, best

    def merge(self, clusters: Sequence[Cluster]) -> MergeHierarchy:
        """Merge clusters into a full binary hierarchy.

        With 0 or 1 input clusters nothing is merged and the input comes back
        unchanged, so feeding a single merged root back in is a no-op.
        """
        clusters = list(clusters)
        ids = [c.id for c in clusters]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Cluster ids must be unique, got {ids}")

        hierarchy = MergeHierarchy(nodes={c.id: c for c in clusters})
        if len(clusters) <= 1:
            hierarchy.ranked = list(clusters)
            hierarchy.root_id = clusters[0].id if clusters else None
            return hierarchy

        next_id = max(ids) + 1
        working: List[Cluster] = list(clusters)
        centroids: List[np.ndarray] = [c.centroid() for c in working]

        while len(working) > 1:
            i, j, similarity = self._best_pair(np.vstack(centroids))
            left, right = working[i], working[j]

            merged = Cluster(
                id=next_id,
                terms=list(left.terms) + list(right.terms),
                level=max(left.level, right.level) + 1,
                similarity=similarity,
                children=(left.id, right.id),
            )
            hierarchy.nodes[merged.id] = merged
            hierarchy.merges.append(MergeRecord(
                id=merged.id,
                left_child_id=left.id,
                right_child_id=right.id,
                similarity=similarity,
                level=merged.level,
            ))
            logger.debug(
                f"Merged {left.id}+{right.id} → {merged.id} "
                f"(sim={similarity:.3f}, level={merged.level}, terms={merged.size})"
            )

            working = [c for k, c in enumerate(working) if k not in (i, j)] + [merged]
            centroids = [c for k, c in enumerate(centroids) if k not in (i, j)] + [merged.centroid()]
            next_id += 1

        hierarchy.root_id = working[0].id
        # Stable sort: equal scores keep arena (creation) order
        hierarchy.ranked = sorted(hierarchy.nodes.values(), key=score_cluster, reverse=True)
        logger.info(
            f"Hierarchy: {len(clusters)} leaf clusters → {len(hierarchy.merges)} merges, "
            f"{len(hierarchy.nodes)} nodes, root={hierarchy.root_id}"
        )
        return hierarchy
