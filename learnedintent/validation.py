"""
validation.py

Clustering quality measures.

- SilhouetteScore     → internal quality from intra- vs. nearest-cluster distances
- AdjustedRandIndex   → agreement between two partitions of the same documents
- cluster_distance_report → per-cluster table (closest cluster, mean distance)
"""

from __future__ import annotations

import math
from typing import Dict, Hashable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .clustering import Cluster
from .documents import Document
from .features import FeatureVector


class SilhouetteScore:
    """
    Silhouette score of a clustering, with clusters compared by centroid.

    For every cluster the closest other cluster is the one whose centroid is
    nearest (Euclidean). For every member document, ``a`` is its mean distance
    to the other members and ``b`` its mean distance to the members of the
    closest cluster; its coefficient is ``(b - a) / max(a, b)``. Coefficients
    are averaged per cluster, then over clusters.

    Parameters
    ----------
    feature_space:
        When given, every vector (and centroid) is densified against it before
        distances are taken. Without it, all vectors must already be dense and
        of equal length.

    After :meth:`calculate`, :attr:`closest_clusters`,
    :attr:`mean_intra_document_distances` and
    :attr:`mean_closest_cluster_distances` hold the per-cluster details.
    """

    def __init__(self, feature_space: Optional[Sequence[Hashable]] = None) -> None:
        self.feature_space = feature_space
        self.closest_clusters: Dict[Cluster, Cluster] = {}
        self.mean_intra_document_distances: Dict[Cluster, float] = {}
        self.mean_closest_cluster_distances: Dict[Cluster, float] = {}

    def calculate(self, clusters: Sequence[Cluster]) -> float:
        # empty clusters (k larger than the corpus) take no part
        clusters = [c for c in clusters if c.size() > 0]
        if len(clusters) < 2:
            raise ValueError("The silhouette score needs at least two clusters.")
        self.closest_clusters = {}
        self.mean_intra_document_distances = {}
        self.mean_closest_cluster_distances = {}

        cluster_scores: List[float] = []
        for cluster in clusters:
            closest = self._closest_cluster(cluster, clusters)
            self.closest_clusters[cluster] = closest

            intra: List[float] = []
            inter: List[float] = []
            coefficients: List[float] = []
            for document in cluster.documents:
                a = self._mean_distance(document, cluster.documents)
                b = self._mean_distance(document, closest.documents)
                denominator = max(a, b)
                coefficients.append((b - a) / denominator if denominator > 0 else 0.0)
                intra.append(a)
                inter.append(b)

            self.mean_intra_document_distances[cluster] = float(np.mean(intra)) if intra else 0.0
            self.mean_closest_cluster_distances[cluster] = float(np.mean(inter)) if inter else 0.0
            cluster_scores.append(float(np.mean(coefficients)) if coefficients else 0.0)

        return float(np.mean(cluster_scores))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _array(self, vector: FeatureVector) -> np.ndarray:
        if self.feature_space is not None:
            vector = vector.to_dense_vector(self.feature_space)
        return vector.to_array()

    def _mean_distance(self, document: Document, others: Sequence[Document]) -> float:
        """Mean Euclidean distance from ``document`` to ``others`` (itself excluded)."""
        subject = self._array(document.vector)
        distances: List[float] = []
        for other in others:
            if other is document:
                continue
            other_array = self._array(other.vector)
            if subject.shape != other_array.shape:
                raise ValueError(
                    "Intra-document distances cannot be calculated because the document "
                    f"feature vectors are of different sizes: {subject.size}, {other_array.size}. "
                    "This may happen if sparse vectors are used and no feature space was given."
                )
            distances.append(float(np.linalg.norm(subject - other_array)))
        return float(np.mean(distances)) if distances else 0.0

    def _closest_cluster(self, cluster: Cluster, clusters: Sequence[Cluster]) -> Cluster:
        if cluster.centroid is None:
            raise ValueError(
                f"Cluster {cluster.id} does not have a centroid; the closest cluster is "
                "found by centroid distance."
            )
        centroid = self._array(cluster.centroid)
        best: Optional[Cluster] = None
        best_distance = math.inf
        for other in clusters:
            if other is cluster:
                continue
            if other.centroid is None:
                raise ValueError(
                    f"Cluster {other.id} does not have a centroid; the closest cluster is "
                    "found by centroid distance."
                )
            distance = float(np.linalg.norm(centroid - self._array(other.centroid)))
            if distance < best_distance:
                best_distance = distance
                best = other
        return best


class AdjustedRandIndex:
    """
    Adjusted Rand index between an expected and an actual clustering.

    Documents are matched by equality over the union of both clusterings. A
    document present in only one of them is put, on the other side, in its
    own "unassigned" group. Cluster ids only matter as labels, so any
    relabeling gives the same score.
    """

    UNASSIGNED = object()

    def calculate(self, expected: Sequence[Cluster], actual: Sequence[Cluster]) -> float:
        from sklearn.metrics import adjusted_rand_score

        expected_ids = self._document_to_cluster_id(expected)
        actual_ids = self._document_to_cluster_id(actual)

        documents = list(expected_ids)
        documents.extend(d for d in actual_ids if d not in expected_ids)
        if not documents:
            raise ValueError("Both clusterings are empty.")

        expected_labels = self._encode([expected_ids.get(d, self.UNASSIGNED) for d in documents])
        actual_labels = self._encode([actual_ids.get(d, self.UNASSIGNED) for d in documents])
        return float(adjusted_rand_score(expected_labels, actual_labels))

    @staticmethod
    def _document_to_cluster_id(clusters: Sequence[Cluster]) -> Dict[Document, str]:
        ids: Dict[Document, str] = {}
        for cluster in clusters:
            for document in cluster.documents:
                ids[document] = cluster.id
        return ids

    @staticmethod
    def _encode(labels: List[object]) -> List[int]:
        codes: Dict[object, int] = {}
        return [codes.setdefault(label, len(codes)) for label in labels]


def cluster_distance_report(
    clusters: Sequence[Cluster],
    feature_space: Optional[Sequence[Hashable]] = None,
) -> pd.DataFrame:
    """
    Per-cluster summary for inspecting a clustering.

    Computes missing centroids, then returns one row per cluster with its
    size, closest cluster, mean intra-cluster document distance, mean
    document distance to the closest cluster and top centroid features. The
    overall silhouette score is stored in ``frame.attrs["silhouette_score"]``.
    """
    for cluster in clusters:
        if cluster.centroid is None and cluster.size() > 0:
            cluster.calculate_centroid()

    clusters = [c for c in clusters if c.size() > 0]
    scorer = SilhouetteScore(feature_space)
    score = scorer.calculate(clusters)
    rows = [
        {
            "cluster_id": cluster.id,
            "size": cluster.size(),
            "closest_cluster_id": scorer.closest_clusters[cluster].id,
            "mean_intra_document_distance": scorer.mean_intra_document_distances[cluster],
            "mean_closest_cluster_distance": scorer.mean_closest_cluster_distances[cluster],
            "top_features": cluster.top_features(),
        }
        for cluster in clusters
    ]
    frame = pd.DataFrame(rows)
    frame.attrs["silhouette_score"] = score
    return frame
