"""Tests for silhouette score, adjusted Rand index and the distance report."""

from __future__ import annotations

import math

import pytest

from learnedintent.clustering import Cluster, DocumentClusteringPipeline, KMeansClusterer
from learnedintent.configuration import Configuration
from learnedintent.documents import Corpus, Document
from learnedintent.features import FeatureSpace, FeatureVector
from learnedintent.validation import AdjustedRandIndex, SilhouetteScore, cluster_distance_report


def _docs(*names: str):
    return [Document(n) for n in names]


def _point(name: str, x: float, y: float) -> Document:
    document = Document(name)
    document.feature_space = FeatureSpace(["x", "y"])
    document.set_vector("Dense", FeatureVector(["x", "y"], [x, y]))
    return document


# ---------------------------------------------------------------------------
# Adjusted Rand index
# ---------------------------------------------------------------------------


def test_ari_of_different_partitions() -> None:
    d = _docs("1", "2", "3", "4", "5", "6")
    expected = Cluster.from_mapping({"a": d[0:3], "b": d[3:6]})
    actual = Cluster.from_mapping({"x": d[0:2], "y": d[2:4], "z": d[4:6]})
    assert AdjustedRandIndex().calculate(expected, actual) == pytest.approx(0.24, abs=0.01)


def test_ari_is_one_for_identical_and_relabeled_partitions() -> None:
    d = _docs("1", "2", "3", "4")
    expected = Cluster.from_mapping({"a": d[:2], "b": d[2:]})
    relabeled = Cluster.from_mapping({"z": d[2:], "y": d[:2]})
    ari = AdjustedRandIndex()
    assert ari.calculate(expected, expected) == pytest.approx(1.0)
    assert ari.calculate(expected, relabeled) == pytest.approx(1.0)


def test_ari_matches_documents_by_text() -> None:
    expected = Cluster.from_mapping({"a": _docs("1", "2"), "b": _docs("3", "4")})
    actual = Cluster.from_mapping({"0": _docs("1", "2"), "1": _docs("3", "4")})
    assert AdjustedRandIndex().calculate(expected, actual) == pytest.approx(1.0)


def test_ari_puts_missing_documents_apart() -> None:
    d = _docs("1", "2", "3", "4")
    expected = Cluster.from_mapping({"a": d[:2], "b": d[2:]})
    actual = Cluster.from_mapping({"a": d[:2], "b": d[2:3]})
    assert AdjustedRandIndex().calculate(expected, actual) < 1.0


def test_ari_of_two_empty_clusterings_is_an_error() -> None:
    with pytest.raises(ValueError):
        AdjustedRandIndex().calculate([], [])


# ---------------------------------------------------------------------------
# Silhouette
# ---------------------------------------------------------------------------


def test_silhouette_of_tight_separated_clusters_is_high() -> None:
    left = Cluster("0", [_point("a", 0.0, 0.0), _point("b", 0.0, 0.1)])
    right = Cluster("1", [_point("c", 5.0, 5.0), _point("d", 5.0, 5.1)])
    for cluster in (left, right):
        cluster.calculate_centroid()
    scorer = SilhouetteScore()
    score = scorer.calculate([left, right])
    assert 0.9 < score <= 1.0
    assert scorer.closest_clusters[left] is right
    assert scorer.mean_intra_document_distances[left] == pytest.approx(0.1)


def test_silhouette_needs_two_clusters() -> None:
    cluster = Cluster("0", [_point("a", 0.0, 0.0)])
    cluster.calculate_centroid()
    with pytest.raises(ValueError):
        SilhouetteScore().calculate([cluster])


def test_silhouette_needs_centroids() -> None:
    clusters = [Cluster("0", [_point("a", 0.0, 0.0)]), Cluster("1", [_point("b", 1.0, 1.0)])]
    with pytest.raises(ValueError):
        SilhouetteScore().calculate(clusters)


def test_silhouette_rejects_vectors_of_different_sizes() -> None:
    a = Document("a")
    a.set_vector("Sparse", FeatureVector(["x"], [1.0]))
    b = Document("b")
    b.set_vector("Sparse", FeatureVector(["x", "y"], [1.0, 2.0]))
    left = Cluster("0", [a, b], centroid=FeatureVector(["x", "y"], [1.0, 1.0]))
    right = Cluster("1", [_point("c", 3.0, 3.0)], centroid=FeatureVector(["x", "y"], [3.0, 3.0]))
    with pytest.raises(ValueError):
        SilhouetteScore().calculate([left, right])


def test_silhouette_peaks_at_the_natural_number_of_clusters() -> None:
    corpus = Corpus(
        _docs(
            "Age: 18 to 100 years",
            "Absolute neutrophil count >= 1500/µL",
            "Absolute neutrophil count >= 1600/µL",
            "Creatinine within the normal institutional limits",
            "Creatinine within normal institutional limits",
            "Creatinine is within normal institutional limits",
        )
    )
    cfg = Configuration(minimum_token_frequency=1, serial_mode=True)
    clusters2 = DocumentClusteringPipeline(KMeansClusterer(2), cfg).cluster(corpus)
    clusters3 = DocumentClusteringPipeline(KMeansClusterer(3), cfg).cluster(corpus)

    scorer = SilhouetteScore(corpus.feature_space)
    score2 = scorer.calculate(clusters2)
    score3 = scorer.calculate(clusters3)
    assert score3 > score2
    assert score3 <= 1.0


def test_silhouette_ignores_empty_clusters() -> None:
    corpus = Corpus(_docs("Age: 18 to 100 years", "Creatinine within normal limits"))
    cfg = Configuration(minimum_token_frequency=1, serial_mode=True)
    clusters = DocumentClusteringPipeline(KMeansClusterer(5), cfg).cluster(corpus)
    assert len(clusters) == 5
    assert SilhouetteScore(corpus.feature_space).calculate(clusters) == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Distance report
# ---------------------------------------------------------------------------


def test_cluster_distance_report() -> None:
    left = Cluster("0", [_point("a", 0.0, 0.0), _point("b", 0.0, 0.2)])
    right = Cluster("1", [_point("c", 4.0, 4.0)])
    frame = cluster_distance_report([left, right])
    assert list(frame["cluster_id"]) == ["0", "1"]
    assert list(frame["closest_cluster_id"]) == ["1", "0"]
    assert frame.loc[0, "mean_intra_document_distance"] == pytest.approx(0.2)
    # a(0,0) and b(0,0.2) to c(4,4)
    expected = (math.hypot(4.0, 4.0) + math.hypot(4.0, 3.8)) / 2
    assert frame.loc[0, "mean_closest_cluster_distance"] == pytest.approx(expected)
    assert frame.loc[1, "mean_closest_cluster_distance"] == pytest.approx(expected)
    assert frame.loc[1, "size"] == 1
    assert "silhouette_score" in frame.attrs
