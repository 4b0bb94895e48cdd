"""
clustering.py

Cluster vectorized corpora with scikit-learn algorithms.

Main pieces
-----------
- Cluster                     → id, read-only member documents, optional centroid
- MatrixClusterer             → base class: dense matrix in, sorted clusters out
- KMeansClusterer / DBSCANClusterer
- DocumentClusteringPipeline  → vectorize, drop empty documents, cluster, and
                                re-cluster one oversized "noise" cluster

Quick usage
-----------
    from learnedintent.clustering import DocumentClusteringPipeline, KMeansClusterer

    pipeline = DocumentClusteringPipeline(KMeansClusterer(k=2), configuration=cfg)
    clusters = pipeline.cluster(corpus)
    for c in clusters:
        print(c)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np

from .configuration import Configuration
from .documents import Corpus, Document, DocumentStateError
from .features import FeatureVector
from .vectorizers import DocumentVectorizationPipeline, DocumentVectorizer

OUTLIER_ID = "-1"


# ---------------------------------------------------------------------------
# Cluster container
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Cluster:
    """
    A group of documents.

    Attributes
    ----------
    id:
        Cluster identifier (the algorithm label as a string; ``"-1"`` holds
        DBSCAN outliers).
    documents:
        Member documents, read-only.
    centroid:
        Mean member vector over the corpus feature space, either provided by
        the algorithm or computed with :meth:`calculate_centroid`.

    Clusters order by member count, smallest first.
    """

    id: str
    documents: Tuple[Document, ...] = field(default_factory=tuple)
    centroid: Optional[FeatureVector] = None

    def __post_init__(self) -> None:
        self.id = str(self.id)
        self.documents = tuple(self.documents)

    def size(self) -> int:
        return len(self.documents)

    def __len__(self) -> int:
        return len(self.documents)

    def __lt__(self, other: "Cluster") -> bool:
        return self.size() < other.size()

    def calculate_centroid(self) -> None:
        """Set the centroid to the mean of the member vectors."""
        feature_space = None
        vectors: List[FeatureVector] = []
        for document in self.documents:
            if document.feature_space is None:
                raise DocumentStateError(
                    "Not all documents in the cluster have a feature space; "
                    "the centroid cannot be computed."
                )
            feature_space = document.feature_space
            vectors.append(document.vector if document.vector is not None else FeatureVector())
        self.centroid = FeatureVector.centroid(vectors, feature_space)

    def top_features(self, n: int = 9) -> List[str]:
        """Spans of the ``n`` heaviest non-zero centroid features."""
        if self.centroid is None:
            return []
        return [getattr(f, "feature", str(f)) for f in self.centroid.to_sparse_vector().sorted()][:n]

    def __str__(self) -> str:
        lines = [f"Cluster: {self.id} - {self.size()}"]
        if self.centroid is not None:
            lines.append(f"Relevant Features: {self.top_features()}")
        lines.append("==============")
        lines.extend(f"{d.id} - {d.original_text}" for d in self.documents)
        return "\n".join(lines) + "\n"

    @staticmethod
    def from_mapping(clusters: Mapping[str, Sequence[Document]]) -> List["Cluster"]:
        """One cluster per ``id → documents`` entry, in mapping order."""
        return [Cluster(cluster_id, tuple(docs)) for cluster_id, docs in clusters.items()]


class Clusterer(Protocol):
    def cluster(self, corpus: Corpus) -> List[Cluster]: ...


# ---------------------------------------------------------------------------
# Algorithm wrappers
# ---------------------------------------------------------------------------


class MatrixClusterer:
    """
    Base class for algorithms that cluster the corpus dense matrix.

    Subclasses implement :meth:`_fit`, returning one label per matrix row and,
    optionally, a centroid matrix whose row ``i`` belongs to label ``i``.
    Clusters without algorithm centroids get them computed from their members.
    """

    def __init__(self, log_fn: Optional[Callable[[str], None]] = None) -> None:
        self._log_fn = log_fn or (lambda _msg: None)

    def _log(self, msg: str) -> None:
        try:
            self._log_fn(msg)
        except Exception:
            # Never let logging break the pipeline
            pass

    def _fit(self, matrix: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        raise NotImplementedError

    def _cluster_ids(self, labels: np.ndarray) -> List[str]:
        """Ids of the clusters to create, in centroid-row order."""
        k = int(labels.max()) + 1 if labels.size else 0
        return [str(i) for i in range(k)]

    def cluster(self, corpus: Corpus) -> List[Cluster]:
        if corpus.feature_space is None:
            raise DocumentStateError(
                "There is no feature space for this corpus. Documents need to be "
                "vectorized in order to be clustered."
            )
        if corpus.size() == 0:
            return []

        matrix = self.to_dense_matrix(corpus)
        self._log(f"[{type(self).__name__}] Clustering {matrix.shape[0]}x{matrix.shape[1]} matrix…")
        labels, centroids = self._fit(matrix)
        labels = np.asarray(labels, dtype=int)

        members: Dict[str, List[Document]] = {cid: [] for cid in self._cluster_ids(labels)}
        for document, label in zip(corpus.documents, labels):
            members.setdefault(str(label), []).append(document)

        clusters = [Cluster(cid, tuple(docs)) for cid, docs in members.items()]
        features = list(corpus.feature_space)
        if centroids is not None:
            for cluster, row in zip(clusters, np.asarray(centroids)):
                cluster.centroid = FeatureVector(features, list(row))
        for cluster in clusters:
            if cluster.centroid is None and cluster.size() > 0:
                cluster.calculate_centroid()

        clusters.sort(key=Cluster.size)
        return clusters

    @staticmethod
    def to_dense_matrix(corpus: Corpus) -> np.ndarray:
        feature_space = corpus.feature_space
        vectors = []
        for document in corpus:
            if document.vector is None:
                raise DocumentStateError(f"Document has no vector: {document}")
            vectors.append(document.vector.to_dense_vector(feature_space))
        return FeatureVector.to_matrix(vectors)


class KMeansClusterer(MatrixClusterer):
    """
    scikit-learn k-means with algorithm centroids.

    When a corpus has fewer documents than ``k``, only as many clusters as
    documents are fitted and the remaining ids stay empty.
    """

    def __init__(
        self,
        k: int,
        random_state: Optional[int] = 42,
        n_init: int = 10,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(log_fn=log_fn)
        if k < 1:
            raise ValueError("Clustering is not defined for 0 or negative k.")
        self.k = k
        self.random_state = random_state
        self.n_init = n_init

    def _cluster_ids(self, labels: np.ndarray) -> List[str]:
        return [str(i) for i in range(self.k)]

    def _fit(self, matrix: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        from sklearn.cluster import KMeans

        n_clusters = min(self.k, matrix.shape[0])
        kmeans = KMeans(n_clusters=n_clusters, random_state=self.random_state, n_init=self.n_init)
        labels = kmeans.fit_predict(matrix)
        return labels, kmeans.cluster_centers_


class DBSCANClusterer(MatrixClusterer):
    """
    scikit-learn DBSCAN; points in no dense region land in cluster ``"-1"``.

    DBSCAN has no centroids, so every non-empty cluster gets its centroid
    computed from its members.
    """

    def __init__(
        self,
        eps: float = 0.7,
        min_samples: int = 1,
        metric: str = "euclidean",
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(log_fn=log_fn)
        self.eps = eps
        self.min_samples = min_samples
        self.metric = metric

    def _cluster_ids(self, labels: np.ndarray) -> List[str]:
        return super()._cluster_ids(labels) + [OUTLIER_ID]

    def _fit(self, matrix: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        from sklearn.cluster import DBSCAN

        labels = DBSCAN(eps=self.eps, min_samples=self.min_samples, metric=self.metric).fit_predict(matrix)
        return labels, None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class DocumentClusteringPipeline:
    """
    Vectorize (if needed) and cluster a corpus.

    Documents without any feature n-gram are dropped from the corpus before
    clustering. When more than three clusters come back and the largest one
    holds more than twice the documents of the runner-up, it is treated as a
    noise bucket: it is removed and its documents are clustered again (once,
    with the same feature space). The sub-clusters are appended with ids
    prefixed by the removed cluster id (``"3.0"``, ``"3.1"``, ...).

    Parameters
    ----------
    clusterer:
        The algorithm, e.g. :class:`KMeansClusterer`.
    configuration:
        Options for the default vectorization pipeline.
    vectorizer:
        Optional vectorizer override.
    log_fn:
        Optional callable for progress messages.
    """

    def __init__(
        self,
        clusterer: Clusterer,
        configuration: Optional[Configuration] = None,
        vectorizer: Optional[DocumentVectorizer] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.clusterer = clusterer
        self.configuration = configuration or Configuration.default()
        self._log_fn = log_fn or (lambda _msg: None)
        self.vectorizer = vectorizer or DocumentVectorizationPipeline(self.configuration, log_fn=log_fn)

    @classmethod
    def with_kmeans(cls, k: int, configuration: Optional[Configuration] = None) -> "DocumentClusteringPipeline":
        return cls(KMeansClusterer(k), configuration)

    def _log(self, msg: str) -> None:
        try:
            self._log_fn(msg)
        except Exception:
            # Never let logging break the pipeline
            pass

    def cluster(self, corpus: Corpus) -> List[Cluster]:
        if corpus.feature_space is None:
            self.vectorizer.vectorize_corpus(corpus)

        dropped = corpus.remove_documents(lambda d: not d.ngrams)
        self._log(f"[Clustering] Dropped {len(dropped)} documents without features.")
        self._log(f"[Clustering] Matrix size: {corpus.size()}x{len(corpus.feature_space)}")

        clusters = self.clusterer.cluster(corpus)
        self._log(f"[Clustering] Clustered {corpus.size()} documents into {len(clusters)} clusters.")

        if len(clusters) > 3:
            largest, runner_up = clusters[-1], clusters[-2]
            if largest.size() > 2 * runner_up.size():
                clusters.remove(largest)
                noise = Corpus(largest.documents)
                noise.set_feature_space(corpus.feature_space)
                for sub in self.clusterer.cluster(noise):
                    sub.id = f"{largest.id}.{sub.id}"
                    clusters.append(sub)
                self._log(f"[Clustering] Re-clustered a noise cluster of {noise.size()} documents.")
        return clusters
