"""
learnedintent

Text feature extraction, clustering and classification for clinical-trial
eligibility criteria.

High-level API
--------------
- Document / Corpus          → text plus its processing history and vectors
- DocumentNormalizer         → normalization, stemming and break markers
- TreebankDocumentTokenizer  → tokens with contractions split
- NGrammer                   → corpus feature space and n-gram counts
- BoW / RegexBoW / TF-IDF / Threshold vectorizers
- DocumentClusteringPipeline → vectorize + k-means / DBSCAN clustering
- SilhouetteScore, AdjustedRandIndex, cluster_distance_report
- create_classifier          → maxent, naive Bayes, trees, forests, MLP
- ConfusionMatrix, GroundTruther → classifier evaluation
"""

from importlib.metadata import PackageNotFoundError, version

# Core data model
from .features import FeatureSpace, FeatureVector, NGram, NGramRegistry, ngram
from .documents import (
    Corpus,
    Document,
    DocumentStateError,
    DocumentWithPrediction,
    Words,
    map_documents,
)
from .configuration import Configuration

# Processing pipeline
from .text_processing import BREAK, DocumentNormalizer, TreebankDocumentTokenizer
from .ngrammer import NGrammer
from .vectorizers import (
    BoWVectorizer,
    DocumentVectorizationPipeline,
    RegexBoWVectorizer,
    TFIDFVectorizer,
    ThresholdVectorizer,
    l2_normalize,
)

# Clustering, classification and evaluation
from .clustering import Cluster, DBSCANClusterer, DocumentClusteringPipeline, KMeansClusterer
from .validation import AdjustedRandIndex, SilhouetteScore, cluster_distance_report
from .classification import (
    CLASSIFIER_REGISTRY,
    Classification,
    Classifier,
    create_classifier,
    register_classifier,
)
from .evaluation import CategoryAccuracy, ConfusionMatrix, GroundTruther


# ---------------------------------------------------------------------
# Runtime version (single source of truth = pyproject.toml)
# ---------------------------------------------------------------------
try:
    __version__ = version("learnedintent")
except PackageNotFoundError:
    # Fallback when running directly from a clone without installation
    __version__ = "0.0.0"

__all__ = [
    "FeatureSpace",
    "FeatureVector",
    "NGram",
    "NGramRegistry",
    "ngram",
    "Corpus",
    "Document",
    "DocumentStateError",
    "DocumentWithPrediction",
    "Words",
    "map_documents",
    "Configuration",
    "BREAK",
    "DocumentNormalizer",
    "TreebankDocumentTokenizer",
    "NGrammer",
    "BoWVectorizer",
    "DocumentVectorizationPipeline",
    "RegexBoWVectorizer",
    "TFIDFVectorizer",
    "ThresholdVectorizer",
    "l2_normalize",
    "Cluster",
    "DBSCANClusterer",
    "DocumentClusteringPipeline",
    "KMeansClusterer",
    "AdjustedRandIndex",
    "SilhouetteScore",
    "cluster_distance_report",
    "CLASSIFIER_REGISTRY",
    "Classification",
    "Classifier",
    "create_classifier",
    "register_classifier",
    "CategoryAccuracy",
    "ConfusionMatrix",
    "GroundTruther",
    "__version__",
]
