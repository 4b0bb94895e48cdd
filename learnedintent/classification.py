"""
classification.py

Train and apply criteria classifiers over TF-IDF n-gram features.

Every classifier shares the same feature pipeline (normalize → tokenize →
n-gram → regex bag-of-words → TF-IDF). The feature space and the IDF vector
are frozen when training, so documents classified later are scored against
the training vocabulary. The learning algorithm itself comes from
scikit-learn and is picked by a tag:

    cfg = Configuration(classifier="naive_bayes", stem=True)
    classifier = create_classifier(cfg)
    classifier.train({"creatinine": [...], "no-diabetes": [...]})
    classifier.classify("Creatinine <= 5.0 mg/dL")[0].category
"""

from __future__ import annotations

import pickle
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .configuration import Configuration
from .documents import Corpus, Document, DocumentStateError, map_documents
from .features import FeatureSpace, FeatureVector, NGramRegistry
from .ngrammer import NGrammer
from .text_processing import DocumentNormalizer, TreebankDocumentTokenizer
from .vectorizers import RegexBoWVectorizer, TFIDFVectorizer

TextOrDocument = Union[str, Document]


@dataclass(frozen=True)
class Classification:
    """
    One category score for a document.

    Classifications sort by probability (highest first), then by category.
    """

    category: str
    probability: float
    text: Optional[str] = None

    def __lt__(self, other: "Classification") -> bool:
        return (-self.probability, self.category) < (-other.probability, other.category)

    def __str__(self) -> str:
        if self.probability is None:
            return self.category
        return f"{self.category} ({self.probability})"


def as_document(item: TextOrDocument, trace: bool = False) -> Document:
    if isinstance(item, Document):
        return item
    return Document(item, trace=trace)


# ---------------------------------------------------------------------------
# Base classifier
# ---------------------------------------------------------------------------


class Classifier:
    """
    Base class for classifiers built on the shared feature pipeline.

    Subclasses implement :meth:`_learn` (fit on a dense matrix and integer
    labels) and :meth:`_scores` (one score per category for a dense vector).

    Parameters
    ----------
    configuration:
        Text processing and training options.
    registry:
        Interning table for n-gram features.
    log_fn:
        Optional callable for progress messages.
    """

    def __init__(
        self,
        configuration: Optional[Configuration] = None,
        registry: Optional[NGramRegistry] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.configuration = configuration or Configuration.default()
        self.registry = registry if registry is not None else NGramRegistry()
        self.classes: List[str] = []
        self.feature_space = FeatureSpace()
        self._tfidf = TFIDFVectorizer.from_configuration(self.configuration)
        self._log_fn = log_fn or (lambda _msg: None)
        self._model = None

    def _log(self, msg: str) -> None:
        try:
            self._log_fn(msg)
        except Exception:
            # Never let logging break the pipeline
            pass

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_trained(self) -> bool:
        return self._model is not None

    def train(self, training_data: Mapping[str, Iterable[TextOrDocument]]) -> None:
        """
        Fit the model on ``category → examples``.

        Category order is kept. An example appearing under several categories
        (same original text) keeps the last one. Examples that end up with no
        feature n-gram are left out of the fit.
        """
        trace = self.configuration.trace_enabled
        cap = self.configuration.max_training_data_per_class_size
        labels_by_document: Dict[Document, int] = {}
        self.classes = []
        for category, examples in training_data.items():
            self.classes.append(category)
            documents = [as_document(e, trace) for e in examples]
            if cap > 0:
                documents = documents[:cap]
            for document in documents:
                labels_by_document[document] = len(self.classes) - 1
        if not self.classes:
            raise ValueError("Training data has no categories.")

        self.feature_space = FeatureSpace()
        self._tfidf.reset()
        self.process_documents(list(labels_by_document))

        kept = [(d, label) for d, label in labels_by_document.items() if d.ngrams]
        if not kept:
            raise ValueError("No training example produced any feature; nothing to learn from.")
        self._log(
            f"[{type(self).__name__}] Training on {len(kept)} examples, "
            f"{len(self.classes)} categories, {len(self.feature_space)} features."
        )

        matrix = FeatureVector.to_matrix(
            [d.vector.to_dense_vector(self.feature_space) for d, _ in kept]
        )
        labels = np.asarray([label for _, label in kept], dtype=int)
        self._model = self._learn(matrix, labels)

    def classify(self, document: TextOrDocument) -> List[Classification]:
        """
        Score ``document`` against every category, best first.

        A document with none of the training features gets 0.0 everywhere.
        """
        if not self.is_trained():
            raise DocumentStateError("The classifier has not been trained.")
        document = as_document(document, self.configuration.trace_enabled)
        if document.vector is None:
            document.feature_space = self.feature_space
            self.process_documents([document])

        if document.vector.is_empty():
            scores = np.zeros(len(self.classes))
        else:
            dense = document.vector.to_dense_vector(self.feature_space).to_array()
            scores = self._scores(dense)

        return sorted(
            Classification(category, float(score), document.original_text)
            for category, score in zip(self.classes, scores)
        )

    def process_documents(self, documents: Sequence[Document]) -> None:
        """Run the feature pipeline, mining the feature space if not yet frozen."""
        serial = self.configuration.serial_mode
        normalizer = DocumentNormalizer.from_configuration(self.configuration, log_fn=self._log_fn)
        tokenizer = TreebankDocumentTokenizer()
        map_documents(documents, normalizer.process_text, serial_mode=serial)
        map_documents(documents, tokenizer.tokenize, serial_mode=serial)

        corpus = Corpus(documents)
        if not self.feature_space.is_empty():
            corpus.set_feature_space(self.feature_space)
        NGrammer.from_configuration(self.configuration, registry=self.registry).ngram_corpus(corpus)
        if self.feature_space.is_empty():
            self.feature_space.extend(corpus.feature_space)
            self._log(f"[{type(self).__name__}] Found {len(self.feature_space)} unique features.")

        RegexBoWVectorizer().vectorize_corpus(corpus)
        self._tfidf.vectorize_corpus(corpus)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> None:
        self._log(f"[{type(self).__name__}] Saving to {path}")
        with open(path, "wb") as handle:
            pickle.dump(self, handle)

    @staticmethod
    def load(path: Union[str, Path]) -> "Classifier":
        with open(path, "rb") as handle:
            return pickle.load(handle)

    def __getstate__(self):
        state = dict(self.__dict__)
        state.pop("_log_fn", None)
        return state

    def __setstate__(self, state) -> None:
        self.__dict__.update(state)
        self._log_fn = lambda _msg: None

    # ------------------------------------------------------------------
    # Algorithm hooks
    # ------------------------------------------------------------------

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        raise NotImplementedError

    def _inputs(self, matrix: np.ndarray) -> np.ndarray:
        return matrix

    def _scores(self, vector: np.ndarray) -> np.ndarray:
        """Per-category probabilities, aligned with :attr:`classes`."""
        proba = self._model.predict_proba(self._inputs(vector.reshape(1, -1)))[0]
        scores = np.zeros(len(self.classes))
        # categories whose examples were all dropped have no model column
        scores[self._model.classes_] = proba
        return scores


# ---------------------------------------------------------------------------
# scikit-learn backed implementations
# ---------------------------------------------------------------------------


class MaxEntClassifier(Classifier):
    """
    Maximum-entropy (multinomial logistic regression) on binary features.

    A feature is "on" when its TF-IDF weight is positive. ``lambda_`` is the
    L2 penalty, ``max_training_iterations`` and ``training_tolerance`` bound
    the solver.
    """

    def _inputs(self, matrix: np.ndarray) -> np.ndarray:
        return (matrix > 0).astype(float)

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        from sklearn.linear_model import LogisticRegression

        cfg = self.configuration
        inverse_penalty = 1.0 / cfg.lambda_ if cfg.lambda_ > 0 else 1e12
        model = LogisticRegression(
            C=inverse_penalty,
            max_iter=cfg.max_training_iterations,
            tol=cfg.training_tolerance,
        )
        return model.fit(self._inputs(matrix), labels)


class NaiveBayesClassifier(Classifier):
    """Multinomial naive Bayes over TF-IDF weights."""

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        from sklearn.naive_bayes import MultinomialNB

        return MultinomialNB().fit(matrix, labels)


class DecisionTreeClassifier(Classifier):
    """CART decision tree limited to ``max_decision_tree_nodes`` leaves."""

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        from sklearn.tree import DecisionTreeClassifier as _Tree

        cfg = self.configuration
        return _Tree(max_leaf_nodes=cfg.max_decision_tree_nodes, random_state=cfg.random_seed).fit(
            matrix, labels
        )


class RandomForestClassifier(Classifier):
    """Random forest of ``number_of_trees`` trees."""

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        from sklearn.ensemble import RandomForestClassifier as _Forest

        cfg = self.configuration
        max_features = cfg.features_per_tree if cfg.features_per_tree > 0 else "sqrt"
        return _Forest(
            n_estimators=cfg.number_of_trees,
            max_features=max_features,
            random_state=cfg.random_seed,
        ).fit(matrix, labels)


class NeuralNetClassifier(Classifier):
    """
    Feed-forward network with softmax output.

    Without explicit ``hidden_layers``, two hidden layers of two thirds of the
    feature count are used.
    """

    def __init__(
        self,
        configuration: Optional[Configuration] = None,
        hidden_layers: Optional[Sequence[int]] = None,
        registry: Optional[NGramRegistry] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        super().__init__(configuration, registry=registry, log_fn=log_fn)
        self.hidden_layers = tuple(hidden_layers) if hidden_layers else None

    def _learn(self, matrix: np.ndarray, labels: np.ndarray):
        from sklearn.neural_network import MLPClassifier

        cfg = self.configuration
        layers = self.hidden_layers
        if layers is None:
            width = max(1, len(self.feature_space) * 2 // 3)
            layers = (width, width)
        return MLPClassifier(
            hidden_layer_sizes=layers,
            max_iter=cfg.max_training_iterations,
            tol=cfg.training_tolerance,
            random_state=cfg.random_seed,
        ).fit(matrix, labels)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

ClassifierFactory = Callable[[Configuration], Classifier]

CLASSIFIER_REGISTRY: Dict[str, ClassifierFactory] = {
    "maxent": MaxEntClassifier,
    "naive_bayes": NaiveBayesClassifier,
    "decision_tree": DecisionTreeClassifier,
    "random_forest": RandomForestClassifier,
    "neural_net": NeuralNetClassifier,
}


def register_classifier(tag: str, factory: ClassifierFactory) -> None:
    """Make ``factory`` selectable as ``Configuration(classifier=tag)``."""
    CLASSIFIER_REGISTRY[tag.strip().lower()] = factory


def create_classifier(
    configuration: Optional[Configuration] = None,
    log_fn: Optional[Callable[[str], None]] = None,
) -> Classifier:
    """Instantiate the classifier selected by ``configuration.classifier``."""
    configuration = configuration or Configuration.default()
    classifier = CLASSIFIER_REGISTRY[configuration.classifier](configuration)
    if log_fn is not None:
        classifier._log_fn = log_fn
    return classifier
