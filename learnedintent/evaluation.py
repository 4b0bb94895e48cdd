"""
evaluation.py

Accuracy bookkeeping for classifiers and a train/test harness.

Main pieces
-----------
- CategoryAccuracy → TP / FP / FN / TN counts of one category, with accuracy,
                     precision, recall and F1 (NaN when undefined)
- ConfusionMatrix  → one CategoryAccuracy per category, registered lazily
- GroundTruther    → split labeled data, train, test, report

Quick usage
-----------
    from learnedintent.classification import create_classifier
    from learnedintent.evaluation import GroundTruther

    gt = GroundTruther(ground_truth, create_classifier(cfg), log_fn=print)
    matrix = gt.run()
    print(gt.report())
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .classification import Classifier, TextOrDocument, as_document, create_classifier
from .configuration import Configuration
from .documents import Document


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else math.nan


def _f1(precision: float, recall: float) -> float:
    if math.isnan(precision) or math.isnan(recall):
        return math.nan
    return _ratio(2 * precision * recall, precision + recall)


def format_percentage(value: float) -> str:
    """``0.8387 → "83.9%"``; NaN stays ``"NaN"``."""
    if value is None or math.isnan(value):
        return "NaN"
    return f"{value:.1%}"


# ---------------------------------------------------------------------------
# Per-category scores
# ---------------------------------------------------------------------------


@dataclass
class CategoryAccuracy:
    """
    Prediction outcome counts for one category.

    ``test_size`` is the number of test examples that belonged to the
    category (``TP + FN``); ``train_size`` is set by whoever trained the
    classifier, for reporting only.
    """

    category: str
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    true_negatives: int = 0
    train_size: int = 0

    @property
    def test_size(self) -> int:
        return self.true_positives + self.false_negatives

    @property
    def accuracy(self) -> float:
        total = self.true_positives + self.true_negatives + self.false_positives + self.false_negatives
        return _ratio(self.true_positives + self.true_negatives, total)

    @property
    def precision(self) -> float:
        return _ratio(self.true_positives, self.true_positives + self.false_positives)

    @property
    def recall(self) -> float:
        return _ratio(self.true_positives, self.true_positives + self.false_negatives)

    @property
    def f1(self) -> float:
        return _f1(self.precision, self.recall)

    def sort_key(self):
        """Highest F1 first (NaN last), then largest training size."""
        f1 = self.f1
        return (math.isnan(f1), -f1 if not math.isnan(f1) else 0.0, -self.train_size)

    def to_dict(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "train_size": self.train_size,
            "test_size": self.test_size,
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
        }

    def __str__(self) -> str:
        return (
            f"Category: {self.category:<45}"
            f"Train Size: {self.train_size:<4}"
            f"Test Size: {self.test_size:<4}"
            f"Accuracy: {format_percentage(self.accuracy):<8}"
            f"Precision: {format_percentage(self.precision):<8}"
            f"Recall: {format_percentage(self.recall):<8}"
            f"F1: {format_percentage(self.f1)}"
        )


# ---------------------------------------------------------------------------
# Confusion matrix
# ---------------------------------------------------------------------------


class ConfusionMatrix:
    """
    Per-category accuracy over (expected, actual) registrations.

    Categories are kept in sorted order. A category first seen in
    :meth:`register` is added on the fly.

    A correct prediction is a TP for its category and a TN for every other
    one. A wrong prediction is a FN for the expected category, a FP for the
    predicted one and a TN for the rest.
    """

    def __init__(self, categories: Iterable[str]) -> None:
        categories = set(categories)
        if not categories:
            raise ValueError("At least one category is required to create a confusion matrix.")
        self._matrix: Dict[str, CategoryAccuracy] = {}
        for category in sorted(categories):
            self._matrix[category] = CategoryAccuracy(category)

    @property
    def categories(self) -> List[str]:
        return list(self._matrix)

    @property
    def matrix(self) -> Dict[str, CategoryAccuracy]:
        return self._matrix

    def __getitem__(self, category: str) -> CategoryAccuracy:
        return self._matrix[category]

    def _ensure(self, category: str) -> CategoryAccuracy:
        if category not in self._matrix:
            self._matrix[category] = CategoryAccuracy(category)
            self._matrix = dict(sorted(self._matrix.items()))
        return self._matrix[category]

    def register(self, expected: str, actual: str, weight: int = 1) -> None:
        """Record ``weight`` predictions of ``actual`` for an ``expected`` example."""
        expected_scores = self._ensure(expected)
        actual_scores = self._ensure(actual)
        if weight <= 0:
            return
        if expected == actual:
            expected_scores.true_positives += weight
        else:
            expected_scores.false_negatives += weight
            actual_scores.false_positives += weight
        for category, scores in self._matrix.items():
            if category != expected and category != actual:
                scores.true_negatives += weight

    # ------------------------------------------------------------------
    # Overall scores (micro-averaged)
    # ------------------------------------------------------------------

    def overall_precision(self) -> float:
        tp = sum(s.true_positives for s in self._matrix.values())
        fp = sum(s.false_positives for s in self._matrix.values())
        return _ratio(tp, tp + fp)

    def overall_recall(self) -> float:
        tp = sum(s.true_positives for s in self._matrix.values())
        fn = sum(s.false_negatives for s in self._matrix.values())
        return _ratio(tp, tp + fn)

    def overall_f1(self) -> float:
        return _f1(self.overall_precision(), self.overall_recall())

    def to_frame(self) -> pd.DataFrame:
        """One row per category, best F1 first."""
        rows = [s.to_dict() for s in sorted(self._matrix.values(), key=CategoryAccuracy.sort_key)]
        return pd.DataFrame(
            rows,
            columns=["category", "train_size", "test_size", "accuracy", "precision", "recall", "f1"],
        )


# ---------------------------------------------------------------------------
# Train / test harness
# ---------------------------------------------------------------------------


GroundTruth = Mapping[str, Iterable[TextOrDocument]]


class GroundTruther:
    """
    Measure a classifier against labeled ground truth.

    If the classifier is already trained, every example is used as test data.
    Otherwise, for each category with more than one example,
    ``ceil(n * test_percentage)`` examples (at least one) are drawn with a
    seeded shuffle and held out; the rest trains the classifier.

    Each held-out example is classified and its top prediction registered in
    a :class:`ConfusionMatrix`. Predictions whose probability is at or below
    ``min_threshold`` are counted in :attr:`skipped` instead.

    Parameters
    ----------
    ground_truth:
        ``category → texts or Documents``. Repeated texts within a category
        collapse into one example.
    classifier:
        The classifier under test.
    min_threshold:
        A top prediction must score above this to count, so at the default
        an example with no known feature (all scores 0.0) is skipped.
    test_percentage:
        Share of each category held out for testing.
    seed:
        Shuffle seed; the same seed gives the same split.
    log_fn:
        Optional callable for progress messages and the final report.
    """

    def __init__(
        self,
        ground_truth: GroundTruth,
        classifier: Classifier,
        min_threshold: float = 0.0,
        test_percentage: float = 0.10,
        seed: int = 23,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        if not 0.0 < test_percentage <= 1.0:
            raise ValueError(f"test_percentage must be in (0, 1], got {test_percentage}.")
        self.ground_truth = ground_truth
        self.classifier = classifier
        self.min_threshold = min_threshold
        self.test_percentage = test_percentage
        self.seed = seed
        self._log_fn = log_fn or (lambda _msg: None)

        self.train_data: Dict[str, List[Document]] = {}
        self.test_data: Dict[str, List[Document]] = {}
        self.skipped = 0
        self.confusion_matrix: Optional[ConfusionMatrix] = None

    @classmethod
    def from_configuration(
        cls,
        ground_truth: GroundTruth,
        configuration: Configuration,
        classifier: Optional[Classifier] = None,
        min_threshold: float = 0.0,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> "GroundTruther":
        """
        Harness using ``test_data_percentage`` and ``random_seed`` from
        ``configuration``; without ``classifier``, the configured one is built.
        """
        if classifier is None:
            classifier = create_classifier(configuration, log_fn=log_fn)
        return cls(
            ground_truth,
            classifier,
            min_threshold=min_threshold,
            test_percentage=configuration.test_data_percentage,
            seed=configuration.random_seed,
            log_fn=log_fn,
        )

    def _log(self, msg: str) -> None:
        try:
            self._log_fn(msg)
        except Exception:
            # Never let logging break the pipeline
            pass

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> ConfusionMatrix:
        data = {
            category: list(dict.fromkeys(as_document(e, trace=False) for e in examples))
            for category, examples in self.ground_truth.items()
        }
        self.confusion_matrix = ConfusionMatrix(data.keys())

        if self.classifier.is_trained():
            self._log("[GroundTruther] Classifier already trained; testing on all examples.")
            self.train_data = data
            self.test_data = data
        else:
            self.train_data, self.test_data = self.split(data)
            self._log(
                f"[GroundTruther] Training on {sum(map(len, self.train_data.values()))} examples, "
                f"testing on {sum(map(len, self.test_data.values()))}."
            )
            self.classifier.train(self.train_data)

        self._test()
        for category, scores in self.confusion_matrix.matrix.items():
            scores.train_size = len(self.train_data.get(category, ()))
        self._log(self.format_report())
        return self.confusion_matrix

    def split(self, data: Mapping[str, List[Document]]):
        """
        Deterministic train/test split.

        Returns ``(train, test)`` mappings; categories with a single example
        stay entirely in training.
        """
        train: Dict[str, List[Document]] = {}
        test: Dict[str, List[Document]] = {}
        for category, documents in data.items():
            documents = list(documents)
            if len(documents) > 1:
                n_test = max(1, math.ceil(len(documents) * self.test_percentage))
                shuffled = list(documents)
                random.Random(self.seed).shuffle(shuffled)
                held_out = shuffled[:n_test]
                test[category] = held_out
                held_out_set = set(held_out)
                documents = [d for d in documents if d not in held_out_set]
            train[category] = documents
        return train, test

    def report(self) -> pd.DataFrame:
        """Per-category results, best F1 first, with the overall F1 in ``attrs``."""
        if self.confusion_matrix is None:
            raise RuntimeError("run() has not been called yet.")
        frame = self.confusion_matrix.to_frame()
        frame.attrs["overall_f1"] = self.confusion_matrix.overall_f1()
        frame.attrs["skipped"] = self.skipped
        return frame

    def format_report(self) -> str:
        matrix = self.confusion_matrix
        lines = [f"Accuracy report for classifier implementation: {type(self.classifier).__name__}"]
        lines.extend(str(s) for s in sorted(matrix.matrix.values(), key=CategoryAccuracy.sort_key))
        lines.append("")
        lines.append(f"Overall F1: {format_percentage(matrix.overall_f1())}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _test(self) -> None:
        self.skipped = 0
        for expected, documents in self.test_data.items():
            for document in documents:
                results = self.classifier.classify(document)
                top = results[0]
                if top.probability <= self.min_threshold:
                    self.skipped += 1
                    continue
                if top.category != expected:
                    expected_probability = next(
                        (r.probability for r in results if r.category == expected), 0.0
                    )
                    self._log(
                        f"Expected '{expected}'({expected_probability:.2f}) but was "
                        f"'{top.category}'({top.probability:.2f}): {document.original_text}"
                    )
                self.confusion_matrix.register(expected, top.category)
        self._log(
            f"[GroundTruther] Finished testing (min_threshold={self.min_threshold}, "
            f"skipped={self.skipped})."
        )


