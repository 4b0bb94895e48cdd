"""
features.py

Feature identities and the sparse / dense numeric vectors built over them.

Main pieces
-----------
- NGram           → an ordered tuple of words identified by its joined span
- NGramRegistry   → interning table so equal spans share one NGram instance
- FeatureSpace    → ordered, duplicate-free list of features (dense ordering)
- FeatureVector   → insertion-ordered mapping feature → float

Quick usage
-----------
    from learnedintent.features import FeatureVector, NGramRegistry

    registry = NGramRegistry()
    red, dog = registry.get(["red"]), registry.get(["dog"])

    vector = FeatureVector([red], [2.0])
    vector.to_dense_vector([red, dog])      # {red: 2.0, dog: 0.0}
"""

from __future__ import annotations

import math
import threading
from typing import (
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

import numpy as np


class Feature(Protocol):
    """Anything usable as a vector dimension: hashable, identified by a string."""

    feature: str

    def __hash__(self) -> int: ...


# ---------------------------------------------------------------------------
# N-grams and their interning table
# ---------------------------------------------------------------------------


class NGram:
    """
    A contiguous run of words.

    Two n-grams with the same span (the words joined by a single space) are
    equal and hash identically, whatever their object identity. Use an
    :class:`NGramRegistry` to also share the instance.
    """

    __slots__ = ("words", "feature")

    def __init__(self, words: Sequence[str]) -> None:
        if not words:
            raise ValueError("An n-gram needs at least one word.")
        self.words: Tuple[str, ...] = tuple(words)
        self.feature: str = " ".join(self.words)

    @property
    def order(self) -> int:
        return len(self.words)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, NGram):
            return NotImplemented
        return self.feature == other.feature

    def __hash__(self) -> int:
        return hash(self.feature)

    def __lt__(self, other: "NGram") -> bool:
        return self.feature < other.feature

    def __str__(self) -> str:
        return self.feature

    def __repr__(self) -> str:
        return "(" + ", ".join(self.words) + ")"


class NGramRegistry:
    """
    Interning table for :class:`NGram` instances, keyed by span.

    Components that mine or look up n-grams accept a registry explicitly;
    callers that do not care share :data:`DEFAULT_REGISTRY`.
    """

    def __init__(self) -> None:
        self._ngrams: Dict[str, NGram] = {}
        self._lock = threading.Lock()

    def get(self, words: Union[str, Sequence[str]]) -> NGram:
        """Return the canonical n-gram for ``words`` (a span or a word list)."""
        if isinstance(words, str):
            words = words.split(" ")
        span = " ".join(words)
        cached = self._ngrams.get(span)
        if cached is not None:
            return cached
        with self._lock:
            return self._ngrams.setdefault(span, NGram(words))

    def __getstate__(self):
        return {"ngrams": dict(self._ngrams)}

    def __setstate__(self, state) -> None:
        self._ngrams = state["ngrams"]
        self._lock = threading.Lock()

    def lookup(self, span: str) -> Optional[NGram]:
        return self._ngrams.get(span)

    def clear(self) -> None:
        self._ngrams.clear()

    def __contains__(self, item: object) -> bool:
        if isinstance(item, NGram):
            item = item.feature
        return item in self._ngrams

    def __len__(self) -> int:
        return len(self._ngrams)


DEFAULT_REGISTRY = NGramRegistry()


def ngram(*words: str) -> NGram:
    """Shortcut into :data:`DEFAULT_REGISTRY`: ``ngram("red", "dog")``."""
    return DEFAULT_REGISTRY.get(list(words))


# ---------------------------------------------------------------------------
# Feature space
# ---------------------------------------------------------------------------


class FeatureSpace:
    """
    Ordered, duplicate-free sequence of features.

    The order is the canonical column order of every dense vector and matrix
    built for the corpus that owns the space. Appending an already present
    feature is a no-op.
    """

    def __init__(self, features: Optional[Iterable[Hashable]] = None) -> None:
        self._features: List[Hashable] = []
        self._index: Dict[Hashable, int] = {}
        for feature in features or ():
            self.append(feature)

    def append(self, feature: Hashable) -> None:
        if feature is None:
            raise ValueError("Cannot add None to a feature space.")
        if feature in self._index:
            return
        self._index[feature] = len(self._features)
        self._features.append(feature)

    def extend(self, features: Iterable[Hashable]) -> None:
        for feature in features:
            self.append(feature)

    def index_of(self, feature: Hashable) -> int:
        """Position of ``feature``, or -1 when it is not part of the space."""
        return self._index.get(feature, -1)

    def spans(self) -> List[str]:
        return [getattr(f, "feature", str(f)) for f in self._features]

    def is_empty(self) -> bool:
        return not self._features

    def __contains__(self, feature: object) -> bool:
        return feature in self._index

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._features)

    def __len__(self) -> int:
        return len(self._features)

    def __getitem__(self, i):
        return self._features[i]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FeatureSpace):
            return self._features == other._features
        if isinstance(other, (list, tuple)):
            return self._features == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"FeatureSpace({self.spans()!r})"


# ---------------------------------------------------------------------------
# Feature vectors
# ---------------------------------------------------------------------------


def _span(feature: Hashable) -> str:
    return getattr(feature, "feature", str(feature))


class FeatureVector:
    """
    Insertion-ordered mapping from feature to value.

    A feature appears at most once; adding it again overwrites the value.
    Sparse vectors simply omit zero-valued features, dense vectors list every
    feature of a feature space (see :meth:`to_dense_vector`).
    """

    def __init__(
        self,
        features: Optional[Sequence[Hashable]] = None,
        values: Optional[Sequence[float]] = None,
    ) -> None:
        self._values: Dict[Hashable, float] = {}
        if features is None and values is None:
            return
        if features is None or values is None:
            raise ValueError("Both features and values are required together.")
        if len(features) != len(values):
            raise ValueError(
                "The features and values have different lengths "
                f"({len(features)} vs {len(values)}); they need to correspond."
            )
        for feature, value in zip(features, values):
            self.add_feature(feature, value)

    @classmethod
    def from_mapping(cls, mapping: Dict[Hashable, float]) -> "FeatureVector":
        vector = cls()
        for feature, value in mapping.items():
            vector.add_feature(feature, value)
        return vector

    # ------------------------------------------------------------------
    # Mapping behaviour
    # ------------------------------------------------------------------

    def add_feature(self, feature: Hashable, value: float) -> None:
        if feature is None:
            raise ValueError("The feature is None.")
        if value is None:
            raise ValueError("The value is None.")
        self._values[feature] = float(value)

    def get_value(self, feature: Hashable) -> float:
        return self._values.get(feature, 0.0)

    @property
    def features(self) -> List[Hashable]:
        return list(self._values)

    @property
    def values(self) -> List[float]:
        return list(self._values.values())

    def items(self):
        return self._values.items()

    def size(self) -> int:
        return len(self._values)

    def is_empty(self) -> bool:
        return not self._values

    def is_zero_vector(self) -> bool:
        """True for an empty vector or one whose values sum to exactly 0."""
        if self.is_empty():
            return True
        return math.fsum(self._values.values()) == 0.0

    def copy(self) -> "FeatureVector":
        return FeatureVector.from_mapping(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._values)

    def __contains__(self, feature: object) -> bool:
        return feature in self._values

    def __getitem__(self, feature: Hashable) -> float:
        return self._values[feature]

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, FeatureVector):
            return NotImplemented
        return self._values == other._values

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        body = ", ".join(f"{_span(f)}={v}" for f, v in self._values.items())
        return f"[{body}]"

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: "FeatureVector") -> "FeatureVector":
        """Element-wise sum over the union of both vectors' features."""
        total = FeatureVector()
        for feature in list(self._values) + [f for f in other if f not in self._values]:
            total.add_feature(feature, self.get_value(feature) + other.get_value(feature))
        return total

    def norm(self) -> float:
        return math.sqrt(sum(v * v for v in self._values.values()))

    def cosine_similarity(self, other: "FeatureVector") -> float:
        """Cosine of the angle between both vectors; 0.0 when either is all-zero."""
        norm_a = self.norm()
        norm_b = other.norm()
        if norm_a == 0 or norm_b == 0:
            return 0.0
        dot = sum(value * other.get_value(feature) for feature, value in self._values.items())
        return dot / (norm_a * norm_b)

    # ------------------------------------------------------------------
    # Dense / sparse conversions
    # ------------------------------------------------------------------

    def to_dense_vector(self, feature_space: Iterable[Hashable]) -> "FeatureVector":
        """
        Expand to every feature of ``feature_space``, in that order.

        Features absent from this vector get an explicit 0.0. Features of this
        vector missing from the space are kept (appended), so no non-zero value
        is ever lost.
        """
        if feature_space is None:
            raise ValueError("The feature space is None.")
        dense = FeatureVector()
        for feature in feature_space:
            dense.add_feature(feature, 0.0)
        dense._values.update(self._values)
        return dense

    def to_sparse_vector(self) -> "FeatureVector":
        """Drop exact-zero entries, keeping the order of the remaining ones."""
        return FeatureVector.from_mapping({f: v for f, v in self._values.items() if v != 0.0})

    def to_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=float)

    def to_binary_array(self, threshold: float) -> np.ndarray:
        """1 where the value is at least ``threshold``, 0 elsewhere."""
        return (self.to_array() >= threshold).astype(int)

    def sorted(self) -> "FeatureVector":
        """Copy ordered by value (highest first), ties broken by span."""
        ordered = sorted(self._values.items(), key=lambda kv: (-kv[1], _span(kv[0])))
        return FeatureVector.from_mapping(dict(ordered))

    # ------------------------------------------------------------------
    # Helpers over several vectors
    # ------------------------------------------------------------------

    @staticmethod
    def to_matrix(vectors: Sequence["FeatureVector"]) -> np.ndarray:
        """Stack dense vectors row-wise; all rows must share a length."""
        if not vectors:
            return np.zeros((0, 0), dtype=float)
        width = vectors[0].size()
        for i, vector in enumerate(vectors):
            if vector.size() != width:
                raise ValueError(
                    f"Vector {i} has {vector.size()} dimensions, expected {width}. "
                    "Densify all vectors against the same feature space first."
                )
        return np.vstack([v.to_array() for v in vectors])

    @staticmethod
    def to_binary_matrix(vectors: Sequence["FeatureVector"], threshold: float) -> np.ndarray:
        return (FeatureVector.to_matrix(vectors) >= threshold).astype(int)

    @staticmethod
    def centroid(
        vectors: Sequence["FeatureVector"],
        feature_space: Optional[Sequence[Hashable]],
    ) -> "FeatureVector":
        """Mean of ``vectors`` after densifying each against ``feature_space``."""
        if feature_space is None:
            raise ValueError("The feature space is None.")
        if len(feature_space) == 0:
            raise ValueError("The feature space is empty.")
        total = FeatureVector().to_dense_vector(feature_space)
        for vector in vectors:
            total = total.add(vector.to_dense_vector(feature_space))
        if not vectors:
            return total
        n = float(len(vectors))
        return FeatureVector.from_mapping({f: v / n for f, v in total.items()})
