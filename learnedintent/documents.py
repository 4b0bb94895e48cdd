"""
documents.py

Documents, corpora and the small containers that travel with them.

A :class:`Document` keeps its original text untouched and records every
transformation (normalization, stemming, ...) under a named history entry,
together with its tokens, n-gram counts, feature space and vectors.

A :class:`Corpus` is an ordered list of documents that share one feature
space and one corpus-wide n-gram count table.

Quick usage
-----------
    from learnedintent.documents import Corpus, Document

    corpus = Corpus([Document("Age >= 18 years"), Document("ANC >= 1500/uL")])
    for document in corpus:
        print(document.text)
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import MappingProxyType
from typing import (
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

import pandas as pd

from .features import FeatureSpace, FeatureVector, NGram


class DocumentStateError(RuntimeError):
    """A document or corpus is not in the state an operation requires."""


# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------


class Words(set):
    """
    A plain set of words (stop words, allowed words, break words, ...).

    Word files hold one word per line; blank lines and lines starting with
    ``#`` are skipped.
    """

    def __init__(self, words: Iterable[str] = ()) -> None:
        if isinstance(words, str):
            words = [words]
        super().__init__(words)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Words":
        words = cls()
        with open(path, encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if line and not line.startswith("#"):
                    words.add(line)
        return words

    @classmethod
    def load_optional(
        cls,
        path: Optional[Union[str, Path]],
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> "Words":
        """
        Load a word file if it can be read; otherwise return an empty set.

        A missing or unreadable file only disables the word list, it does not
        stop the caller.
        """
        if path is None:
            return cls()
        try:
            return cls.from_file(path)
        except OSError as exc:
            if log_fn is not None:
                log_fn(f"[Words] Could not read word file {path}: {exc}. Using an empty list.")
            return cls()


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


INITIAL_TEXT = "Initial Text"


class Document:
    """
    A piece of text and everything derived from it.

    Equality and hashing use the stripped original text, so two documents
    built from the same sentence collapse into one entry of a set or a dict
    key, whatever their ids.

    Parameters
    ----------
    text:
        Original text. Never modified afterwards.
    id:
        Optional identifier, shown by ``str(document)``.
    trace:
        When ``False``, text and vector history are not recorded (the current
        text and vector are still updated).
    """

    def __init__(self, text: str, id: Optional[str] = None, trace: bool = True) -> None:
        if text is None:
            raise ValueError("Document text is None.")
        self.id = id
        self.trace = trace
        self._original_text = text
        self._text = text
        self.text_history: Dict[str, str] = {}
        self.tokens: Optional[List[str]] = None
        self._ngram_counts: Dict[NGram, int] = {}
        self._ngrammed = False
        self.feature_space: Optional[FeatureSpace] = None
        self.vector: Optional[FeatureVector] = None
        self.vector_history: Dict[str, FeatureVector] = {}
        self.set_text(INITIAL_TEXT, text)

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    @property
    def original_text(self) -> str:
        return self._original_text

    @property
    def text(self) -> str:
        return self._text

    def set_text(self, operation: str, text: str) -> None:
        """Replace the current text, recording it under ``operation``."""
        if text is None:
            raise ValueError("Text was None.")
        self._text = text
        if self.trace:
            # re-inserting moves the entry to the end: most recent wins
            self.text_history.pop(operation, None)
            self.text_history[operation] = text

    def set_tokens(self, tokens: Sequence[str]) -> None:
        if tokens is None:
            raise ValueError("Tokens were None.")
        self.tokens = list(tokens)

    def set_vector(self, name: str, vector: FeatureVector) -> None:
        if vector is None:
            raise ValueError("The vector was None.")
        self.vector = vector
        if self.trace:
            self.vector_history.pop(name, None)
            self.vector_history[name] = vector

    # ------------------------------------------------------------------
    # N-grams
    # ------------------------------------------------------------------

    @property
    def ngrams(self) -> List[NGram]:
        return list(self._ngram_counts)

    @property
    def ngram_counts(self) -> Mapping[NGram, int]:
        return MappingProxyType(self._ngram_counts)

    def get_ngram_count(self, ngram: NGram) -> int:
        return self._ngram_counts.get(ngram, 0)

    @property
    def is_ngrammed(self) -> bool:
        """True once an n-grammer has processed this document (even with no hits)."""
        return self._ngrammed

    def set_ngram_count(self, ngram: NGram, count: int) -> None:
        self._ngram_counts[ngram] = int(count)
        self._ngrammed = True

    def clear_ngrams(self) -> None:
        """Forget all n-grams; the document counts as n-grammed with none found."""
        self._ngram_counts.clear()
        self._ngrammed = True

    # ------------------------------------------------------------------
    # Identity and display
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Document):
            return NotImplemented
        return self._original_text.strip() == other._original_text.strip()

    def __hash__(self) -> int:
        return hash(self._original_text.strip())

    def __str__(self) -> str:
        if self.id is None:
            return self._original_text
        return f"{self.id} - {self._original_text}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, text={self._original_text!r})"

    def to_verbose_string(self) -> str:
        """Multi-line dump of the text history, tokens, n-grams and vectors."""
        lines = [f"{name}: {text}" for name, text in self.text_history.items()]
        if self.tokens is not None:
            lines.append(f"Tokens: {self.tokens}")
        counts = ", ".join(f"{ng!r}={c}" for ng, c in self._ngram_counts.items())
        lines.append("NGrams: {" + counts + "}")
        if self.feature_space is not None:
            lines.append(f"Feature Space: {self.feature_space.spans()}")
        for name, vector in self.vector_history.items():
            lines.append(f"{name}: {vector}")
        return "\n|-> ".join(lines)

    @staticmethod
    def texts(documents: Iterable["Document"]) -> List[str]:
        """Current text of each document."""
        if documents is None:
            raise ValueError("The document collection is None.")
        return [d.text for d in documents]


class DocumentWithPrediction(Document):
    """A document carrying a predicted category and its confidence."""

    def __init__(
        self,
        text: str,
        prediction: Optional[str] = None,
        confidence: float = math.nan,
        id: Optional[str] = None,
        trace: bool = True,
    ) -> None:
        super().__init__(text, id=id, trace=trace)
        self.prediction = prediction
        self.confidence = confidence

    def __str__(self) -> str:
        return f"{super().__str__()}\nPrediction: {self.prediction} ({self.confidence})"


# ---------------------------------------------------------------------------
# Corpus
# ---------------------------------------------------------------------------


class Corpus:
    """
    Ordered documents sharing one feature space and one n-gram count table.

    The feature space and the counts are written once by the n-grammer and
    are read-only for every later stage.
    """

    def __init__(self, documents: Iterable[Document]) -> None:
        if documents is None:
            raise ValueError("The document list is None.")
        self.documents: List[Document] = list(documents)
        self._feature_space: Optional[FeatureSpace] = None
        self._ngram_counts: Dict[NGram, int] = {}

    @property
    def feature_space(self) -> Optional[FeatureSpace]:
        return self._feature_space

    def set_feature_space(self, feature_space: Optional[FeatureSpace]) -> None:
        """Set the shared feature space on the corpus and on every document."""
        self._feature_space = feature_space
        for document in self.documents:
            document.feature_space = feature_space

    @property
    def ngram_counts(self) -> Mapping[NGram, int]:
        return MappingProxyType(self._ngram_counts)

    def get_ngram_count(self, ngram: NGram) -> int:
        return self._ngram_counts.get(ngram, 0)

    def set_ngram_count(self, ngram: NGram, count: int) -> None:
        self._ngram_counts[ngram] = int(count)

    def remove_documents(self, predicate: Callable[[Document], bool]) -> List[Document]:
        """Drop every document matching ``predicate``; return the removed ones."""
        removed = [d for d in self.documents if predicate(d)]
        if removed:
            self.documents = [d for d in self.documents if not predicate(d)]
        return removed

    def size(self) -> int:
        return len(self.documents)

    def __len__(self) -> int:
        return len(self.documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.documents)

    def __getitem__(self, i: int) -> Document:
        return self.documents[i]

    def to_matrix_frame(self) -> pd.DataFrame:
        """
        Feature × document table of the current document vectors.

        Rows follow the feature space order, one column per document (labelled
        by id when present, by position otherwise).
        """
        if self._feature_space is None:
            raise DocumentStateError("The corpus has no feature space yet.")
        columns = {}
        for i, document in enumerate(self.documents):
            label = document.id if document.id is not None else i
            vector = document.vector or FeatureVector()
            columns[label] = [vector.get_value(f) for f in self._feature_space]
        return pd.DataFrame(columns, index=self._feature_space.spans())

    def __str__(self) -> str:
        lines = [f"Corpus: {self.size()} document(s)"]
        if self._feature_space is not None:
            counts = ", ".join(f"{ng!r}={c}" for ng, c in self._ngram_counts.items())
            lines.append("Feature Space: {" + counts + "}")
        return "\n|-> ".join(lines)


# ---------------------------------------------------------------------------
# Fork-join helper for per-document stages
# ---------------------------------------------------------------------------

T = TypeVar("T")


def map_documents(
    documents: Iterable[Document],
    fn: Callable[[Document], T],
    serial_mode: bool = False,
    max_workers: Optional[int] = None,
) -> List[T]:
    """
    Apply ``fn`` to every document and wait for all of them.

    With ``serial_mode`` the documents are processed in order on the calling
    thread; otherwise a thread pool is used. Results come back in document
    order either way, and the first exception raised by ``fn`` propagates.
    """
    documents = list(documents)
    if serial_mode or len(documents) < 2:
        return [fn(d) for d in documents]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(fn, documents))
