"""
vectorizers.py

Turn per-document n-gram counts into numeric feature vectors.

Vectorizers
-----------
- BoWVectorizer         → raw n-gram counts
- RegexBoWVectorizer    → whole-word matches of each n-gram in the current text
- TFIDFVectorizer       → size-normalized term frequency × smoothed IDF (+ L2)
- ThresholdVectorizer   → binary vector of the values above a minimum

DocumentVectorizationPipeline chains normalization, tokenization,
n-gramming, bag-of-words and TF-IDF over a whole corpus.
"""

from __future__ import annotations

import math
import re
import threading
from typing import Callable, Dict, List, Optional

from .configuration import Configuration
from .documents import Corpus, Document, DocumentStateError, map_documents
from .features import FeatureSpace, FeatureVector, NGram
from .ngrammer import NGrammer
from .text_processing import (
    DocumentNormalizer,
    DocumentTextTransformer,
    DocumentTokenizer,
    TreebankDocumentTokenizer,
)

BOW = "BoW"
TF_IDF = "TF-IDF"
L2 = "L2"
THRESHOLD = "Threshold"


def l2_normalize(vector: FeatureVector) -> FeatureVector:
    """
    Divide every component by the Euclidean norm.

    The zero vector has no direction; it is returned unchanged instead of
    turning into NaNs.
    """
    if vector.is_zero_vector():
        return vector
    norm = vector.norm()
    if norm == 0.0:
        return vector
    return FeatureVector.from_mapping({f: v / norm for f, v in vector.items()})


class DocumentVectorizer:
    """Base class: vectorize one document, or every document of a corpus."""

    def vectorize(self, document: Document) -> None:
        raise NotImplementedError

    def vectorize_corpus(self, corpus: Corpus) -> None:
        for document in corpus:
            self.vectorize(document)


# ---------------------------------------------------------------------------
# Bag of words
# ---------------------------------------------------------------------------


class BoWVectorizer(DocumentVectorizer):
    """Map every n-gram of the document to its raw occurrence count."""

    def vectorize(self, document: Document) -> None:
        if not document.is_ngrammed:
            raise DocumentStateError(
                "The BoW vectorizer needs the document n-grams; run the n-grammer first."
            )
        vector = FeatureVector()
        for ngram, count in document.ngram_counts.items():
            vector.add_feature(ngram, count)
        document.set_vector(BOW, vector)


class RegexBoWVectorizer(DocumentVectorizer):
    """
    Count whole-word matches of each document n-gram in the current text.

    Unlike :class:`BoWVectorizer` the counts come from the text itself, so
    they stay correct when the n-grams were assigned from a frozen feature
    space. Features with no match are left out.
    """

    _patterns: Dict[str, "re.Pattern[str]"] = {}
    _patterns_lock = threading.Lock()

    @classmethod
    def _pattern(cls, span: str) -> "re.Pattern[str]":
        pattern = cls._patterns.get(span)
        if pattern is None:
            with cls._patterns_lock:
                pattern = cls._patterns.setdefault(
                    span, re.compile(r"\b" + re.escape(span) + r"\b")
                )
        return pattern

    def vectorize(self, document: Document) -> None:
        vector = FeatureVector()
        for ngram in document.ngrams:
            count = len(self._pattern(ngram.feature).findall(document.text))
            if count > 0:
                vector.add_feature(ngram, count)
        document.set_vector(BOW, vector)


# ---------------------------------------------------------------------------
# TF-IDF
# ---------------------------------------------------------------------------


class TFIDFVectorizer(DocumentVectorizer):
    """
    TF-IDF weighting with a vocabulary frozen at first use.

    ``tf = count / number of distinct features in the document's BoW vector``
    and ``idf = ln((1 + N) / (1 + df)) + 1`` where ``N`` is the corpus size and
    ``df`` the corpus-level count of the n-gram.

    The IDF vector is computed from the first corpus this instance sees and
    reused for every later call, so new documents are scored against the same
    vocabulary. Call :meth:`reset` before reusing the instance on an unrelated
    corpus.

    Parameters
    ----------
    l2_normalize:
        L2-normalize each TF-IDF vector (the zero vector stays zero).
    serial_mode:
        Normalize documents sequentially instead of on a thread pool.
    """

    def __init__(self, l2_normalize: bool = True, serial_mode: bool = False) -> None:
        self.l2_normalize = l2_normalize
        self.serial_mode = serial_mode
        self._idfs: Optional[FeatureVector] = None

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "TFIDFVectorizer":
        return cls(configuration.l2_normalize, configuration.serial_mode)

    @property
    def idfs(self) -> Optional[FeatureVector]:
        return self._idfs

    def reset(self) -> None:
        """Forget the cached IDF vector."""
        self._idfs = None

    def vectorize(self, document: Document) -> None:
        if document.feature_space is None:
            raise DocumentStateError(
                "The corpus feature space is not set on the document and it is required."
            )
        corpus = Corpus([document])
        corpus.set_feature_space(document.feature_space)
        self.vectorize_corpus(corpus)

    def vectorize_corpus(self, corpus: Corpus) -> None:
        if corpus is None:
            raise ValueError("The corpus was None.")
        term_frequencies = [self._term_frequencies(d) for d in corpus]
        if self._idfs is None:
            if corpus.feature_space is None:
                raise DocumentStateError("The corpus has no feature space; run the n-grammer first.")
            self._idfs = self._inverse_document_frequencies(corpus, corpus.feature_space)

        idfs = self._idfs
        for document, tf in zip(corpus, term_frequencies):
            tfidf = FeatureVector.from_mapping(
                {f: value * idfs.get_value(f) for f, value in tf.items()}
            )
            document.set_vector(TF_IDF, tfidf)

        if self.l2_normalize:
            map_documents(
                corpus,
                lambda d: d.set_vector(L2, l2_normalize(d.vector)),
                serial_mode=self.serial_mode,
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _term_frequencies(document: Document) -> FeatureVector:
        bow = document.vector
        if bow is None:
            raise DocumentStateError(
                "The TF-IDF vectorizer requires the BoW vectorizer to run on this document first."
            )
        size = bow.size()
        return FeatureVector.from_mapping({f: value / size for f, value in bow.items()})

    @staticmethod
    def _inverse_document_frequencies(corpus: Corpus, features: FeatureSpace) -> FeatureVector:
        n = corpus.size()
        idfs = FeatureVector()
        for feature in features:
            if isinstance(feature, NGram):
                df = corpus.get_ngram_count(feature)
                idfs.add_feature(feature, math.log((1.0 + n) / (1.0 + df)) + 1.0)
        return idfs


# ---------------------------------------------------------------------------
# Threshold
# ---------------------------------------------------------------------------


class ThresholdVectorizer(DocumentVectorizer):
    """Keep (as 1.0) only the features whose value is strictly above ``minimum``."""

    def __init__(self, minimum: float = 0.0) -> None:
        self.minimum = minimum

    def vectorize(self, document: Document) -> None:
        if document.vector is None:
            raise DocumentStateError("The document has no vector to threshold.")
        vector = FeatureVector()
        for feature, value in document.vector.items():
            if value > self.minimum:
                vector.add_feature(feature, 1.0)
        document.set_vector(THRESHOLD, vector)


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


class DocumentVectorizationPipeline(DocumentVectorizer):
    """
    normalize → tokenize → n-gram → BoW → TF-IDF over a whole corpus.

    A corpus that already carries a feature space is considered vectorized
    and left untouched. Every other corpus gets its own IDF vector, so one
    pipeline can be reused across corpora.

    Parameters
    ----------
    configuration:
        Options for every stage; defaults to :meth:`Configuration.default`.
    normalizer, tokenizer, ngrammer, bow, tfidf:
        Optional stage overrides; built from ``configuration`` otherwise.
    log_fn:
        Optional callable for progress messages.
    """

    def __init__(
        self,
        configuration: Optional[Configuration] = None,
        normalizer: Optional[DocumentTextTransformer] = None,
        tokenizer: Optional[DocumentTokenizer] = None,
        ngrammer: Optional[NGrammer] = None,
        bow: Optional[DocumentVectorizer] = None,
        tfidf: Optional[TFIDFVectorizer] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.configuration = configuration or Configuration.default()
        self._log_fn = log_fn or (lambda _msg: None)
        self.normalizer = normalizer or DocumentNormalizer.from_configuration(
            self.configuration, log_fn=log_fn
        )
        self.tokenizer = tokenizer or TreebankDocumentTokenizer()
        self.ngrammer = ngrammer or NGrammer.from_configuration(self.configuration, log_fn=log_fn)
        self.bow = bow or BoWVectorizer()
        self.tfidf = tfidf or TFIDFVectorizer.from_configuration(self.configuration)

    def _log(self, msg: str) -> None:
        try:
            self._log_fn(msg)
        except Exception:
            # Never let logging break the pipeline
            pass

    def vectorize(self, document: Document) -> None:
        self.vectorize_corpus(Corpus([document]))

    def vectorize_corpus(self, corpus: Corpus) -> None:
        if corpus.feature_space is not None:
            return
        serial = self.configuration.serial_mode

        self._log(f"[Vectorization] Normalizing {corpus.size()} documents…")
        map_documents(corpus, self.normalizer.process_text, serial_mode=serial)
        self._log("[Vectorization] Tokenizing…")
        map_documents(corpus, self.tokenizer.tokenize, serial_mode=serial)
        self._log("[Vectorization] N-gramming…")
        self.ngrammer.ngram_corpus(corpus)
        self._log("[Vectorization] Calculating BoW vectors…")
        map_documents(corpus, self.bow.vectorize, serial_mode=serial)
        self._log("[Vectorization] Calculating TF-IDF vectors…")
        # a freshly mined feature space invalidates IDFs from an earlier corpus
        self.tfidf.reset()
        self.tfidf.vectorize_corpus(corpus)
        self._log(f"[Vectorization] Done. Vectorized {corpus.size()} documents.")
