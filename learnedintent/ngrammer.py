"""
ngrammer.py

Corpus-aware n-gram mining.

The :class:`NGrammer` builds the shared feature space of a corpus from its
tokenized documents, records corpus-wide n-gram counts, and then assigns each
document the n-grams it contains that made the corpus-level cut.

Mining is bottom-up: an order-``n`` candidate is only considered when both its
``n-1`` prefix and suffix were admitted at order ``n-1``, and never when one of
its tokens is the break marker. Every order from 1 to ``max_length`` is mined
(higher orders depend on lower ones) before trimming to
``[min_length, max_length]``.

Quick usage
-----------
    ngrammer = NGrammer(1, 2, minimum_frequency=2)
    ngrammer.ngram_corpus(corpus)      # documents must be tokenized
    corpus.feature_space.spans()
"""

from __future__ import annotations

import string
import sys
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .configuration import Configuration
from .documents import Corpus, Document, DocumentStateError, map_documents
from .features import DEFAULT_REGISTRY, FeatureSpace, NGram, NGramRegistry
from .text_processing import is_break

_PUNCTUATION = frozenset(string.punctuation)

# One list of (words, count) per order; index 0 is the empty order.
_Levels = List[List[Tuple[Tuple[str, ...], int]]]


def _is_punctuation(token: str) -> bool:
    return bool(token) and all(c in _PUNCTUATION for c in token)


def extract_ngrams(sentences: Sequence[Sequence[str]], max_order: int) -> _Levels:
    """
    Mine n-grams of every order up to ``max_order`` from token sequences.

    Returns
    -------
    levels:
        ``levels[n]`` lists ``(words, count)`` for every admitted n-gram of
        order ``n``, most frequent first, ties in order of first occurrence.
    """
    levels: _Levels = [[]]
    admitted_previous: set = set()

    for n in range(1, max_order + 1):
        candidates: Counter = Counter()
        for tokens in sentences:
            for i in range(len(tokens) - n + 1):
                words = tuple(tokens[i:i + n])
                if n > 1 and (
                    words[:-1] not in admitted_previous
                    or words[1:] not in admitted_previous
                ):
                    continue
                if any(is_break(w) for w in words):
                    continue
                candidates[words] += 1

        level = [
            (words, count)
            for words, count in candidates.items()
            if not (n == 1 and _is_punctuation(words[0]))
        ]
        # Counter keeps first-insertion order, so a stable sort by count
        # leaves ties in order of first occurrence.
        level.sort(key=lambda wc: -wc[1])
        levels.append(level)
        admitted_previous = {words for words, _ in level}

    return levels


class NGrammer:
    """
    Build a corpus feature space from n-grams and count them per document.

    Parameters
    ----------
    min_length, max_length:
        Inclusive range of n-gram orders kept as features.
    minimum_frequency, maximum_frequency:
        Corpus-wide occurrence bounds (inclusive) for a feature.
    registry:
        Interning table for the produced :class:`NGram` objects.
    serial_mode:
        Count per-document n-grams sequentially instead of on a thread pool.
    log_fn:
        Optional callable for progress messages.
    """

    def __init__(
        self,
        min_length: int,
        max_length: int,
        minimum_frequency: int = 1,
        maximum_frequency: int = sys.maxsize,
        registry: Optional[NGramRegistry] = None,
        serial_mode: bool = False,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        if min_length > max_length:
            raise ValueError(
                f"min_length ({min_length}) is greater than max_length ({max_length})."
            )
        if min_length < 1:
            raise ValueError("min_length must be at least 1.")
        self.min_length = min_length
        self.max_length = max_length
        self.minimum_frequency = minimum_frequency
        self.maximum_frequency = maximum_frequency
        self.registry = registry if registry is not None else DEFAULT_REGISTRY
        self.serial_mode = serial_mode
        self._log_fn = log_fn or (lambda _msg: None)

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        registry: Optional[NGramRegistry] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> "NGrammer":
        return cls(
            configuration.ngram_min_range,
            configuration.ngram_max_range,
            minimum_frequency=configuration.minimum_token_frequency,
            maximum_frequency=configuration.maximum_token_frequency,
            registry=registry,
            serial_mode=configuration.serial_mode,
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

    def ngram_document(self, document: Document) -> None:
        """
        N-gram a single document.

        The document is wrapped in a one-document corpus that inherits the
        document's feature space, if it already has one.
        """
        corpus = Corpus([document])
        if document.feature_space is not None:
            corpus.set_feature_space(document.feature_space)
        self.ngram_corpus(corpus)

    def ngram_corpus(self, corpus: Corpus) -> None:
        """
        Mine the corpus feature space (unless one is set) and count the
        feature n-grams of every document.

        Raises
        ------
        DocumentStateError
            If a document has not been tokenized.
        """
        for document in corpus:
            if document.tokens is None:
                raise DocumentStateError(
                    "A given document is not tokenized. All documents in the corpus "
                    f"need to be tokenized: {document}"
                )

        if corpus.feature_space is None or corpus.feature_space.is_empty():
            self._mine_feature_space(corpus)

        # matched by span so counting never interns n-grams outside the space
        by_span = {f.feature: f for f in corpus.feature_space if isinstance(f, NGram)}
        map_documents(
            corpus,
            lambda d: self._count_document(d, by_span),
            serial_mode=self.serial_mode,
        )

    # ------------------------------------------------------------------
    # Internal helpers – corpus and document passes
    # ------------------------------------------------------------------

    def _mine_feature_space(self, corpus: Corpus) -> None:
        levels = extract_ngrams([d.tokens for d in corpus], self.max_length)
        feature_space = FeatureSpace()
        for order in range(self.min_length, self.max_length + 1):
            for words, count in levels[order]:
                if count < self.minimum_frequency or count > self.maximum_frequency:
                    continue
                ngram = self.registry.get(words)
                corpus.set_ngram_count(ngram, count)
                feature_space.append(ngram)
        corpus.set_feature_space(feature_space)
        self._log(f"[NGrammer] Found {len(feature_space)} unique n-grams in the corpus.")

    def _count_document(self, document: Document, by_span: Dict[str, NGram]) -> None:
        levels = extract_ngrams([document.tokens], self.max_length)
        counts: Dict[NGram, int] = {}
        for level in levels:
            for words, count in level:
                ngram = by_span.get(" ".join(words))
                if ngram is not None:
                    counts[ngram] = count
        document.clear_ngrams()
        for ngram, count in counts.items():
            document.set_ngram_count(ngram, count)
