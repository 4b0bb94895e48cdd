"""Tests for BoW, TF-IDF, L2 and threshold vectorization."""

from __future__ import annotations

import math

import pytest

from learnedintent.configuration import Configuration
from learnedintent.documents import Corpus, Document, DocumentStateError, map_documents
from learnedintent.features import FeatureSpace, FeatureVector, NGramRegistry
from learnedintent.ngrammer import NGrammer
from learnedintent.text_processing import DocumentNormalizer, TreebankDocumentTokenizer
from learnedintent.vectorizers import (
    BOW,
    L2,
    TF_IDF,
    BoWVectorizer,
    DocumentVectorizationPipeline,
    RegexBoWVectorizer,
    TFIDFVectorizer,
    ThresholdVectorizer,
    l2_normalize,
)


@pytest.fixture
def ngrammed_corpus(criteria_corpus: Corpus, tokenizer: TreebankDocumentTokenizer, registry: NGramRegistry) -> Corpus:
    """Criteria corpus normalized (stop word "year", length >= 2, stemming) and n-grammed."""
    normalizer = DocumentNormalizer(stop_words={"year"}, minimum_token_length=2, stem=True)
    map_documents(criteria_corpus, normalizer.process_text, serial_mode=True)
    map_documents(criteria_corpus, tokenizer.tokenize, serial_mode=True)
    NGrammer(1, 2, minimum_frequency=2, registry=registry).ngram_corpus(criteria_corpus)
    return criteria_corpus


# ---------------------------------------------------------------------------
# BoW
# ---------------------------------------------------------------------------


def test_bow_counts_the_document_ngrams(ngrammed_corpus: Corpus) -> None:
    BoWVectorizer().vectorize_corpus(ngrammed_corpus)
    first = ngrammed_corpus[0]
    assert [_span(f) for f in first.vector.features] == ["ag"]
    assert first.vector.values == [1.0]
    assert list(first.vector_history) == [BOW]


def test_bow_requires_ngrams() -> None:
    with pytest.raises(DocumentStateError):
        BoWVectorizer().vectorize(Document("never n-grammed"))


def test_regex_bow_counts_whole_word_matches(registry: NGramRegistry) -> None:
    document = Document("dogs")
    document.set_text("Normalized", "dog hotdog dog ran")
    dog = registry.get(["dog"])
    cat = registry.get(["cat"])
    document.set_ngram_count(dog, 1)
    document.set_ngram_count(cat, 1)
    RegexBoWVectorizer().vectorize(document)
    assert document.vector == FeatureVector([dog], [2.0])


# ---------------------------------------------------------------------------
# TF-IDF
# ---------------------------------------------------------------------------


def test_tfidf_with_l2(ngrammed_corpus: Corpus) -> None:
    BoWVectorizer().vectorize_corpus(ngrammed_corpus)
    TFIDFVectorizer().vectorize_corpus(ngrammed_corpus)

    assert len(ngrammed_corpus.feature_space) == 6
    for document in ngrammed_corpus[:2]:
        assert [_span(f) for f in document.vector.features] == ["ag"]
        assert document.vector.values == pytest.approx([1.0])
    for document in ngrammed_corpus[2:]:
        assert document.vector.size() == 5
        assert document.vector.values == pytest.approx([0.4472] * 5, abs=1e-4)
        assert list(document.vector_history) == [BOW, TF_IDF, L2]


def test_tfidf_weights_without_l2(ngrammed_corpus: Corpus) -> None:
    BoWVectorizer().vectorize_corpus(ngrammed_corpus)
    TFIDFVectorizer(l2_normalize=False).vectorize_corpus(ngrammed_corpus)
    idf = math.log(5 / 3) + 1
    assert ngrammed_corpus[0].vector.values == pytest.approx([idf])
    assert ngrammed_corpus[2].vector.values == pytest.approx([idf / 5] * 5)


def test_idf_is_computed_once_and_reused(ngrammed_corpus: Corpus) -> None:
    BoWVectorizer().vectorize_corpus(ngrammed_corpus)
    vectorizer = TFIDFVectorizer(l2_normalize=False)
    vectorizer.vectorize_corpus(ngrammed_corpus)
    idfs = vectorizer.idfs

    extra = Corpus(list(ngrammed_corpus)[:1])
    extra.set_feature_space(ngrammed_corpus.feature_space)
    vectorizer.vectorize_corpus(extra)
    assert vectorizer.idfs is idfs

    vectorizer.reset()
    assert vectorizer.idfs is None


def test_tfidf_requires_bow(ngrammed_corpus: Corpus) -> None:
    with pytest.raises(DocumentStateError):
        TFIDFVectorizer().vectorize_corpus(ngrammed_corpus)


def test_tfidf_single_document_needs_feature_space() -> None:
    with pytest.raises(DocumentStateError):
        TFIDFVectorizer().vectorize(Document("x"))


# ---------------------------------------------------------------------------
# L2 / threshold
# ---------------------------------------------------------------------------


def test_l2_normalize_keeps_zero_vector() -> None:
    zero = FeatureVector(["a", "b"], [0.0, 0.0])
    assert l2_normalize(zero) == zero
    assert l2_normalize(FeatureVector()) == FeatureVector()


def test_l2_normalize_unit_length() -> None:
    normalized = l2_normalize(FeatureVector(["a", "b"], [3.0, 4.0]))
    assert normalized.values == pytest.approx([0.6, 0.8])
    assert normalized.norm() == pytest.approx(1.0)


def test_threshold_is_strict() -> None:
    document = Document("x")
    document.set_vector("Custom", FeatureVector(["A", "B", "C"], [0.0, 0.1, 0.2]))
    ThresholdVectorizer(0.1).vectorize(document)
    assert document.vector == FeatureVector(["C"], [1.0])


def test_threshold_requires_a_vector() -> None:
    with pytest.raises(DocumentStateError):
        ThresholdVectorizer(0.1).vectorize(Document("x"))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def test_pipeline_vectorizes_and_then_leaves_corpus_alone(
    criteria_corpus: Corpus, age_anc_configuration: Configuration
) -> None:
    messages = []
    pipeline = DocumentVectorizationPipeline(age_anc_configuration, log_fn=messages.append)
    pipeline.vectorize_corpus(criteria_corpus)

    space = criteria_corpus.feature_space
    assert isinstance(space, FeatureSpace)
    assert len(space) == 6
    assert all(d.vector is not None for d in criteria_corpus)
    assert messages

    vector = criteria_corpus[0].vector
    pipeline.vectorize_corpus(criteria_corpus)
    assert criteria_corpus.feature_space is space
    assert criteria_corpus[0].vector is vector


def _span(feature) -> str:
    return getattr(feature, "feature", str(feature))


def test_pipeline_recomputes_idfs_for_a_new_corpus(
    criteria_corpus: Corpus, age_anc_configuration: Configuration
) -> None:
    pipeline = DocumentVectorizationPipeline(age_anc_configuration)
    pipeline.vectorize_corpus(criteria_corpus)
    first_idfs = pipeline.tfidf.idfs

    other = Corpus([Document("Platelet level high"), Document("Platelet level very high")])
    pipeline.vectorize_corpus(other)
    assert pipeline.tfidf.idfs is not first_idfs
    assert all(not d.vector.is_zero_vector() for d in other)
