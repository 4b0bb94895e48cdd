"""Tests for the document normalizer and tokenizer."""

from __future__ import annotations

import pytest

from learnedintent.configuration import Configuration
from learnedintent.documents import Document
from learnedintent.text_processing import (
    BREAK,
    LOGIC_OPERATOR_PLACEHOLDER,
    NUMBER_PLACEHOLDER,
    DocumentNormalizer,
    TreebankDocumentTokenizer,
    is_break,
    split_contractions,
)


def _normalize(normalizer: DocumentNormalizer, text: str) -> str:
    document = Document(text)
    normalizer.process_text(document)
    return document.text


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


def test_stemming_and_stop_words() -> None:
    normalizer = DocumentNormalizer(stop_words={"year"}, break_on_special_characters=False, stem=True)
    assert _normalize(normalizer, "The red beautiful dog ran over the hill.") == "red beauti dog ran hill"


def test_minimum_length_allowed_and_stop_words() -> None:
    normalizer = DocumentNormalizer(
        stop_words={"abcde"},
        allowed_words={"ab"},
        break_on_special_characters=False,
        minimum_token_length=4,
        stem=False,
    )
    assert _normalize(normalizer, "ab abc abcd abcde abcdef") == "ab abcd abcdef"


def test_hyphenated_tokens_are_split_and_cd_markers_kept() -> None:
    normalizer = DocumentNormalizer(break_on_special_characters=False, stem=False)
    assert _normalize(normalizer, "CD20-positive disease") == "cd20 positive disease"


def test_removed_stop_words_leave_one_break() -> None:
    normalizer = DocumentNormalizer(stop_words={"a", "the", "of"}, stem=False)
    assert _normalize(normalizer, "The dog is a ball of energy.") == f"dog {BREAK} ball energy"


def test_break_words_and_clause_punctuation() -> None:
    normalizer = DocumentNormalizer(allowed_words={"some", "and"}, break_words={"are"}, stem=False)
    text = "Dogs are white. Dogs are black; Some dogs are brown (not green) and tan."
    expected = (
        f"dogs {BREAK} white {BREAK} dogs {BREAK} black {BREAK} some dogs {BREAK} "
        f"brown {BREAK} green {BREAK} and tan"
    )
    assert _normalize(normalizer, text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("ÀÂàâÃãáÁàÀãäÄÃâÂ", "aaaaaaaaaaaaaaaa"),
        ("ÈÉÊËèéêëéÉèÈëËêÊ", "eeeeeeeeeeeeeeee"),
        ("ÇççÇýÝñÿÑ", "ccccyynyn"),
    ],
)
def test_accents_are_stripped(text: str, expected: str) -> None:
    normalizer = DocumentNormalizer(stem=False)
    assert _normalize(normalizer, text) == expected


def test_digit_placeholders() -> None:
    normalizer = DocumentNormalizer(stem=False, keep_digit_placeholder=True)
    assert _normalize(normalizer, "creatinine >= 1.5") == (
        f"creatinine {LOGIC_OPERATOR_PLACEHOLDER} {NUMBER_PLACEHOLDER} {BREAK} {NUMBER_PLACEHOLDER}"
    )


def test_numbers_become_breaks_without_placeholders() -> None:
    normalizer = DocumentNormalizer(stem=False)
    assert _normalize(normalizer, "platelets 100000 mm3") == f"platelets {BREAK} mm3"


def test_parenthetical_text_removal() -> None:
    normalizer = DocumentNormalizer(stem=False, remove_parenthetical_text=True)
    assert _normalize(normalizer, "hepatitis (active infection) excluded") == "hepatitis excluded"


def test_positive_and_negative_markers_survive() -> None:
    normalizer = DocumentNormalizer(stem=False)
    assert _normalize(normalizer, "her2+ and er- tumors") == f"her2+ {BREAK} er- tumors"


def test_history_records_every_stage() -> None:
    document = Document("Ages 18 to 100 years")
    DocumentNormalizer(stem=True).process_text(document)
    assert list(document.text_history) == [
        "Initial Text",
        "Normalized Text",
        "Normalized Punctuation",
        "Stemming",
        "Special Words",
    ]


def test_normalizing_twice_is_safe() -> None:
    normalizer = DocumentNormalizer()
    document = Document("Absolute neutrophil count >= 1500/µL")
    normalizer.process_text(document)
    once = document.text
    normalizer.process_text(document)
    assert isinstance(document.text, str)
    # the break marker comes back lower-cased from the second pass
    assert document.text.lower() == once.lower()


def test_empty_text_stays_a_string() -> None:
    assert DocumentNormalizer().normalize("  ...  ") == ""


def test_lemmatization_without_lemmatizer_is_logged_and_skipped() -> None:
    messages = []
    normalizer = DocumentNormalizer(stem=False, lemmatize=True, log_fn=messages.append)
    assert _normalize(normalizer, "dogs ran") == "dogs ran"
    assert any("Lemmatization" in m for m in messages)


def test_from_configuration_follows_the_options() -> None:
    cfg = Configuration(stop_words={"year"}, minimum_token_length=2, stem=True)
    normalizer = DocumentNormalizer.from_configuration(cfg)
    assert normalizer.stem is True
    assert normalizer.minimum_token_length == 2
    assert normalizer.normalize("Age: 18 to 100 years") == f"ag {BREAK}"


def test_is_break_ignores_case() -> None:
    assert is_break(BREAK)
    assert is_break(BREAK.lower())
    assert not is_break("break")


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------


def test_tokenizer_splits_contractions(tokenizer: TreebankDocumentTokenizer) -> None:
    document = Document("patients can't enroll if they've relapsed")
    tokenizer.tokenize(document)
    assert document.tokens == ["patients", "can", "not", "enroll", "if", "they", "have", "relapsed"]


def test_tokenizer_without_contraction_expansion() -> None:
    tokens = TreebankDocumentTokenizer(expand_contractions=False).split("don't")
    assert tokens == ["do", "n't"]


def test_split_contractions() -> None:
    assert split_contractions(["wo", "n't", "stop"]) == ["will", "not", "stop"]
