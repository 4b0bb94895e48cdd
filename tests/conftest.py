"""Shared test fixtures for learnedintent tests."""

from __future__ import annotations

from typing import Dict, List

import pytest

from learnedintent.configuration import Configuration
from learnedintent.documents import Corpus, Document
from learnedintent.features import NGramRegistry
from learnedintent.text_processing import DocumentNormalizer, TreebankDocumentTokenizer


CRITERIA_TEXTS = [
    "Age: 18 to 100 years",
    "Ages 18 to 100 year",
    "Absolute neutrophil count >= 1500/µL",
    "Absolute neutrophil count >= 1600/µL",
]


@pytest.fixture
def criteria_texts() -> List[str]:
    """Two age criteria followed by two neutrophil-count criteria."""
    return list(CRITERIA_TEXTS)


@pytest.fixture
def criteria_corpus(criteria_texts: List[str]) -> Corpus:
    """Fresh (unprocessed) corpus over the criteria texts, ids "1".."4"."""
    return Corpus(Document(t, id=str(i + 1)) for i, t in enumerate(criteria_texts))


@pytest.fixture
def registry() -> NGramRegistry:
    """An isolated n-gram registry."""
    return NGramRegistry()


@pytest.fixture
def tokenizer() -> TreebankDocumentTokenizer:
    return TreebankDocumentTokenizer()


@pytest.fixture
def stemming_normalizer() -> DocumentNormalizer:
    """Default normalizer (Porter stemming on, no word lists)."""
    return DocumentNormalizer()


@pytest.fixture
def age_anc_configuration() -> Configuration:
    """Settings that separate the age criteria from the neutrophil ones."""
    return Configuration(
        stop_words={"year"},
        minimum_token_length=2,
        stem=True,
        serial_mode=True,
    )


@pytest.fixture
def classification_configuration() -> Configuration:
    """Settings used to train the criteria classifiers."""
    return Configuration(
        stem=True,
        minimum_token_frequency=1,
        ngram_max_range=3,
        keep_digit_placeholder=True,
        remove_parenthetical_text=True,
        minimum_token_length=2,
        serial_mode=True,
    )


@pytest.fixture
def criteria_training_data() -> Dict[str, List[str]]:
    """Small labeled set of eligibility criteria."""
    return {
        "creatinine": [
            "Creatinine <= 1.5 mg/dL",
            "Serum creatinine within normal institutional limits",
            "Creatinine clearance >= 60 mL/min",
            "Serum creatinine <= 2.0 x upper limit of normal",
            "Creatinine < 1.5 times the institutional upper limit",
            "Adequate renal function with creatinine <= 1.5 mg/dL",
        ],
        "no-diabetes": [
            "No history of diabetes",
            "Patients with uncontrolled diabetes are excluded",
            "History of type 1 or type 2 diabetes mellitus",
            "Known diabetes mellitus requiring insulin",
            "No diabetes or diabetic neuropathy",
            "Diabetes mellitus type II not controlled by diet",
        ],
        "age": [
            "Age 18 years or older",
            "Patients aged 18 to 75 years",
            "Age >= 21 years at the time of consent",
            "Male or female aged at least 18 years",
            "Age between 18 and 65 years",
            "Adults aged 18 years and above",
        ],
    }
