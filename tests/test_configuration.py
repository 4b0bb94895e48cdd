"""Tests for the validated configuration model."""

from __future__ import annotations

import sys

import pytest
from pydantic import ValidationError

from learnedintent.configuration import Configuration
from learnedintent.documents import Words


def test_defaults() -> None:
    cfg = Configuration.default()
    assert cfg.minimum_token_length == 1
    assert cfg.minimum_token_frequency == 2
    assert cfg.maximum_token_frequency == sys.maxsize
    assert (cfg.ngram_min_range, cfg.ngram_max_range) == (1, 2)
    assert cfg.break_on_special_characters is True
    assert cfg.l2_normalize is True
    assert cfg.stem is False
    assert cfg.classifier == "maxent"
    assert cfg.stop_words == Words()


def test_camel_case_aliases_are_accepted() -> None:
    cfg = Configuration.from_mapping(
        {
            "nGramMaxRange": 3,
            "minimumTokenLength": 2,
            "stopWords": ["year"],
            "classifierClass": "Naive_Bayes",
            "lambda": 0.5,
        }
    )
    assert cfg.ngram_max_range == 3
    assert cfg.minimum_token_length == 2
    assert isinstance(cfg.stop_words, Words)
    assert cfg.stop_words == {"year"}
    assert cfg.classifier == "naive_bayes"
    assert cfg.lambda_ == 0.5


def test_ngram_range_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Configuration(ngram_min_range=3, ngram_max_range=2)


def test_frequency_bounds_must_be_ordered() -> None:
    with pytest.raises(ValueError):
        Configuration(minimum_token_frequency=5, maximum_token_frequency=4)


def test_unknown_classifier_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Configuration(classifier="svm")


def test_unknown_option_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Configuration.from_mapping({"stemm": True})


def test_configuration_is_immutable() -> None:
    cfg = Configuration()
    with pytest.raises(ValidationError):
        cfg.stem = True


def test_with_updates_returns_a_validated_copy() -> None:
    cfg = Configuration(stop_words={"year"})
    updated = cfg.with_updates(stem=True, ngram_max_range=3)
    assert updated.stem is True
    assert updated.ngram_max_range == 3
    assert updated.stop_words == {"year"}
    assert cfg.stem is False
    with pytest.raises(ValidationError):
        cfg.with_updates(ngram_min_range=4)
