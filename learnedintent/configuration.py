"""
configuration.py

Validated options shared by the normalizer, n-grammer, vectorizers and
classifiers.

A :class:`Configuration` is an immutable pydantic model that is passed
explicitly to every component that needs it; there is no process-wide
mutable default. Derive variants with :meth:`Configuration.with_updates`.

Option names follow Python conventions, and the camelCase names used by
existing experiment settings (``minimumTokenLength``, ``nGramMaxRange``,
``classifierClass``, ...) are accepted as aliases:

    cfg = Configuration.from_mapping({"nGramMaxRange": 3, "stem": True})
    cfg.ngram_max_range   # 3
"""

from __future__ import annotations

import sys
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .documents import Words


class Configuration(BaseModel):
    """
    Text processing, feature extraction and training options.

    Attributes
    ----------
    stop_words, allowed_words, break_words:
        User word lists. Stop words are dropped, allowed words always kept,
        break words replaced by the break marker.
    break_on_special_characters:
        Insert the break marker where numbers, stop words, short tokens or
        punctuation were removed, so n-grams never bridge them.
    minimum_token_length:
        Tokens shorter than this are removed during normalization.
    minimum_token_frequency, maximum_token_frequency:
        Corpus-wide occurrence bounds for an n-gram to become a feature.
    ngram_min_range, ngram_max_range:
        Inclusive range of n-gram orders used as features.
    stem, lemmatize:
        Enable Porter stemming / lemmatization during normalization.
    keep_digit_placeholder:
        Replace numbers and logical operators by placeholder tokens instead
        of removing them.
    remove_parenthetical_text:
        Drop text between (innermost) parentheses.
    l2_normalize:
        L2-normalize TF-IDF vectors.
    serial_mode:
        Process documents one after the other instead of on a thread pool.
    trace_enabled:
        Record text / vector history on documents created internally.
    classifier:
        Tag of the classifier implementation (see
        :data:`learnedintent.classification.CLASSIFIER_REGISTRY`).
    lambda_, max_training_iterations, training_tolerance:
        Regularization and convergence settings for iterative classifiers.
    max_decision_tree_nodes, number_of_trees, features_per_tree:
        Tree classifier settings; ``features_per_tree <= 0`` means
        "square root of the number of features".
    max_training_data_per_class_size:
        Cap on training examples per category; ``<= 0`` means no cap.
    test_data_percentage, random_seed:
        Ground-truth hold-out share and shuffle seed.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="forbid",
    )

    stop_words: Words = Field(default_factory=Words, alias="stopWords")
    allowed_words: Words = Field(default_factory=Words, alias="allowedWords")
    break_words: Words = Field(default_factory=Words, alias="breakWords")
    break_on_special_characters: bool = Field(True, alias="breakOnSpecialCharacters")
    minimum_token_length: int = Field(1, ge=0, alias="minimumTokenLength")
    minimum_token_frequency: int = Field(2, ge=0, alias="minimumTokenFrequency")
    maximum_token_frequency: int = Field(sys.maxsize, ge=0, alias="maximumTokenFrequency")
    ngram_min_range: int = Field(1, ge=1, alias="nGramMinRange")
    ngram_max_range: int = Field(2, ge=1, alias="nGramMaxRange")
    stem: bool = False
    lemmatize: bool = False
    keep_digit_placeholder: bool = Field(False, alias="keepDigitPlaceholder")
    remove_parenthetical_text: bool = Field(False, alias="removeParentheticalText")
    l2_normalize: bool = Field(True, alias="l2Normalize")
    serial_mode: bool = Field(False, alias="serialMode")
    trace_enabled: bool = Field(False, alias="traceEnabled")
    classifier: str = Field("maxent", alias="classifierClass")
    lambda_: float = Field(1e-6, ge=0.0, alias="lambda")
    max_training_iterations: int = Field(1000, ge=1, alias="maxTrainingIterations")
    training_tolerance: float = Field(1e-3, gt=0.0, alias="trainingTolerance")
    max_decision_tree_nodes: int = Field(600, ge=2, alias="maxDecisionTreeNodes")
    number_of_trees: int = Field(50, ge=1, alias="numberOfTrees")
    features_per_tree: int = Field(-1, alias="featuresPerTree")
    max_training_data_per_class_size: int = Field(-1, alias="maxTrainingDataPerClassSize")
    test_data_percentage: float = Field(0.10, gt=0.0, le=1.0, alias="testDataPercentage")
    random_seed: int = Field(23, alias="randomSeed")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @field_validator("stop_words", "allowed_words", "break_words", mode="before")
    @classmethod
    def _as_words(cls, value: Optional[Iterable[str]]) -> Words:
        if value is None:
            return Words()
        if isinstance(value, Words):
            return value
        return Words(value)

    @field_validator("classifier")
    @classmethod
    def _known_classifier(cls, value: str) -> str:
        from .classification import CLASSIFIER_REGISTRY

        tag = value.strip().lower()
        if tag not in CLASSIFIER_REGISTRY:
            known = ", ".join(sorted(CLASSIFIER_REGISTRY))
            raise ValueError(f"Unknown classifier '{value}'. Known classifiers: {known}.")
        return tag

    @model_validator(mode="after")
    def _check_ranges(self) -> "Configuration":
        if self.ngram_min_range > self.ngram_max_range:
            raise ValueError(
                f"ngram_min_range ({self.ngram_min_range}) cannot be greater than "
                f"ngram_max_range ({self.ngram_max_range})."
            )
        if self.minimum_token_frequency > self.maximum_token_frequency:
            raise ValueError(
                f"minimum_token_frequency ({self.minimum_token_frequency}) cannot be greater "
                f"than maximum_token_frequency ({self.maximum_token_frequency})."
            )
        return self

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def default(cls) -> "Configuration":
        """A fresh configuration with every option at its default."""
        return cls()

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "Configuration":
        """Build from a dict of options (snake_case or camelCase names)."""
        return cls.model_validate(dict(options))

    def with_updates(self, **changes: Any) -> "Configuration":
        """Validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)
