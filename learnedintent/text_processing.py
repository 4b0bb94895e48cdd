"""
text_processing.py

Text normalization and tokenization for eligibility-criteria documents.

Main features
-------------
- Lowercasing, Unicode compatibility normalization and accent stripping.
- Punctuation cleanup that keeps clinically meaningful symbols: trailing
  ``+`` / ``-`` ("her2+", "er-"), comparison operators, ``cd20``-style names.
- Break markers (:data:`BREAK`) where sentences, clauses, stop words, numbers
  or short tokens were removed, so later n-grams never bridge them.
- Optional Porter stemming (NLTK) and pluggable lemmatization.
- Treebank tokenization with contractions expanded to full words.

Quick usage
-----------
    from learnedintent.documents import Document
    from learnedintent.text_processing import DocumentNormalizer, TreebankDocumentTokenizer

    doc = Document("The big red dog ran over the hill.")
    DocumentNormalizer(stem=True).process_text(doc)
    TreebankDocumentTokenizer().tokenize(doc)
    doc.tokens   # ['big', 'red', 'dog', 'ran', 'hill']
"""

from __future__ import annotations

import re
import string
import unicodedata
from typing import Callable, Iterable, List, Optional, Protocol

from .configuration import Configuration
from .documents import Document, Words

# Reserved token marking a boundary that n-grams must not cross.
BREAK = "CTMBREAK"

NUMBER_PLACEHOLDER = "__NUMBER__"
LOGIC_OPERATOR_PLACEHOLDER = "__LOGIC_OPERATOR__"

# History entry names, in the order they are applied.
NORMALIZED_TEXT = "Normalized Text"
NORMALIZED_PUNCTUATION = "Normalized Punctuation"
STEMMING = "Stemming"
LEMMATIZATION = "Lemmatization"
SPECIAL_WORDS = "Special Words"


class DocumentTextTransformer(Protocol):
    """Anything that rewrites a document's current text in place."""

    def process_text(self, document: Document) -> None: ...


class DocumentTokenizer(Protocol):
    """Anything that sets a document's token list from its current text."""

    def tokenize(self, document: Document) -> None: ...


def is_break(token: str) -> bool:
    return token.upper() == BREAK


# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------


_CONTRACTIONS = {
    "n't": "not",
    "'ll": "will",
    "'re": "are",
    "'ve": "have",
    "'m": "am",
    "'d": "would",
}

# Stems left behind by the Treebank split of "won't" / "can't".
_NEGATED_STEMS = {"wo": "will", "ca": "can"}


def split_contractions(tokens: Iterable[str]) -> List[str]:
    """Rewrite Treebank contraction pieces ("n't", "'ll", ...) as full words."""
    out: List[str] = []
    for token in tokens:
        lowered = token.lower()
        if lowered in _CONTRACTIONS:
            if lowered == "n't" and out and out[-1].lower() in _NEGATED_STEMS:
                out[-1] = _NEGATED_STEMS[out[-1].lower()]
            out.append(_CONTRACTIONS[lowered])
            continue
        out.append(token)
    return out


class TreebankDocumentTokenizer:
    """
    Word tokenizer backed by NLTK's Treebank tokenizer.

    The Treebank rules are regex-only, so no NLTK data download is needed.
    """

    def __init__(self, expand_contractions: bool = True) -> None:
        from nltk.tokenize import TreebankWordTokenizer

        self._tokenizer = TreebankWordTokenizer()
        self.expand_contractions = expand_contractions

    def split(self, text: str) -> List[str]:
        tokens = self._tokenizer.tokenize(text)
        if self.expand_contractions:
            tokens = split_contractions(tokens)
        return tokens

    def tokenize(self, document: Document) -> None:
        document.set_tokens(self.split(document.text))


# ---------------------------------------------------------------------------
# Lemmatization
# ---------------------------------------------------------------------------


class WordNetLemmatizer:
    """
    Lemmatize each whitespace-separated token with NLTK's WordNet lemmatizer.

    The WordNet data is fetched quietly on first use. Break markers pass
    through untouched.
    """

    def __init__(self) -> None:
        self._lemmatizer = None

    def _load(self):
        if self._lemmatizer is None:
            import nltk
            from nltk.stem import WordNetLemmatizer as _NltkLemmatizer

            nltk.download("wordnet", quiet=True)
            nltk.download("omw-1.4", quiet=True)
            self._lemmatizer = _NltkLemmatizer()
        return self._lemmatizer

    def lemmatize_text(self, text: str) -> str:
        lemmatizer = self._load()
        return " ".join(
            t if is_break(t) else lemmatizer.lemmatize(t) for t in text.split()
        )

    def process_text(self, document: Document) -> None:
        document.set_text(LEMMATIZATION, self.lemmatize_text(document.text))


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class DocumentNormalizer:
    """
    Rule-based cleanup producing a canonical, break-marked token stream.

    :meth:`process_text` applies, in order and each under its own history
    entry: text normalization, punctuation normalization, optional stemming,
    optional lemmatization and special-word handling. The result is always a
    string (possibly empty), and running it again on its own output is safe.

    Parameters
    ----------
    stop_words, allowed_words, break_words:
        User word lists (see :class:`~learnedintent.configuration.Configuration`).
    break_on_special_characters:
        Insert :data:`BREAK` where tokens were removed.
    minimum_token_length:
        Tokens shorter than this are removed.
    stem:
        Apply the Porter stemmer (original algorithm).
    lemmatize:
        Run ``lemmatizer`` over the text. Without a lemmatizer the step is
        logged and skipped.
    keep_digit_placeholder:
        Numbers become ``__NUMBER__`` and operators ``__LOGIC_OPERATOR__``
        instead of being removed.
    remove_parenthetical_text:
        Drop text between innermost parentheses.
    lemmatizer:
        Optional :class:`DocumentTextTransformer` used for lemmatization.
    log_fn:
        Optional callable for progress / diagnostic messages.
    """

    _POSITIVE = "POS"
    _NEGATIVE = "NEG"

    # Word ending in "+" / "-"; word boundaries do not work here because the
    # sign itself is a boundary.
    _POSITIVE_RE = re.compile(r"([a-zA-Z0-9])\+([^a-zA-Z])")
    _NEGATIVE_RE = re.compile(r"([a-zA-Z0-9])-([^a-zA-Z])")
    _EG_RE = re.compile(r"e\.g\.?")
    _IE_RE = re.compile(r"i\.e\.?")
    _PARENTHETICAL_RE = re.compile(r"\([^()]*\)")
    _CLAUSE_BREAK_RE = re.compile(r"[().;]")
    _NON_WORD_RE = re.compile(r"[^\w<=>]", re.ASCII)
    _WHITESPACE_RE = re.compile(r"\s+")

    _ABNORMALITY_RE = re.compile(r"\w+\(.*")
    _CD_RE = re.compile(r"cd\d+")
    _NUMBER_RE = re.compile(r"\d+.*")
    _LOGICAL_OPERATOR_RE = re.compile(r"[<>=]+")

    def __init__(
        self,
        stop_words: Optional[Iterable[str]] = None,
        allowed_words: Optional[Iterable[str]] = None,
        break_words: Optional[Iterable[str]] = None,
        break_on_special_characters: bool = True,
        minimum_token_length: int = 1,
        stem: bool = True,
        lemmatize: bool = False,
        keep_digit_placeholder: bool = False,
        remove_parenthetical_text: bool = False,
        lemmatizer: Optional[DocumentTextTransformer] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> None:
        from nltk.stem.porter import PorterStemmer
        from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

        self.stop_words = Words(stop_words or ())
        self.allowed_words = Words(allowed_words or ())
        self.break_words = Words(break_words or ())
        self.break_on_special_characters = break_on_special_characters
        self.minimum_token_length = minimum_token_length
        self.stem = stem
        self.lemmatize = lemmatize
        self.keep_digit_placeholder = keep_digit_placeholder
        self.remove_parenthetical_text = remove_parenthetical_text
        self.lemmatizer = lemmatizer
        self._log_fn = log_fn or (lambda _msg: None)

        # NLTK's default mode adds later "improvements" ("age" stays "age");
        # the original algorithm gives the classic stems ("age" -> "ag").
        self._stemmer = PorterStemmer(mode=PorterStemmer.ORIGINAL_ALGORITHM)
        self._english_stop_words = frozenset(ENGLISH_STOP_WORDS)
        self._punctuation = frozenset(string.punctuation)

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        lemmatizer: Optional[DocumentTextTransformer] = None,
        log_fn: Optional[Callable[[str], None]] = None,
    ) -> "DocumentNormalizer":
        return cls(
            stop_words=configuration.stop_words,
            allowed_words=configuration.allowed_words,
            break_words=configuration.break_words,
            break_on_special_characters=configuration.break_on_special_characters,
            minimum_token_length=configuration.minimum_token_length,
            stem=configuration.stem,
            lemmatize=configuration.lemmatize,
            keep_digit_placeholder=configuration.keep_digit_placeholder,
            remove_parenthetical_text=configuration.remove_parenthetical_text,
            lemmatizer=lemmatizer,
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

    def process_text(self, document: Document) -> None:
        if document is None:
            raise ValueError("Document to normalize was None.")
        self._normalize_text(document)
        self._normalize_punctuation(document)
        if self.stem:
            self._stem(document)
        if self.lemmatize:
            self._lemmatize(document)
        self._normalize_special_words(document)

    def normalize(self, text: str) -> str:
        """Convenience wrapper: normalized form of a bare string."""
        document = Document(text, trace=False)
        self.process_text(document)
        return document.text

    # ------------------------------------------------------------------
    # Internal helpers – individual stages
    # ------------------------------------------------------------------

    def _normalize_text(self, document: Document) -> None:
        text = unicodedata.normalize("NFKC", document.text.lower())
        text = self._WHITESPACE_RE.sub(" ", text).strip()
        document.set_text(NORMALIZED_TEXT, text)

    def _normalize_punctuation(self, document: Document) -> None:
        text = document.text
        if self.remove_parenthetical_text:
            text = self._PARENTHETICAL_RE.sub("", text)
        text = unicodedata.normalize("NFD", text)
        text = "".join(c for c in text if not unicodedata.combining(c))
        text = self._POSITIVE_RE.sub(r"\g<1>" + self._POSITIVE + r"\g<2>", text)
        text = self._NEGATIVE_RE.sub(r"\g<1>" + self._NEGATIVE + r"\g<2>", text)
        text = self._EG_RE.sub(BREAK, text)
        text = self._IE_RE.sub(BREAK, text)
        text = self._CLAUSE_BREAK_RE.sub(f" {BREAK} ", text)
        text = self._NON_WORD_RE.sub(" ", text)
        text = text.replace(self._NEGATIVE, "-").replace(self._POSITIVE, "+")
        document.set_text(NORMALIZED_PUNCTUATION, text)

    def _stem(self, document: Document) -> None:
        tokens = document.tokens if document.tokens is not None else document.text.split()
        stems = [t if is_break(t) else self._stemmer.stem(t) for t in tokens]
        document.set_text(STEMMING, " ".join(stems))

    def _lemmatize(self, document: Document) -> None:
        if self.lemmatizer is None:
            self._log("[DocumentNormalizer] Lemmatization requested but no lemmatizer is configured; skipping.")
            return
        self.lemmatizer.process_text(document)

    def _normalize_special_words(self, document: Document) -> None:
        clean: List[str] = []
        breaking = self.break_on_special_characters

        for token in document.text.split():
            if token in self.allowed_words:
                clean.append(token)
            elif token in self.stop_words:
                continue
            elif token in self.break_words:
                if breaking:
                    clean.append(BREAK)
            elif self._ABNORMALITY_RE.fullmatch(token) or self._CD_RE.fullmatch(token):
                clean.append(token)
            elif self._NUMBER_RE.fullmatch(token):
                if self.keep_digit_placeholder:
                    clean.append(NUMBER_PLACEHOLDER)
                elif breaking:
                    clean.append(BREAK)
            elif self._LOGICAL_OPERATOR_RE.fullmatch(token):
                if self.keep_digit_placeholder:
                    clean.append(LOGIC_OPERATOR_PLACEHOLDER)
            elif (
                len(token) < self.minimum_token_length
                or token in self._english_stop_words
                or all(c in self._punctuation for c in token)
            ):
                if breaking:
                    clean.append(BREAK)
            else:
                clean.append(token)

        document.set_text(SPECIAL_WORDS, " ".join(self._collapse_breaks(clean)))

    @staticmethod
    def _collapse_breaks(tokens: List[str]) -> List[str]:
        """
        Keep at most one break between words; drop leading breaks and a break
        in last position.
        """
        out: List[str] = []
        last = len(tokens) - 1
        for i, token in enumerate(tokens):
            if not is_break(token) or (i < last and out and not is_break(out[-1])):
                out.append(token)
        return out
