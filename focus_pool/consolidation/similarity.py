"""
Lexical similarity for merge-vs-insert decisions.

Two labels of the same type are similar when they are equal, when one is
an alias of the other, or when their token sets overlap enough
(Jaccard >= threshold). Type mismatch is never similar.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol

from focus_pool.models.item import PoolItem, normalize_label


# CJK text carries no delimiters, so each ideograph / kana / hangul
# syllable is its own token. Other scripts split on non-word characters.
_CJK = "\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff"
_TOKEN_RE = re.compile(rf"[{_CJK}]|[^\W_{_CJK}]+")


class Labeled(Protocol):
    """Anything with a type, a label and aliases (items and candidates)."""

    item_type: str

    @property
    def label(self) -> str: ...

    aliases: Iterable[str]


def tokenize(label: str) -> set[str]:
    """Case-folded token set of a label."""
    return set(_TOKEN_RE.findall(label.casefold()))


def jaccard(a: set[str], b: set[str]) -> float:
    """|a ∩ b| / |a ∪ b| (0.0 when both are empty)."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class MatchKind(str, Enum):
    """How two labels were judged similar."""

    EXACT = "exact"
    ALIAS = "alias"
    TOKEN = "token"


@dataclass
class SimilarityMatch:
    """A similar existing item and how it matched."""

    item: PoolItem
    kind: MatchKind
    score: float


class SimilarityMatcher:
    """
    Decides whether a candidate refers to an existing item.

    Usage:
        matcher = SimilarityMatcher(threshold=0.7)
        match = matcher.find_best(candidate, pool_items)
    """

    def __init__(self, threshold: float = 0.7):
        self.threshold = threshold

    def similarity(self, label_a: str, label_b: str) -> float:
        """Token-Jaccard similarity of two labels."""
        return jaccard(tokenize(label_a), tokenize(label_b))

    def match_kind(self, a: Labeled, b: Labeled) -> tuple[MatchKind, float] | None:
        """Classify the match between two labeled objects, or None."""
        if str(a.item_type) != str(b.item_type):
            return None

        label_a = normalize_label(a.label)
        label_b = normalize_label(b.label)
        if not label_a or not label_b:
            return None
        if label_a == label_b:
            return MatchKind.EXACT, 1.0

        aliases_a = {normalize_label(alias) for alias in a.aliases}
        aliases_b = {normalize_label(alias) for alias in b.aliases}
        if label_b in aliases_a or label_a in aliases_b:
            return MatchKind.ALIAS, 1.0

        score = self.similarity(label_a, label_b)
        if score >= self.threshold:
            return MatchKind.TOKEN, score
        return None

    def similar(self, a: Labeled, b: Labeled) -> bool:
        """Whether ``a`` and ``b`` should be merged."""
        return self.match_kind(a, b) is not None

    def find_best(
        self,
        candidate: Labeled,
        items: Iterable[PoolItem],
    ) -> SimilarityMatch | None:
        """
        Find the existing item a candidate should merge into.

        Exact matches win over alias matches, which win over the highest
        token-Jaccard score.
        """
        rank = {MatchKind.EXACT: 2, MatchKind.ALIAS: 1, MatchKind.TOKEN: 0}
        best: SimilarityMatch | None = None

        for item in items:
            result = self.match_kind(candidate, item)
            if result is None:
                continue
            kind, score = result
            if kind == MatchKind.EXACT:
                return SimilarityMatch(item=item, kind=kind, score=score)
            if best is None or (rank[kind], score) > (rank[best.kind], best.score):
                best = SimilarityMatch(item=item, kind=kind, score=score)

        return best
