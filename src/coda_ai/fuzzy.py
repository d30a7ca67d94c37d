"""Approximate name matching for docs and page trees."""

from __future__ import annotations

import dataclasses
import re
from typing import Callable, Iterable, Sequence, TypeVar

from rapidfuzz import fuzz, utils

from .hierarchy import PageNode

T = TypeVar("T")

# 0..1 similarity a name needs to count as a match
DEFAULT_THRESHOLD = 0.6

_DOC_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{10,}$")
_DOC_URL_ID_PATTERN = re.compile(r"_d([\w-]+)")


def similarity(query: str, name: str) -> float:
    """Best partial-alignment similarity, case and punctuation insensitive.

    The query is aligned against the best-matching stretch of the name. When
    the query is the longer of the two the whole strings are compared, so a
    one-letter page name does not match every query containing that letter.
    """
    q = utils.default_process(query or "")
    n = utils.default_process(name or "")
    if not q or not n:
        return 0.0
    scorer = fuzz.partial_ratio if len(q) <= len(n) else fuzz.ratio
    return scorer(q, n) / 100.0


def matches(query: str, name: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    score = similarity(query, name)
    return score > 0 and score >= threshold


def search_by_name(
    items: Iterable[T],
    query: str,
    threshold: float = DEFAULT_THRESHOLD,
    key: Callable[[T], str] = lambda item: item.name,
) -> list[T]:
    """Items whose name matches, best score first, ties in input order."""
    scored = []
    for item in items:
        score = similarity(query, key(item))
        if score > 0 and score >= threshold:
            scored.append((score, item))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored]


def filter_tree(
    nodes: Sequence[PageNode],
    query: str,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[PageNode]:
    """Prune a page forest to matching nodes and the ancestors leading to them.

    A matching node is kept with its whole subtree. A non-matching node is
    kept, as a copy holding only the surviving children, when something
    below it matches. Input nodes are never modified.
    """
    kept: list[PageNode] = []
    for node in nodes:
        if matches(query, node.name, threshold):
            kept.append(node)
            continue
        if not node.child:
            continue
        survivors = filter_tree(node.child, query, threshold)
        if survivors:
            kept.append(dataclasses.replace(node, child=survivors))
    return kept


def looks_like_doc_id(value: str) -> bool:
    """Guess whether --doc is a raw doc id rather than a name query.

    Anything of 10+ characters from [A-Za-z0-9_-] is treated as an id, so a
    long single-word query such as "Roadmap2024" is taken as an id too.
    """
    return bool(_DOC_ID_PATTERN.match(value))


def extract_doc_id(url: str) -> str | None:
    """Doc id from a Coda browser link (the part after "_d")."""
    match = _DOC_URL_ID_PATTERN.search(url)
    return match.group(1) if match else None
