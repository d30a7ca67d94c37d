"""Page tree construction from the flat /pages listing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from .models import Page


@dataclass
class PageNode:
    page_id: str
    name: str
    page: Optional[Page] = None
    child: Optional[list["PageNode"]] = None

    def to_dict(self, compact: bool = True) -> dict:
        if compact or self.page is None:
            payload = {"pageId": self.page_id, "name": self.name}
        else:
            payload = self.page.to_dict()
            payload["pageId"] = self.page_id
        if self.child:
            payload["child"] = [c.to_dict(compact) for c in self.child]
        return payload


@dataclass
class DocNode:
    """A document together with its page forest."""
    doc_id: str
    name: str
    pages: list[PageNode]

    def to_dict(self, compact: bool = True) -> dict:
        return {
            "name": self.name,
            "docId": self.doc_id,
            "pages": [p.to_dict(compact) for p in self.pages],
        }


def build_page_hierarchy(pages: Iterable[Page]) -> list[PageNode]:
    """Link a flat page list into an ordered forest.

    Children may precede their parents in the listing, so every page is
    indexed before any linking happens. A page whose parent is not a page,
    or is not in the listing, becomes a root. Root and child order follow
    the input order.
    """
    pages = list(pages)
    nodes: dict[str, PageNode] = {}
    for page in pages:
        nodes[page.id] = PageNode(page_id=page.id, name=page.name, page=page)

    roots: list[PageNode] = []
    for page in pages:
        node = nodes[page.id]
        parent = nodes.get(page.parent_page_id) if page.parent_page_id else None
        if parent is None or parent is node:
            roots.append(node)
            continue
        if parent.child is None:
            parent.child = []
        parent.child.append(node)
    return roots


def iter_nodes(forest: Iterable[PageNode]) -> Iterator[PageNode]:
    """Depth-first, pre-order walk over a forest."""
    for node in forest:
        yield node
        if node.child:
            yield from iter_nodes(node.child)
