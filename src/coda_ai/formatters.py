"""Human-readable output formatters for CLI.

JSON is the default for agents; these renderers back ``--output human``.
"""

from __future__ import annotations

import json

from .hierarchy import DocNode, PageNode
from .models import Doc


def format_json(data) -> str:
    """Full JSON passthrough."""
    return json.dumps(data, indent=2)


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


# ---------------------------------------------------------------------------
# Trees
# ---------------------------------------------------------------------------

def _format_pages(pages: list[PageNode], prefix: str, lines: list[str]) -> None:
    for idx, page in enumerate(pages):
        is_last = idx == len(pages) - 1
        connector = "└── " if is_last else "├── "
        lines.append(f"{prefix}{connector}{page.name} ({page.page_id})")
        if page.child:
            _format_pages(page.child, prefix + ("    " if is_last else "│   "), lines)


def format_tree(pages: list[PageNode]) -> str:
    if not pages:
        return "No pages found."
    lines: list[str] = []
    _format_pages(pages, "", lines)
    return "\n".join(lines)


def format_doc_tree(docs: list[DocNode]) -> str:
    if not docs:
        return "No docs found."
    lines: list[str] = []
    for idx, doc in enumerate(docs):
        is_last = idx == len(docs) - 1
        lines.append(f"{'└── ' if is_last else '├── '}{doc.name} ({doc.doc_id})")
        _format_pages(doc.pages, "    " if is_last else "│   ", lines)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Docs
# ---------------------------------------------------------------------------

_DOC_COLUMNS = [("id", 20), ("name", 30), ("owner", 20), ("workspace", 20), ("updated", 10)]


def format_docs_table(docs: list[Doc]) -> str:
    if not docs:
        return "No documents found."
    rows = []
    for d in docs:
        rows.append([
            d.id,
            d.name,
            d.owner_name or d.owner or "",
            d.workspace_name or "-",
            (d.updated_at or "")[:10],
        ])
    header = "  ".join(name.ljust(width) for name, width in _DOC_COLUMNS)
    lines = [header.rstrip(), "  ".join("-" * width for _, width in _DOC_COLUMNS)]
    for row in rows:
        cells = [_truncate(str(v), width).ljust(width) for v, (_, width) in zip(row, _DOC_COLUMNS)]
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Page inspection
# ---------------------------------------------------------------------------

def format_page_inspection(data: dict) -> str:
    """Markdown summary of ``read --format json`` output."""
    page = data.get("page", {})
    lines = [f"# {page.get('name', '?')}", ""]
    lines.append(f"**Page ID**: {page.get('id', '?')}")
    lines.append(f"**Type**: {page.get('type') or '?'}")
    lines.append("")

    tables = data.get("tables", [])
    if tables:
        lines.append(f"## Tables ({len(tables)})")
        lines.append("")
        for t in tables:
            lines.append(f"### {t.get('name', '?')} ({t.get('id', '?')})")
            lines.append("")
            columns = t.get("columns", [])
            if columns:
                lines.append("**Columns**: " + ", ".join(c.get("name", "?") for c in columns))
                lines.append("")
            rows = t.get("sampleRows", [])
            if columns and rows:
                lines.append("| " + " | ".join(c.get("name", "?") for c in columns) + " |")
                lines.append("| " + " | ".join("---" for _ in columns) + " |")
                for r in rows:
                    values = r.get("values", {})
                    cells = ["" if values.get(c.get("id")) is None else str(values.get(c.get("id"))) for c in columns]
                    lines.append("| " + " | ".join(cells) + " |")
                lines.append("")

    for key, label in [("formulas", "Formulas"), ("controls", "Controls")]:
        items = data.get(key, [])
        if items:
            lines.append(f"## {label} ({len(items)})")
            lines.append("")
            for item in items:
                value = item.get("value")
                lines.append(f"- **{item.get('name', '?')}**: {'N/A' if value is None else value}")
            lines.append("")

    if not tables and not data.get("formulas") and not data.get("controls"):
        lines.append("_This page has no tables, formulas, or controls._")
        lines.append("")

    content = data.get("content")
    if content:
        lines.append("## Content")
        lines.append("")
        lines.append(content)

    return "\n".join(lines).rstrip() + "\n"
