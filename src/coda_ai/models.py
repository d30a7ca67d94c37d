"""
Typed Coda API records.

Payloads are checked once, here, when they come off the wire. Everything
above the client works with these dataclasses instead of raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import CodaError


def _require_object(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise CodaError("INVALID_RESPONSE", f"Expected {kind} object, got {type(data).__name__}")
    return data


def _require_id(data: dict, kind: str) -> str:
    value = data.get("id")
    if not isinstance(value, str) or not value:
        raise CodaError("INVALID_RESPONSE", f"{kind} is missing a string id")
    return value


def _drop_none(payload: dict) -> dict:
    return {k: v for k, v in payload.items() if v is not None}


@dataclass
class ParentRef:
    """Reference to a related object: the parent of a page, table, formula
    or control, or one of a page's children."""
    id: str
    type: str
    href: Optional[str] = None
    browser_link: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Any) -> Optional["ParentRef"]:
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            return None
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            href=data.get("href"),
            browser_link=data.get("browserLink"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "type": self.type,
            "href": self.href,
            "browserLink": self.browser_link,
        })


@dataclass
class User:
    name: str
    login_id: Optional[str] = None
    type: Optional[str] = None
    scoped: Optional[bool] = None
    token_name: Optional[str] = None
    href: Optional[str] = None
    picture_link: Optional[str] = None
    workspace: Optional[dict] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "User":
        data = _require_object(data, "user")
        return cls(
            name=data.get("name", ""),
            login_id=data.get("loginId"),
            type=data.get("type"),
            scoped=data.get("scoped"),
            token_name=data.get("tokenName"),
            href=data.get("href"),
            picture_link=data.get("pictureLink"),
            workspace=data.get("workspace"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "name": self.name,
            "loginId": self.login_id,
            "type": self.type,
            "scoped": self.scoped,
            "tokenName": self.token_name,
            "href": self.href,
            "pictureLink": self.picture_link,
            "workspace": self.workspace,
        })


@dataclass
class Doc:
    """Coda document as returned by /docs and /docs/{id}."""
    id: str
    name: str
    type: Optional[str] = None
    href: Optional[str] = None
    browser_link: Optional[str] = None
    owner: Optional[str] = None
    owner_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    workspace: Optional[dict] = None
    folder: Optional[dict] = None
    workspace_id: Optional[str] = None
    folder_id: Optional[str] = None
    icon: Optional[dict] = None
    doc_size: Optional[dict] = None
    source_doc: Optional[dict] = None
    published: Optional[dict] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Doc":
        data = _require_object(data, "doc")
        return cls(
            id=_require_id(data, "doc"),
            name=data.get("name", ""),
            type=data.get("type"),
            href=data.get("href"),
            browser_link=data.get("browserLink"),
            owner=data.get("owner"),
            owner_name=data.get("ownerName"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            workspace=data.get("workspace"),
            folder=data.get("folder"),
            workspace_id=data.get("workspaceId"),
            folder_id=data.get("folderId"),
            icon=data.get("icon"),
            doc_size=data.get("docSize"),
            source_doc=data.get("sourceDoc"),
            published=data.get("published"),
        )

    @property
    def workspace_name(self) -> Optional[str]:
        if isinstance(self.workspace, dict):
            return self.workspace.get("name")
        return None

    def to_dict(self, compact: bool = False) -> dict:
        if compact:
            return {"docId": self.id, "name": self.name}
        return _drop_none({
            "id": self.id,
            "type": self.type,
            "href": self.href,
            "browserLink": self.browser_link,
            "name": self.name,
            "owner": self.owner,
            "ownerName": self.owner_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "workspace": self.workspace,
            "folder": self.folder,
            "workspaceId": self.workspace_id,
            "folderId": self.folder_id,
            "icon": self.icon,
            "docSize": self.doc_size,
            "sourceDoc": self.source_doc,
            "published": self.published,
        })


@dataclass
class Page:
    id: str
    name: str
    type: Optional[str] = None
    href: Optional[str] = None
    browser_link: Optional[str] = None
    parent: Optional[ParentRef] = None
    children: list[ParentRef] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    content_type: Optional[str] = None
    subtitle: Optional[str] = None
    icon: Optional[dict] = None
    image: Optional[dict] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Page":
        data = _require_object(data, "page")
        children = []
        for child in data.get("children") or []:
            if isinstance(child, str):
                child = {"id": child, "type": "page"}
            ref = ParentRef.from_api_response(child)
            if ref is not None:
                children.append(ref)
        return cls(
            id=_require_id(data, "page"),
            name=data.get("name", ""),
            type=data.get("type"),
            href=data.get("href"),
            browser_link=data.get("browserLink"),
            parent=ParentRef.from_api_response(data.get("parent")),
            children=children,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            content_type=data.get("contentType"),
            subtitle=data.get("subtitle"),
            icon=data.get("icon"),
            image=data.get("image"),
        )

    @property
    def parent_page_id(self) -> Optional[str]:
        """Parent id, only when the parent is itself a page."""
        if self.parent is not None and self.parent.type == "page":
            return self.parent.id
        return None

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "type": self.type,
            "href": self.href,
            "browserLink": self.browser_link,
            "name": self.name,
            "parent": self.parent.to_dict() if self.parent else None,
            "children": [c.to_dict() for c in self.children] or None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "contentType": self.content_type,
            "subtitle": self.subtitle,
            "icon": self.icon,
            "image": self.image,
        })


@dataclass
class Table:
    id: str
    name: str
    type: Optional[str] = None
    row_count: Optional[int] = None
    parent: Optional[ParentRef] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Table":
        data = _require_object(data, "table")
        return cls(
            id=_require_id(data, "table"),
            name=data.get("name", ""),
            type=data.get("type"),
            row_count=data.get("rowCount"),
            parent=ParentRef.from_api_response(data.get("parent")),
        )


@dataclass
class Column:
    id: str
    name: str
    format: Optional[dict] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Column":
        data = _require_object(data, "column")
        return cls(id=_require_id(data, "column"), name=data.get("name", ""), format=data.get("format"))

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "format": self.format}


@dataclass
class Row:
    id: str
    values: dict = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: Any) -> "Row":
        data = _require_object(data, "row")
        values = data.get("values")
        return cls(id=_require_id(data, "row"), values=values if isinstance(values, dict) else {})

    def to_dict(self) -> dict:
        return {"id": self.id, "values": self.values}


@dataclass
class Formula:
    id: str
    name: str
    value: Any = None
    parent: Optional[ParentRef] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Formula":
        data = _require_object(data, "formula")
        return cls(
            id=_require_id(data, "formula"),
            name=data.get("name", ""),
            value=data.get("value"),
            parent=ParentRef.from_api_response(data.get("parent")),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "value": self.value}


@dataclass
class Control:
    id: str
    name: str
    type: Optional[str] = None
    value: Any = None
    parent: Optional[ParentRef] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "Control":
        data = _require_object(data, "control")
        return cls(
            id=_require_id(data, "control"),
            name=data.get("name", ""),
            type=data.get("controlType", data.get("type")),
            value=data.get("value"),
            parent=ParentRef.from_api_response(data.get("parent")),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type, "value": self.value}


@dataclass
class ExportSubmission:
    request_id: Optional[str]

    @classmethod
    def from_api_response(cls, data: Any) -> "ExportSubmission":
        if not isinstance(data, dict):
            return cls(request_id=None)
        request_id = data.get("requestId") or data.get("id")
        return cls(request_id=str(request_id) if request_id else None)


@dataclass
class ExportStatus:
    status: str
    download_link: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: Any) -> "ExportStatus":
        data = _require_object(data, "export status")
        return cls(
            status=str(data.get("status", "")),
            download_link=data.get("downloadLink") or None,
            error=data.get("error") or None,
        )
