"""Coda API client."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator

import httpx

from .errors import (
    CodaError,
    ExportError,
    ExportTimeoutError,
    RateLimitError,
    ValidationError,
    error_for_status,
)
from .models import (
    Column,
    Control,
    Doc,
    ExportStatus,
    ExportSubmission,
    Formula,
    Page,
    Row,
    Table,
    User,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://coda.io/apis/v1"
EXPORT_FORMATS = ("markdown", "html")


def _parse_retry_after(value: str | None) -> int:
    """Whole seconds from a retry-after header, 1 when missing or garbage."""
    if value is None:
        return 1
    try:
        seconds = int(value.strip())
    except ValueError:
        return 1
    return max(seconds, 0)


class CodaClient:
    """Thin wrapper around the Coda REST API."""

    export_max_attempts = 30
    export_poll_interval = 2.0

    def __init__(
        self,
        api_token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )
        # Export download links are pre-signed; they must not see the token.
        self._download_client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _send(self, client: httpx.Client, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise CodaError("TIMEOUT", "Request timed out", 0) from exc
        except httpx.RequestError as exc:
            raise CodaError("NETWORK", str(exc), 0) from exc

    def request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json_body: Any = None,
    ) -> Any:
        """Perform one authenticated request, return parsed JSON.

        Retries only on 429, sleeping for the server's retry-after each time,
        and gives up with RateLimitError once max_retries is spent. That error
        always says "Rate limit exceeded after max retries"; any message in
        the final 429 body is not used.
        """
        # Strip None params
        params = {k: v for k, v in (params or {}).items() if v is not None}
        kwargs: dict[str, Any] = {"params": params}
        if json_body is not None:
            kwargs["json"] = json_body

        retries = 0
        while True:
            logger.debug("%s %s params=%s", method, path, params)
            resp = self._send(self._client, method, path, **kwargs)
            if resp.status_code != 429:
                break
            retry_after = _parse_retry_after(resp.headers.get("retry-after"))
            if retries >= self.max_retries:
                raise RateLimitError("Rate limit exceeded after max retries", retry_after=retry_after)
            retries += 1
            logger.debug("429 on %s, retry %d/%d in %ss", path, retries, self.max_retries, retry_after)
            time.sleep(retry_after)

        if not resp.is_success:
            raise self._error_from_response(resp)

        if not resp.content:
            raise CodaError("EMPTY_RESPONSE", f"Empty response (HTTP {resp.status_code})", resp.status_code)
        try:
            return resp.json()
        except ValueError:
            raise CodaError("INVALID_RESPONSE", resp.text[:200], resp.status_code)

    def _error_from_response(self, resp: httpx.Response) -> CodaError:
        message = resp.reason_phrase
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        return error_for_status(resp.status_code, message)

    def get(self, path: str, params: dict | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: Any = None) -> Any:
        return self.request("POST", path, json_body=body)

    def paginate(self, path: str, params: dict | None = None) -> Iterator[Any]:
        """Yield items across every page of a list endpoint.

        Later pages are requested with the continuation token alone, since
        the token already encodes the original query.
        """
        page_params = params
        while True:
            data = self.get(path, page_params)
            if not isinstance(data, dict):
                raise CodaError("INVALID_RESPONSE", f"Expected list response from {path}")
            yield from data.get("items") or []

            token = data.get("nextPageToken")
            if not token:
                return
            page_params = {"pageToken": token}

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_page_content(self, doc_id: str, page_id: str, format: str = "markdown") -> str:
        """Render a page through the async export endpoint and return its text."""
        if format not in EXPORT_FORMATS:
            raise ValidationError(f"Export format must be one of: {', '.join(EXPORT_FORMATS)}")

        base_path = f"/docs/{doc_id}/pages/{page_id}/export"
        submission = ExportSubmission.from_api_response(self.post(base_path, {"outputFormat": format}))
        if not submission.request_id:
            raise ExportError("Export request did not return a request ID")

        for attempt in range(self.export_max_attempts):
            time.sleep(self.export_poll_interval)
            status = ExportStatus.from_api_response(self.get(f"{base_path}/{submission.request_id}"))
            logger.debug("export %s poll %d: %s", submission.request_id, attempt + 1, status.status)

            if status.status == "complete":
                if not status.download_link:
                    raise ExportError("Export completed but no download link provided")
                return self._download(status.download_link)

            if status.status == "failed":
                raise ExportError(f"Export failed: {status.error or 'Export failed'}")

        waited = int(self.export_max_attempts * self.export_poll_interval)
        raise ExportTimeoutError(f"Export timed out after {waited} seconds")

    def _download(self, url: str) -> str:
        resp = self._send(self._download_client, "GET", url)
        if not resp.is_success:
            raise ExportError("Failed to download exported content")
        return resp.text

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def whoami(self) -> User:
        return User.from_api_response(self.get("/whoami"))

    def get_doc(self, doc_id: str) -> Doc:
        return Doc.from_api_response(self.get(f"/docs/{doc_id}"))

    def iter_docs(self, query: str | None = None) -> Iterator[Doc]:
        for item in self.paginate("/docs", {"query": query}):
            yield Doc.from_api_response(item)

    def get_page(self, doc_id: str, page_id: str) -> Page:
        return Page.from_api_response(self.get(f"/docs/{doc_id}/pages/{page_id}"))

    def iter_pages(self, doc_id: str) -> Iterator[Page]:
        for item in self.paginate(f"/docs/{doc_id}/pages"):
            yield Page.from_api_response(item)

    def iter_tables(self, doc_id: str) -> Iterator[Table]:
        for item in self.paginate(f"/docs/{doc_id}/tables"):
            yield Table.from_api_response(item)

    def list_columns(self, doc_id: str, table_id: str) -> list[Column]:
        return [Column.from_api_response(c) for c in self.paginate(f"/docs/{doc_id}/tables/{table_id}/columns")]

    def sample_rows(self, doc_id: str, table_id: str, limit: int = 5) -> list[Row]:
        # One page only; the inspection just wants a sample
        data = self.get(f"/docs/{doc_id}/tables/{table_id}/rows", {"limit": limit})
        items = data.get("items") if isinstance(data, dict) else None
        return [Row.from_api_response(r) for r in items or []]

    def iter_formulas(self, doc_id: str) -> Iterator[Formula]:
        for item in self.paginate(f"/docs/{doc_id}/formulas"):
            yield Formula.from_api_response(item)

    def iter_controls(self, doc_id: str) -> Iterator[Control]:
        for item in self.paginate(f"/docs/{doc_id}/controls"):
            yield Control.from_api_response(item)

    def close(self):
        self._client.close()
        self._download_client.close()
