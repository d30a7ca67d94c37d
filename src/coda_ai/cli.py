"""coda-ai CLI: browse Coda docs, page trees and page content from the terminal."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from pathlib import Path
import sys

import click
from dotenv import dotenv_values

from .client import DEFAULT_BASE_URL, CodaClient
from .credentials import CredentialStore, default_config_path
from .errors import CodaError, ConfigError, NotAllowedError, ValidationError
from .formatters import (
    format_doc_tree,
    format_docs_table,
    format_json,
    format_page_inspection,
    format_tree,
)
from .fuzzy import DEFAULT_THRESHOLD, extract_doc_id, filter_tree, looks_like_doc_id, search_by_name
from .hierarchy import DocNode, build_page_hierarchy
from .models import Doc
from .settings import Settings, resolve_settings

logger = logging.getLogger(__name__)

_SERVICE_NAME = "coda-ai"
_PROTOCOL_VERSION = "1"
_OUTPUT_MODES = ["json", "ndjson", "human"]
_SAMPLE_ROW_LIMIT = 5
_COMMANDS_WITHOUT_AUTH = {"auth", "logout", "config", "doctor"}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging; stdout is reserved for command output."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _get_client(ctx: click.Context) -> CodaClient:
    return ctx.obj["client"]


def _get_store(ctx: click.Context) -> CredentialStore:
    return ctx.obj["store"]


def _get_settings(ctx: click.Context) -> Settings:
    if ctx.obj.get("settings") is None:
        ctx.obj["settings"] = resolve_settings(ctx.obj.get("settings_path"))
    return ctx.obj["settings"]


def _require_command(ctx: click.Context, command_name: str) -> None:
    if not _get_settings(ctx).is_command_allowed(command_name):
        raise NotAllowedError(f"{command_name} command is not allowed by settings")


def _require_doc(ctx: click.Context, doc_id: str) -> None:
    if not _get_settings(ctx).is_doc_allowed(doc_id):
        raise NotAllowedError(f"Access to doc {doc_id} is not allowed by settings")


def _require_operation(ctx: click.Context, resource: str, operation: str) -> None:
    if not _get_settings(ctx).is_operation_allowed(resource, operation):
        raise NotAllowedError(f"{operation} on {resource} is not allowed by settings")


def _resolve_setting(flag_value, env_name: str, config_value, default_value):
    if flag_value is not None:
        return flag_value
    env_value = os.environ.get(env_name)
    if env_value not in (None, ""):
        return env_value
    if config_value is not None:
        return config_value
    return default_value


def _resolve_token(flag_value: str | None, stored: str | None) -> tuple[str | None, str | None]:
    """Token and where it came from: flag, env or config."""
    if flag_value:
        return flag_value, "flag"
    env_value = os.environ.get("CODA_API_TOKEN")
    if env_value:
        return env_value, "env"
    if stored:
        return stored, "config"
    return None, None


def _resolve_doc_id(value: str) -> str:
    """Accept a raw doc id or a Coda browser link."""
    value = (value or "").strip()
    if "://" in value:
        doc_id = extract_doc_id(value)
        if not doc_id:
            raise ValidationError(f"Could not find a doc id in URL: {value}")
        return doc_id
    if not value:
        raise ValidationError("Doc ID is required")
    return value


def _resolve_output_mode(ctx: click.Context) -> str:
    """Resolve output mode."""
    return ctx.obj.get("output", "json")


def _success_envelope(command_name: str, data, meta: dict | None = None) -> dict:
    payload = {
        "ok": True,
        "service": _SERVICE_NAME,
        "protocolVersion": _PROTOCOL_VERSION,
        "command": command_name,
        "data": data,
    }
    if meta:
        payload["meta"] = meta
    return payload


def _emit_data(
    ctx: click.Context,
    data,
    *,
    command_name: str,
    human_text: str | None = None,
    meta: dict | None = None,
) -> None:
    """Emit command output in requested format."""
    mode = _resolve_output_mode(ctx)
    if mode == "human":
        click.echo(human_text if human_text is not None else format_json(data))
        return

    if mode == "ndjson":
        # List results stream one item per line.
        items = data if isinstance(data, list) else [data]
        if not items:
            # an empty result still gets one line so meta reaches the caller
            row = _success_envelope(command_name, [], meta=meta)
            click.echo(json.dumps(row, sort_keys=True, separators=(",", ":")))
            return
        for idx, item in enumerate(items):
            row_meta = {"streamIndex": idx}
            if meta:
                row_meta.update(meta)
            row = _success_envelope(command_name, item, meta=row_meta)
            click.echo(json.dumps(row, sort_keys=True, separators=(",", ":")))
        return

    click.echo(format_json(_success_envelope(command_name, data, meta=meta)))


def _exit_code_for_error(err: CodaError) -> int:
    """Map failures to deterministic process exit codes."""
    if err.code in {"VALIDATION", "CONFIG"}:
        return 2
    if err.code == "NOT_ALLOWED":
        return 3
    if err.code in {"TIMEOUT", "NETWORK"}:
        return 13
    if err.code in {"EXPORT_ERROR", "EXPORT_TIMEOUT"}:
        return 14
    if err.status_code in {401, 403}:
        return 10
    if err.status_code == 429:
        return 11
    if err.status_code == 404:
        return 12
    if err.status_code >= 500:
        return 15
    return 16


def _error_payload(command_name: str, err: CodaError) -> dict:
    return {
        "ok": False,
        "service": _SERVICE_NAME,
        "protocolVersion": _PROTOCOL_VERSION,
        "command": command_name,
        "error": {
            "code": err.code,
            "message": err.message,
            "status": err.status_code,
            "retryable": err.code in {"TIMEOUT", "NETWORK"} or err.status_code in {429, 502, 503, 504},
            "exitCode": _exit_code_for_error(err),
        },
    }


def _emit_error(mode: str, command_name: str, err: CodaError) -> None:
    payload = _error_payload(command_name, err)
    if mode == "human":
        click.echo(f"Error: {err.code}: {err.message}", err=True)
    elif mode == "ndjson":
        click.echo(json.dumps(payload, sort_keys=True, separators=(",", ":")), err=True)
    else:
        click.echo(format_json(payload), err=True)
    sys.exit(payload["error"]["exitCode"])


def _exit_with_error(ctx: click.Context, err: CodaError) -> None:
    _emit_error(_resolve_output_mode(ctx), ctx.info_name or "main", err)


@click.group()
@click.version_option(package_name="coda-ai")
@click.option("--api-token", default=None, help="Coda API token (or set CODA_API_TOKEN)")
@click.option("--base-url", default=None, help="API base URL")
@click.option(
    "--output",
    default=None,
    type=click.Choice(_OUTPUT_MODES),
    help="Output format (json for agents, human for readable text, ndjson for streaming).",
)
@click.option("--timeout", default=None, type=float, help="HTTP request timeout in seconds.")
@click.option("--max-retries", default=None, type=int, help="Retries after HTTP 429 before giving up.")
@click.option("--config", "config_file", default=None, help="Config/credential file (or set CODA_AI_CONFIG).")
@click.option("--settings", "settings_file", default=None, help="Permission settings YAML (or set CODA_AI_SETTINGS).")
@click.option("--verbose", "-v", is_flag=True, help="Log requests to stderr.")
@click.pass_context
def main(
    ctx,
    api_token: str | None,
    base_url: str | None,
    output: str | None,
    timeout: float | None,
    max_retries: int | None,
    config_file: str | None,
    settings_file: str | None,
    verbose: bool,
):
    """Read Coda docs and pages via the Coda API."""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    command_name = ctx.invoked_subcommand or "main"

    store = CredentialStore(Path(config_file).expanduser() if config_file else default_config_path())
    config_error = None
    try:
        try:
            file_config = store.load()
        except CodaError as e:
            # doctor reports it; logout and auth rewrite the file
            if ctx.invoked_subcommand not in _COMMANDS_WITHOUT_AUTH:
                raise
            logger.debug("ignoring unreadable config for %s: %s", ctx.invoked_subcommand, e.message)
            config_error = e
            file_config = {}
        resolved_base_url = _resolve_setting(base_url, "CODA_AI_BASE_URL", file_config.get("base_url"), DEFAULT_BASE_URL)
        resolved_output = _resolve_setting(output, "CODA_AI_OUTPUT", file_config.get("output"), "json")
        if resolved_output not in _OUTPUT_MODES:
            raise ConfigError(f"Invalid output in config/env: {resolved_output}")
        try:
            resolved_timeout = float(_resolve_setting(timeout, "CODA_AI_TIMEOUT", file_config.get("timeout"), 30.0))
            resolved_max_retries = int(_resolve_setting(max_retries, "CODA_AI_MAX_RETRIES", file_config.get("max_retries"), 3))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc
        if resolved_timeout <= 0 or resolved_timeout > 300:
            raise ConfigError("timeout must be > 0 and <= 300 seconds")
        if resolved_max_retries < 0 or resolved_max_retries > 10:
            raise ConfigError("max_retries must be between 0 and 10")

        stored_token = file_config.get("api_token")
        resolved_token, token_source = _resolve_token(
            api_token, stored_token if isinstance(stored_token, str) else None
        )
    except CodaError as e:
        _emit_error(output if output in _OUTPUT_MODES else "json", command_name, e)

    ctx.obj["output"] = resolved_output
    ctx.obj["base_url"] = resolved_base_url
    ctx.obj["timeout"] = resolved_timeout
    ctx.obj["max_retries"] = resolved_max_retries
    ctx.obj["store"] = store
    ctx.obj["settings_path"] = settings_file
    ctx.obj["api_token"] = resolved_token
    ctx.obj["token_source"] = token_source
    ctx.obj["config_error"] = config_error

    if ctx.invoked_subcommand in _COMMANDS_WITHOUT_AUTH:
        return

    if not resolved_token:
        _emit_error(
            resolved_output,
            command_name,
            ConfigError('Not authenticated. Run "coda-ai auth" first or set CODA_API_TOKEN.'),
        )

    client = CodaClient(
        resolved_token,
        resolved_base_url,
        timeout=resolved_timeout,
        max_retries=resolved_max_retries,
    )
    ctx.obj["client"] = client
    ctx.call_on_close(client.close)


# ---------------------------------------------------------------------------
# auth / logout
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", default=None, help="API token to store (prompted for when omitted)")
@click.option(
    "--from-file",
    "from_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Load CODA_API_TOKEN from a .env file",
)
@click.pass_context
def auth(ctx, token, from_file):
    """Validate an API token and store it locally."""
    store = _get_store(ctx)
    try:
        if from_file:
            token = dotenv_values(from_file).get("CODA_API_TOKEN") or ""
            if not token:
                raise ValidationError(f"CODA_API_TOKEN not found in {from_file}")
        elif not token:
            token = click.prompt(
                "Enter your Coda API token",
                hide_input=True,
                default=None if ctx.obj.get("config_error") else (store.get() or None),
                show_default=False,
                err=True,
            )

        token = (token or "").strip()
        if not token:
            raise ValidationError("API token is required")

        client = CodaClient(
            token,
            ctx.obj["base_url"],
            timeout=ctx.obj["timeout"],
            max_retries=ctx.obj["max_retries"],
        )
        try:
            user = client.whoami()
        finally:
            client.close()

        store.save(token)
        payload = {"path": str(store.path), "user": user.to_dict()}
        _emit_data(ctx, payload, command_name="auth", human_text=f"Authenticated as {user.name}. Token saved to {store.path}")
    except CodaError as e:
        _exit_with_error(ctx, e)


@main.command()
@click.pass_context
def logout(ctx):
    """Remove the locally stored API token."""
    store = _get_store(ctx)
    try:
        removed = store.delete()
        if removed:
            human = f"Logged out. Credentials removed from {store.path}"
        else:
            human = "No stored credentials found. Nothing to do."
        _emit_data(ctx, {"path": str(store.path), "removed": removed}, command_name="logout", human_text=human)
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# whoami
# ---------------------------------------------------------------------------


@main.command()
@click.pass_context
def whoami(ctx):
    """Show the user the token belongs to."""
    client = _get_client(ctx)
    try:
        _require_command(ctx, "whoami")
        user = client.whoami()
        human = user.name if not user.login_id else f"{user.name} <{user.login_id}>"
        _emit_data(ctx, user.to_dict(), command_name="whoami", human_text=human)
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# docs
# ---------------------------------------------------------------------------


def _allowed_docs(ctx: click.Context, client: CodaClient) -> list[Doc]:
    settings = _get_settings(ctx)
    return [doc for doc in client.iter_docs() if settings.is_doc_allowed(doc.id)]


@main.command()
@click.option("--compact", is_flag=True, help="Only docId and name")
@click.pass_context
def docs(ctx, compact):
    """List accessible docs, most recently updated first."""
    client = _get_client(ctx)
    try:
        _require_command(ctx, "docs")
        doc_list = _allowed_docs(ctx, client)
        doc_list.sort(key=lambda d: d.updated_at or "", reverse=True)
        data = [d.to_dict(compact=compact) for d in doc_list]
        _emit_data(ctx, data, command_name="docs", human_text=format_docs_table(doc_list), meta={"count": len(doc_list)})
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# pages
# ---------------------------------------------------------------------------


@main.command()
@click.option("--doc-id", "--docId", "doc_id", required=True, help="Doc ID or Coda doc URL")
@click.option("--compact", is_flag=True, help="Only pageId, name and children")
@click.pass_context
def pages(ctx, doc_id, compact):
    """Show the page hierarchy of a doc."""
    client = _get_client(ctx)
    try:
        _require_command(ctx, "pages")
        doc_id = _resolve_doc_id(doc_id)
        _require_doc(ctx, doc_id)
        page_list = list(client.iter_pages(doc_id))
        forest = build_page_hierarchy(page_list)
        data = [node.to_dict(compact=compact) for node in forest]
        _emit_data(
            ctx,
            data,
            command_name="pages",
            human_text=format_tree(forest),
            meta={"docId": doc_id, "count": len(page_list)},
        )
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# find
# ---------------------------------------------------------------------------


def _inspect_doc(client: CodaClient, doc: Doc) -> DocNode:
    logger.debug("fetching pages for %s (%s)", doc.name, doc.id)
    return DocNode(doc_id=doc.id, name=doc.name, pages=build_page_hierarchy(client.iter_pages(doc.id)))


def _emit_no_match(ctx: click.Context, message: str) -> None:
    _emit_data(ctx, [], command_name="find", human_text=message, meta={"count": 0, "message": message})


@main.command()
@click.option("--doc", "doc_query", default=None, help="Doc ID, doc URL, or fuzzy doc name")
@click.option("--page", "page_query", default=None, help="Fuzzy page name")
@click.option(
    "--threshold",
    default=DEFAULT_THRESHOLD,
    show_default=True,
    type=click.FloatRange(0.0, 1.0),
    help="Minimum name similarity (0-1) for fuzzy matches",
)
@click.pass_context
def find(ctx, doc_query, page_query, threshold):
    """Find docs and pages, keeping the path to every matching page."""
    client = _get_client(ctx)
    try:
        _require_command(ctx, "find")

        doc_id = None
        if doc_query:
            if "://" in doc_query:
                doc_id = _resolve_doc_id(doc_query)
            elif looks_like_doc_id(doc_query):
                doc_id = doc_query

        if doc_id:
            _require_doc(ctx, doc_id)
            result = [_inspect_doc(client, client.get_doc(doc_id))]
        else:
            doc_list = _allowed_docs(ctx, client)
            if doc_query:
                doc_list = search_by_name(doc_list, doc_query, threshold)
                if not doc_list:
                    _emit_no_match(ctx, f'No docs found matching "{doc_query}"')
                    return
            result = [_inspect_doc(client, doc) for doc in doc_list]

        if page_query:
            result = [dataclasses.replace(doc, pages=filter_tree(doc.pages, page_query, threshold)) for doc in result]
            result = [doc for doc in result if doc.pages]
            if not result:
                _emit_no_match(ctx, f'No pages found matching "{page_query}"')
                return

        data = [doc.to_dict() for doc in result]
        _emit_data(ctx, data, command_name="find", human_text=format_doc_tree(result), meta={"count": len(result)})
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# read
# ---------------------------------------------------------------------------


def _inspect_page(client: CodaClient, doc_id: str, page_id: str) -> dict:
    """Page metadata plus the tables, formulas and controls placed on it."""
    page = client.get_page(doc_id, page_id)

    page_tables = [t for t in client.iter_tables(doc_id) if t.parent and t.parent.id == page_id]
    tables = []
    for table in page_tables:
        columns = client.list_columns(doc_id, table.id)
        rows = client.sample_rows(doc_id, table.id, limit=_SAMPLE_ROW_LIMIT)
        tables.append({
            "id": table.id,
            "name": table.name,
            "type": table.type,
            "rowCount": table.row_count,
            "columns": [c.to_dict() for c in columns],
            "sampleRows": [r.to_dict() for r in rows],
        })

    formulas = [f.to_dict() for f in client.iter_formulas(doc_id) if f.parent and f.parent.id == page_id]
    controls = [c.to_dict() for c in client.iter_controls(doc_id) if c.parent and c.parent.id == page_id]

    try:
        content = client.export_page_content(doc_id, page_id, "markdown")
    except CodaError as exc:
        logger.warning("Content export for page %s failed: %s", page_id, exc.message)
        content = None

    return {
        "page": {"id": page.id, "name": page.name, "type": page.type},
        "tables": tables,
        "formulas": formulas,
        "controls": controls,
        "content": content,
    }


@main.command()
@click.option("--doc-id", "--docId", "doc_id", required=True, help="Doc ID or Coda doc URL")
@click.option("--page-id", "--pageId", "page_id", required=True, help="Page ID")
@click.option(
    "--format",
    "-f",
    "fmt",
    default="markdown",
    type=click.Choice(["markdown", "html", "json"]),
    help="markdown/html export the page; json inspects its tables, formulas and controls",
)
@click.pass_context
def read(ctx, doc_id, page_id, fmt):
    """Read page content."""
    client = _get_client(ctx)
    try:
        doc_id = _resolve_doc_id(doc_id)
        page_id = (page_id or "").strip()
        if not page_id:
            raise ValidationError("Page ID is required")
        _require_command(ctx, "read")
        _require_doc(ctx, doc_id)

        if fmt == "json":
            _require_operation(ctx, "pages", "inspect")
            payload = _inspect_page(client, doc_id, page_id)
            _emit_data(ctx, payload, command_name="read", human_text=format_page_inspection(payload))
            return

        _require_operation(ctx, "pages", "export")
        content = client.export_page_content(doc_id, page_id, fmt)
        payload = {"docId": doc_id, "pageId": page_id, "format": fmt, "content": content}
        _emit_data(ctx, payload, command_name="read", human_text=content)
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@main.group()
def config():
    """Manage local CLI configuration."""


@config.command(name="path")
@click.pass_context
def config_path(ctx):
    """Show effective config path."""
    store = _get_store(ctx)
    payload = {"path": str(store.path), "exists": store.exists()}
    _emit_data(ctx, payload, command_name="config.path", human_text=str(store.path))


@config.command(name="init")
@click.option("--force", is_flag=True, help="Overwrite existing config file")
@click.pass_context
def config_init(ctx, force):
    """Create a local config template."""
    store = _get_store(ctx)
    template = {
        "api_token": "",
        "base_url": DEFAULT_BASE_URL,
        "output": "json",
        "timeout": 30.0,
        "max_retries": 3,
    }
    try:
        created = store.write(template, force=force)
        human = f"{'created' if created else 'exists'}: {store.path}"
        _emit_data(ctx, {"path": str(store.path), "created": created}, command_name="config.init", human_text=human)
    except CodaError as e:
        _exit_with_error(ctx, e)


# ---------------------------------------------------------------------------
# doctor
# ---------------------------------------------------------------------------


def _doctor_check_config(ctx: click.Context) -> dict:
    """Check config file existence, validity, and permissions."""
    check = {"name": "config", "status": "pass"}
    store = _get_store(ctx)
    if not store.exists():
        check["status"] = "warn"
        check["message"] = "No config file found (optional but recommended)"
        check["hint"] = "Run: coda-ai config init"
        return check

    check["path"] = str(store.path)
    err = ctx.obj.get("config_error")
    if err is not None:
        check["status"] = "fail"
        check["message"] = err.message
        if "permissions" in err.message:
            check["hint"] = f"Run: chmod 600 {store.path}"
        return check

    check["message"] = "Config loaded OK"
    return check


def _doctor_check_token(ctx: click.Context) -> dict:
    """Check API token presence and source."""
    check = {"name": "api_token", "status": "pass"}
    source = ctx.obj.get("token_source")
    if not source:
        check["status"] = "fail"
        check["message"] = "No API token found"
        check["hint"] = 'Run "coda-ai auth" or set CODA_API_TOKEN'
        return check
    check["source"] = source
    check["message"] = f"API token found (source: {source})"
    return check


def _doctor_check_settings(ctx: click.Context) -> dict:
    """Check the permission settings file parses."""
    check = {"name": "settings", "status": "pass"}
    try:
        settings = _get_settings(ctx)
    except CodaError as e:
        check["status"] = "fail"
        check["message"] = e.message
        return check

    if settings.path is None:
        check["message"] = "No settings file; all commands and docs allowed"
    else:
        check["path"] = str(settings.path)
        check["message"] = "Settings loaded OK"
    return check


def _doctor_check_connectivity(ctx: click.Context) -> dict:
    """Probe upstream API with /whoami."""
    check = {"name": "connectivity", "status": "pass"}
    api_token = ctx.obj.get("api_token")
    if not api_token:
        check["status"] = "skip"
        check["message"] = "Skipped (no API token)"
        return check

    client = CodaClient(api_token, ctx.obj["base_url"], timeout=ctx.obj["timeout"], max_retries=0)
    try:
        user = client.whoami()
        check["message"] = f"API reachable, token valid ({user.name})"
    except CodaError as e:
        if e.status_code in {401, 403}:
            check["status"] = "fail"
            check["message"] = f"Auth failed: {e.message}"
        elif e.status_code == 429:
            check["status"] = "warn"
            check["message"] = "Rate limited (API is reachable but throttled)"
        elif e.code in {"TIMEOUT", "NETWORK"}:
            check["status"] = "fail"
            check["message"] = f"Cannot reach API: {e.message}"
        elif e.status_code >= 500:
            check["status"] = "warn"
            check["message"] = f"API returned server error: {e.message}"
        else:
            check["status"] = "fail"
            check["message"] = f"{e.code}: {e.message}"
    finally:
        client.close()

    return check


@main.command()
@click.pass_context
def doctor(ctx):
    """Run diagnostics on config, token, settings, and API connectivity."""
    checks = [
        _doctor_check_config(ctx),
        _doctor_check_token(ctx),
        _doctor_check_settings(ctx),
        _doctor_check_connectivity(ctx),
    ]

    all_pass = all(c["status"] == "pass" for c in checks)
    any_fail = any(c["status"] == "fail" for c in checks)
    overall = "pass" if all_pass else ("fail" if any_fail else "warn")

    payload = {"status": overall, "checks": checks}

    lines = []
    icons = {"pass": "+", "warn": "!", "fail": "x", "skip": "-"}
    for c in checks:
        icon = icons.get(c["status"], "?")
        line = f"[{icon}] {c['name']}: {c.get('message', c['status'])}"
        hint = c.get("hint")
        if hint:
            line += f"\n    hint: {hint}"
        lines.append(line)
    lines.append(f"\nOverall: {overall}")

    _emit_data(ctx, payload, command_name="doctor", human_text="\n".join(lines))


if __name__ == "__main__":
    main()
