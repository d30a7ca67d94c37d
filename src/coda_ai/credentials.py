"""Local config file holding the API token and CLI defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path

from .errors import ConfigError

TOKEN_KEY = "api_token"


def default_config_path() -> Path:
    override = os.environ.get("CODA_AI_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".coda-ai" / "config.json"


class CredentialStore:
    """JSON key-value file at a fixed path.

    The token lives under ``api_token``; any other keys are CLI settings
    and survive save() and delete().
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, *, check_permissions: bool = True) -> dict:
        if not self.path.exists():
            return {}
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"Unable to read config file: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file: {self.path}") from exc

        if not isinstance(parsed, dict):
            raise ConfigError(f"Config file must contain a JSON object: {self.path}")

        if check_permissions:
            self._check_permissions(parsed)
        return parsed

    def _check_permissions(self, payload: dict) -> None:
        if os.name == "nt":
            return
        if TOKEN_KEY not in payload:
            return
        mode = self.path.stat().st_mode & 0o777
        if mode & 0o077:
            raise ConfigError(f"Insecure config permissions on {self.path} (expected 600)")

    def write(self, payload: dict, *, force: bool = True) -> bool:
        """Write the whole file; returns False when it exists and force is off."""
        if not force and self.path.exists():
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # created 0600; the chmod covers a file that already existed
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(payload, indent=2) + "\n")
            if os.name != "nt":
                self.path.chmod(0o600)
        except OSError as exc:
            raise ConfigError(f"Failed to write config: {self.path}") from exc
        return True

    def get(self) -> str | None:
        token = self.load().get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        # write() resets the mode, so a loose one is not an error here
        payload = self.load(check_permissions=False)
        payload[TOKEN_KEY] = token
        self.write(payload)

    def delete(self) -> bool:
        """Forget the token. Returns whether one was stored."""
        if not self.path.exists():
            return False
        payload = self.load(check_permissions=False)
        existed = bool(payload.pop(TOKEN_KEY, None))
        if payload:
            self.write(payload)
        else:
            try:
                self.path.unlink()
            except OSError as exc:
                raise ConfigError(f"Failed to remove config: {self.path}") from exc
        return existed
