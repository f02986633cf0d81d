"""Mailbox path and timing resolution for the file-based bridge."""

from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Dict


_DEFAULT_COMMAND_FILE_NAME = "mcp-svstudio-command.json"
_DEFAULT_RESPONSE_FILE_NAME = "mcp-svstudio-command-response.json"
_DEFAULT_STATE_FILE_NAME = "mcp-svstudio-state.txt"
_DEFAULT_RESPONSE_TIMEOUT_MS = 10000
_DEFAULT_POLL_INTERVAL_MS = 100
_DEFAULT_CONFIG_PATH = os.path.expanduser("~/.svstudio_mcp/config.json")


def get_config_path() -> str:
    """Return the optional JSON config path, honoring SVSTUDIO_MCP_CONFIG."""
    override = os.environ.get("SVSTUDIO_MCP_CONFIG")
    if isinstance(override, str) and override.strip():
        return os.path.abspath(os.path.expanduser(override.strip()))
    return _DEFAULT_CONFIG_PATH


def _load_mailbox_config(warnings: list) -> Dict[str, Any]:
    """Read the shared mailbox settings file; an absent file means no overrides."""
    config_path = get_config_path()
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError):
        warnings.append(f"unreadable_config:{config_path}")
        return {}
    if not isinstance(payload, dict):
        warnings.append(f"unreadable_config:{config_path}")
        return {}
    return payload


def _mailbox_setting(settings: Dict[str, Any], key: str, env_key: str, default: Any) -> Any:
    """Pick one mailbox setting: non-blank env var, then config entry, then default."""
    from_env = os.environ.get(env_key)
    if from_env is not None and from_env.strip():
        return from_env
    value = settings.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return value


def get_default_mailbox_dir() -> str:
    """Directory shared by both sides when no explicit paths are configured."""
    return tempfile.gettempdir()


def _resolve_file(config_payload: Dict[str, Any], key: str, env_key: str, file_name: str) -> str:
    default = os.path.join(get_default_mailbox_dir(), file_name)
    value = str(_mailbox_setting(config_payload, key, env_key, default)).strip() or default
    return os.path.abspath(os.path.expanduser(value))


def _resolve_positive_ms(
    config_payload: Dict[str, Any],
    key: str,
    env_key: str,
    default: int,
    warnings: list,
) -> int:
    raw = _mailbox_setting(config_payload, key, env_key, default)
    try:
        value = int(float(raw))
    except (TypeError, ValueError):
        warnings.append(f"invalid_{key}:{raw}")
        return default
    if value <= 0:
        warnings.append(f"invalid_{key}:{raw}")
        return default
    return value


def resolve_pathing() -> Dict[str, Any]:
    """Resolve mailbox files and polling timings.

    Order per setting:
    1) environment variable
    2) optional JSON config file
    3) built-in default (files under the system temp directory)
    """
    warnings = []
    config_payload = _load_mailbox_config(warnings)

    command_file = _resolve_file(config_payload, "command_file", "COMMAND_FILE", _DEFAULT_COMMAND_FILE_NAME)
    response_file = _resolve_file(config_payload, "response_file", "RESPONSE_FILE", _DEFAULT_RESPONSE_FILE_NAME)
    state_file = _resolve_file(config_payload, "state_file", "STATE_FILE", _DEFAULT_STATE_FILE_NAME)

    response_timeout_ms = _resolve_positive_ms(
        config_payload,
        key="response_timeout_ms",
        env_key="SVSTUDIO_MCP_RESPONSE_TIMEOUT_MS",
        default=_DEFAULT_RESPONSE_TIMEOUT_MS,
        warnings=warnings,
    )
    poll_interval_ms = _resolve_positive_ms(
        config_payload,
        key="poll_interval_ms",
        env_key="SVSTUDIO_MCP_POLL_INTERVAL_MS",
        default=_DEFAULT_POLL_INTERVAL_MS,
        warnings=warnings,
    )

    return {
        "config_path": get_config_path(),
        "command_file": command_file,
        "response_file": response_file,
        "state_file": state_file,
        "response_timeout_ms": response_timeout_ms,
        "poll_interval_ms": poll_interval_ms,
        "warnings": warnings,
    }


def ensure_mailbox_dirs() -> Dict[str, Any]:
    """Ensure the parent directories of all mailbox files exist."""
    resolved = resolve_pathing()
    for key in ("command_file", "response_file", "state_file"):
        os.makedirs(os.path.dirname(resolved[key]), exist_ok=True)
    return resolved


def read_liveness_state(state_file: str) -> str:
    """Return the liveness value recorded in the state file.

    A missing file reads as ``running``.
    """
    try:
        with open(state_file, "r", encoding="utf-8") as handle:
            value = handle.read().strip()
    except FileNotFoundError:
        return "running"
    return value or "running"


def bootstrap_mailbox() -> Dict[str, Any]:
    """Create mailbox directories and clear stale command/response contents."""
    resolved = ensure_mailbox_dirs()
    cleared = []
    for key in ("command_file", "response_file"):
        with open(resolved[key], "w", encoding="utf-8"):
            pass
        cleared.append(resolved[key])
    return {
        "ok": True,
        "pathing": resolved,
        "cleared": cleared,
        "warnings": list(resolved.get("warnings", [])),
    }
