"""Single-slot file mailbox shared with the Synthesizer V Studio host script."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from MCP_Server.pathing import resolve_pathing

logger = logging.getLogger("SVStudioMCPServer.mailbox")

_REQUEST_ID_KEY = "requestId"


class BridgeError(Exception):
    """Structured error for a failed round trip through the mailbox."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class BridgeTransportError(BridgeError):
    """Reading or writing a mailbox file failed."""

    def __init__(self, message: str):
        super().__init__("transport_failed", message)


class BridgeTimeoutError(BridgeError):
    """The host script did not answer within the response timeout."""

    def __init__(self, message: str):
        super().__init__("response_timeout", message)


def _new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass
class SVStudioMailbox:
    command_file: str
    response_file: str
    response_timeout_ms: int = 10000
    poll_interval_ms: int = 100
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def write_command(self, action: str, params: Optional[Dict[str, Any]] = None,
                      request_id: Optional[str] = None) -> Dict[str, Any]:
        """Replace the command file with ``{action, requestId, ...params}``.

        The payload lands in a sibling temp file first and is moved into place, so the
        host never reads a partial command.
        """
        command = {"action": action}
        if request_id is not None:
            command[_REQUEST_ID_KEY] = request_id
        for key, value in (params or {}).items():
            if key in ("action", _REQUEST_ID_KEY):
                continue
            command[key] = value

        directory = os.path.dirname(self.command_file) or "."
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(command, handle)
            os.replace(tmp_path, self.command_file)
        except OSError as e:
            logger.error(f"Error writing command: {str(e)}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.warning(f"Could not remove temp command file {tmp_path}")
            raise BridgeTransportError(f"Failed to write command to file: {str(e)}") from e
        return command

    def _try_take_response(self, request_id: Optional[str]) -> tuple:
        """Return ``(True, value)`` when a response for ``request_id`` was consumed."""
        if not os.path.exists(self.response_file):
            return False, None
        with open(self.response_file, "r", encoding="utf-8") as handle:
            raw = handle.read()
        if not raw.strip():
            return False, None

        payload = json.loads(raw)
        if isinstance(payload, dict) and _REQUEST_ID_KEY in payload:
            if payload.get(_REQUEST_ID_KEY) != request_id:
                # Belongs to another caller; leave it for them.
                return False, None
            value = payload.get("result")
        else:
            value = payload

        with open(self.response_file, "w", encoding="utf-8"):
            pass
        return True, value

    async def read_response(self, request_id: Optional[str] = None) -> Any:
        """Poll the response file until the answer arrives or the timeout elapses."""
        timeout_sec = self.response_timeout_ms / 1000.0
        interval_sec = self.poll_interval_ms / 1000.0
        started = time.monotonic()

        while True:
            try:
                found, value = self._try_take_response(request_id)
                if found:
                    return value
            except (OSError, ValueError) as e:
                logger.debug(f"Transient response read failure, retrying: {str(e)}")

            remaining = timeout_sec - (time.monotonic() - started)
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval_sec, remaining))

        logger.error(f"No response from Synthesizer V Studio after {self.response_timeout_ms} ms")
        raise BridgeTimeoutError("Timeout waiting for response from Synthesizer V Studio")

    async def send_command(self, action: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Write one command and wait for its response."""
        async with self._lock:
            request_id = _new_request_id()
            logger.info(f"Sending command: {action} with params: {params}")
            self.write_command(action, params, request_id=request_id)
            result = await self.read_response(request_id)
            logger.info(f"Received response for {action}")
            return result


_svstudio_mailbox: Optional[SVStudioMailbox] = None


def get_svstudio_mailbox() -> SVStudioMailbox:
    """Get or create the process-wide mailbox from resolved pathing."""
    global _svstudio_mailbox
    if _svstudio_mailbox is None:
        resolved = resolve_pathing()
        for warning in resolved.get("warnings", []):
            logger.warning(f"Pathing warning: {warning}")
        _svstudio_mailbox = SVStudioMailbox(
            command_file=resolved["command_file"],
            response_file=resolved["response_file"],
            response_timeout_ms=resolved["response_timeout_ms"],
            poll_interval_ms=resolved["poll_interval_ms"],
        )
    return _svstudio_mailbox


def reset_svstudio_mailbox() -> None:
    """Drop the cached mailbox so the next call re-resolves pathing."""
    global _svstudio_mailbox
    _svstudio_mailbox = None
