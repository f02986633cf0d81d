# svstudio_mcp_server.py
from mcp.server.fastmcp import FastMCP, Context
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import Resource
import json
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Any, List, Union, Optional
from MCP_Server.mailbox import (
    BridgeError,
    get_svstudio_mailbox,
    reset_svstudio_mailbox,
)
from MCP_Server.pathing import bootstrap_mailbox

# Configure logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("SVStudioMCPServer")

INVALID_TRACK_ID = "Invalid track ID"
NO_NOTES_PROVIDED = "No notes provided"

# A null field value means the field is not present.
NoteField = Optional[Union[str, int, float]]


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[Dict[str, Any]]:
    """Manage server startup and shutdown lifecycle"""
    try:
        logger.info("SVStudioMCP server starting up")
        try:
            bootstrap_result = bootstrap_mailbox()
            for warning in bootstrap_result.get("warnings", []):
                logger.warning(f"Pathing bootstrap warning: {warning}")
            logger.info(f"Cleared mailbox files: {', '.join(bootstrap_result['cleared'])}")
        except OSError as bootstrap_exc:
            logger.warning(f"Mailbox bootstrap failed: {str(bootstrap_exc)}")
        reset_svstudio_mailbox()
        yield {}
    finally:
        reset_svstudio_mailbox()
        logger.info("SVStudioMCP server shut down")


class SVStudioFastMCP(FastMCP):
    """FastMCP server whose resource listing also names every track of the open project."""

    async def list_resources(self) -> List[Resource]:
        resources = await super().list_resources()
        try:
            tracks = await _execute_command("list_tracks")
        except (BridgeError, ToolError) as e:
            logger.warning(f"Listing only static resources, track lookup failed: {str(e)}")
            return resources
        if not isinstance(tracks, list):
            return resources

        for track in tracks:
            if not isinstance(track, dict) or track.get("id") is None:
                continue
            track_name = track.get("name", "")
            resources.append(Resource(
                uri=f"svstudio://track/{track['id']}",
                name=f"Track: {track_name}",
                description=f'Information about the track "{track_name}"',
                mimeType="application/json",
            ))
        return resources


# Create the MCP server with lifespan support
mcp = SVStudioFastMCP(
    "SVStudioMCP",
    lifespan=server_lifespan
)


async def _execute_command(action: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Round-trip one command through the mailbox.

    Transport and timeout failures propagate as BridgeError. A payload carrying an
    ``error`` field is turned into a ToolError so the client sees it as a tool error.
    """
    mailbox = get_svstudio_mailbox()
    try:
        result = await mailbox.send_command(action, params)
    except BridgeError as e:
        logger.error(f"Error communicating with Synthesizer V Studio ({e.code}): {e.message}")
        raise
    if isinstance(result, dict) and result.get("error"):
        logger.error(f"Synthesizer V Studio rejected {action}: {result['error']}")
        raise ToolError(f"Error: {result['error']}")
    return result


def _parse_track_id(value: Any) -> int:
    """Coerce a tool argument into an integral track id or raise ToolError."""
    if isinstance(value, bool) or value is None:
        raise ToolError(f"Error: {INVALID_TRACK_ID}")
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        raise ToolError(f"Error: {INVALID_TRACK_ID}")
    if not math.isfinite(number) or not number.is_integer():
        raise ToolError(f"Error: {INVALID_TRACK_ID}")
    return int(number)


def _parse_note_id(value: Any) -> int:
    try:
        return _parse_track_id(value)
    except ToolError:
        raise ToolError(f"Error: Invalid note ID: {value!r}")


def _to_number(value: Any) -> Union[int, float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        raise ToolError(f"Error: Invalid numeric value: {value!r}")
    if not math.isfinite(number):
        raise ToolError(f"Error: Invalid numeric value: {value!r}")
    return int(number) if number.is_integer() else number


def _require_notes(notes: Any) -> List[Dict[str, Any]]:
    if not isinstance(notes, list) or len(notes) == 0:
        raise ToolError(f"Error: {NO_NOTES_PROVIDED}")
    for note in notes:
        if not isinstance(note, dict):
            raise ToolError("Error: Each note must be an object")
    return notes


def _coerce_note_fields(note: Dict[str, Any]) -> Dict[str, Any]:
    """Copy only the note fields that are present, with their wire types."""
    coerced = {}
    if note.get("lyrics") is not None:
        coerced["lyrics"] = str(note["lyrics"])
    for key in ("startTime", "duration", "pitch"):
        if note.get(key) is not None:
            coerced[key] = _to_number(note[key])
    return coerced


@mcp.tool()
async def get_project_info(ctx: Context) -> str:
    """Get information about the current Synthesizer V Studio project"""
    result = await _execute_command("get_project_info")
    return json.dumps(result, indent=2)


@mcp.tool()
async def list_tracks(ctx: Context) -> str:
    """List all tracks in the current project"""
    result = await _execute_command("list_tracks")
    return json.dumps(result, indent=2)


@mcp.tool()
async def get_track_notes(ctx: Context, trackId: Union[str, int]) -> str:
    """
    Get all notes in a specific track.

    Parameters:
    - trackId: ID of the track (1-based position, as returned by list_tracks)
    """
    track_id = _parse_track_id(trackId)
    result = await _execute_command("get_track_notes", {"trackId": track_id})
    return json.dumps(result, indent=2)


@mcp.tool()
async def add_notes(
    ctx: Context,
    trackId: Union[str, int],
    notes: List[Dict[str, NoteField]]
) -> str:
    """
    Add one or more notes to a track.

    Parameters:
    - trackId: ID of the track
    - notes: List of note dictionaries, each with lyrics, startTime (ticks),
      duration (ticks) and pitch (MIDI 0-127). Missing fields fall back to
      "", 0, one beat and 60.
    """
    track_id = _parse_track_id(trackId)
    notes = _require_notes(notes)
    result = await _execute_command("add_notes", {
        "trackId": track_id,
        "notes": [_coerce_note_fields(note) for note in notes]
    })
    if isinstance(result, dict) and result.get("message"):
        return str(result["message"])
    return f"{len(notes)} notes added successfully"


@mcp.tool()
async def edit_notes(
    ctx: Context,
    trackId: Union[str, int],
    notes: List[Dict[str, NoteField]]
) -> str:
    """
    Edit one or more notes.

    Parameters:
    - trackId: ID of the track
    - notes: List of note dictionaries. Each needs the note id; lyrics, startTime,
      duration and pitch are only changed when given.
    """
    track_id = _parse_track_id(trackId)
    notes = _require_notes(notes)
    payload_notes = []
    for note in notes:
        if note.get("id") is None:
            raise ToolError("Error: Each note must include an id")
        edited = {"id": _parse_note_id(note["id"])}
        edited.update(_coerce_note_fields(note))
        payload_notes.append(edited)

    result = await _execute_command("edit_notes", {
        "trackId": track_id,
        "notes": payload_notes
    })
    if isinstance(result, dict) and result.get("message"):
        return str(result["message"])
    return f"{len(notes)} notes edited successfully"


@mcp.tool()
async def add_track(ctx: Context, name: Optional[str] = None) -> str:
    """
    Add a new track to the project.

    Parameters:
    - name: Name of the new track (default: "New Track")
    """
    track_name = name or "New Track"
    result = await _execute_command("add_track", {"name": track_name})
    if isinstance(result, dict) and result.get("message"):
        return str(result["message"])
    track_id = result.get("trackId") if isinstance(result, dict) else None
    return f'Track "{track_name}" added successfully with ID {track_id}'


@mcp.resource(
    uri="svstudio://project",
    name="Current Project",
    description="Information about the current Synthesizer V Studio project",
    mime_type="application/json",
)
async def project_resource() -> str:
    result = await _execute_command("get_project_info")
    return json.dumps(result, indent=2)


@mcp.resource(
    uri="svstudio://track/{track_id}",
    name="Track",
    description="A track of the current project together with its notes",
    mime_type="application/json",
)
async def track_resource(track_id: str) -> str:
    try:
        parsed_id = _parse_track_id(track_id)
    except ToolError:
        raise ValueError(f"Invalid track ID: {track_id}")

    try:
        notes = await _execute_command("get_track_notes", {"trackId": parsed_id})
    except ToolError as e:
        raise ValueError(str(e))

    tracks = await _execute_command("list_tracks")
    track = None
    if isinstance(tracks, list):
        track = next((row for row in tracks if isinstance(row, dict) and row.get("id") == parsed_id), None)
    if track is None:
        raise ValueError(f"Track with ID {parsed_id} not found")

    track_data = dict(track)
    track_data["notes"] = notes
    return json.dumps(track_data, indent=2)


# Main execution
def main():
    """Run the MCP server"""
    mcp.run()

if __name__ == "__main__":
    main()
