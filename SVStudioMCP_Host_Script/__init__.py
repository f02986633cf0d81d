# SVStudioMCP_Host_Script/__init__.py
"""Host-side executor for the SVStudio MCP bridge.

Runs inside the Synthesizer V Studio scripting environment. The host object model is
injected as ``host`` (``getProject``, ``create``, ``setTimeout``, ``finish``,
``QUARTER``), and the executor drives itself with ``host.setTimeout`` so at most one
command runs per tick.
"""
import json
import logging
import os
import tempfile

logger = logging.getLogger("SVStudioMCP")

# Constants for file communication
POLL_INTERVAL = 500
COMMAND_FILE = os.path.join(tempfile.gettempdir(), "mcp-svstudio-command.json")
RESPONSE_FILE = os.path.join(tempfile.gettempdir(), "mcp-svstudio-command-response.json")
STATE_FILE = os.path.join(tempfile.gettempdir(), "mcp-svstudio-state.txt")

STATE_RUNNING = "running"
STATE_TERMINATED = "terminated"

INVALID_TRACK_ID = "Invalid track ID"
NO_NOTES_PROVIDED = "No notes provided"
DEFAULT_TRACK_NAME = "New Track"
DEFAULT_PITCH = 60


def _read_file(path):
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def _write_file(path, text):
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(text)


def create_instance(host, command_file=COMMAND_FILE, response_file=RESPONSE_FILE,
                    state_file=STATE_FILE, poll_interval=POLL_INTERVAL):
    """Create the executor and start its poll loop"""
    instance = SVStudioMCP(host, command_file, response_file, state_file, poll_interval)
    instance.start()
    return instance


def stop_instance(host=None, state_file=STATE_FILE):
    """Request termination; a running poll loop stops at its next tick"""
    _write_file(state_file, STATE_TERMINATED)
    logger.info("SVStudioMCP stop requested")
    if host is not None:
        host.finish()


class SVStudioMCP(object):
    """Command executor polling the mailbox files from inside Synthesizer V Studio"""

    def __init__(self, host, command_file=COMMAND_FILE, response_file=RESPONSE_FILE,
                 state_file=STATE_FILE, poll_interval=POLL_INTERVAL):
        self.host = host
        self.command_file = command_file
        self.response_file = response_file
        self.state_file = state_file
        self.poll_interval = poll_interval
        self.finished = False

    def start(self):
        """Mark the executor running and schedule the first tick"""
        _write_file(self.state_file, STATE_RUNNING)
        self.finished = False
        logger.info("SVStudioMCP polling " + self.command_file)
        self._schedule()

    def _schedule(self):
        self.host.setTimeout(self.poll_interval, self._tick)

    def _tick(self):
        self.poll_once()
        if self.is_terminated():
            logger.info("SVStudioMCP terminated")
            self.finished = True
            self.host.finish()
        else:
            self._schedule()

    def fetch_state(self):
        """Read the liveness value, creating the state file if it is missing"""
        try:
            return _read_file(self.state_file)
        except FileNotFoundError:
            _write_file(self.state_file, STATE_RUNNING)
            return STATE_RUNNING

    def is_terminated(self):
        return self.fetch_state().strip() == STATE_TERMINATED

    def poll_once(self):
        """Consume and execute the pending command, if any.

        The command file is cleared before execution, so a command whose handler
        raises is lost and never answered.
        """
        try:
            command_json = _read_file(self.command_file)
        except FileNotFoundError:
            return False
        if not command_json or not command_json.strip():
            return False

        _write_file(self.command_file, "")
        self.execute_command(command_json)
        return True

    def execute_command(self, command_json):
        """Parse one command, run its handler and write the response"""
        try:
            command = json.loads(command_json)
        except ValueError:
            logger.warning("Discarding malformed command: " + command_json[:200])
            command = None
        if not isinstance(command, dict):
            self.write_response({"error": "Invalid command"})
            return

        request_id = command.get("requestId")
        logger.info("Received command: " + str(command.get("action", "unknown")))
        try:
            result = self._process_command(command)
        except Exception:
            logger.exception("Error executing command " + str(command.get("action")))
            raise
        self.write_response(result, request_id)

    def write_response(self, data, request_id=None):
        """Write the response as JSON, wrapped with the request id when one was sent"""
        if request_id is not None:
            data = {"requestId": request_id, "result": data}
        _write_file(self.response_file, json.dumps(data))

    def _process_command(self, command):
        """Route a command to its handler and return the response payload"""
        action = command.get("action")

        if action == "get_project_info":
            return self._get_project_info()
        elif action == "list_tracks":
            return self._list_tracks()
        elif action == "get_track_notes":
            return self._get_track_notes(command.get("trackId"))
        elif action == "add_notes":
            return self._add_notes(command.get("trackId"), command.get("notes"))
        elif action == "edit_notes":
            return self._edit_notes(command.get("trackId"), command.get("notes"))
        elif action == "add_track":
            return self._add_track(command.get("name"))
        return {"error": "Unknown command: " + str(action)}

    # Command implementations

    def _project(self):
        return self.host.getProject()

    def _resolve_track(self, project, track_id):
        """Return the track for a 1-based id, or None when the id is not addressable"""
        if isinstance(track_id, bool) or track_id is None:
            return None
        try:
            number = float(track_id)
        except (TypeError, ValueError):
            return None
        if not number.is_integer():
            return None
        index = int(number)
        if index < 1 or index > project.getNumTracks():
            return None
        return project.getTrack(index)

    def _iter_groups(self, track):
        for i in range(1, track.getNumGroups() + 1):
            yield track.getGroupReference(i).getTarget()

    def _attach_new_group(self, project, track):
        group = self.host.create("NoteGroup")
        group_ref = self.host.create("NoteGroupReference")
        project.addNoteGroup(group)
        group_ref.setTarget(group)
        track.addGroupReference(group_ref)
        return group

    def _editable_group(self, project, track):
        """Notes are added to and edited in the track's second group"""
        if track.getNumGroups() < 2:
            self._attach_new_group(project, track)
        return track.getGroupReference(2).getTarget()

    def _get_project_info(self):
        project = self._project()
        time_axis = project.getTimeAxis()
        measure_mark = time_axis.getMeasureMarkAtBlick(0)
        path = project.getFileName()
        return {
            "name": os.path.basename(path) if path else "",
            "path": path,
            "tempo": time_axis.getTempoMarkAt(0).bpm,
            "timeSignature": str(measure_mark.numerator) + "/" + str(measure_mark.denominator),
            "trackCount": project.getNumTracks(),
            "ticksPerBeat": self.host.QUARTER,
        }

    def _list_tracks(self):
        project = self._project()
        tracks = []
        for i in range(1, project.getNumTracks() + 1):
            track = project.getTrack(i)
            count = 0
            for group in self._iter_groups(track):
                count += group.getNumNotes()
            tracks.append({
                "id": i,
                "name": track.getName(),
                "noteCount": count,
            })
        return tracks

    def _get_track_notes(self, track_id):
        track = self._resolve_track(self._project(), track_id)
        if track is None:
            return {"error": INVALID_TRACK_ID}

        notes = []
        note_id = 1
        for group in self._iter_groups(track):
            for j in range(1, group.getNumNotes() + 1):
                note = group.getNote(j)
                notes.append({
                    "id": note_id,
                    "lyrics": note.getLyrics(),
                    "startTime": note.getOnset(),
                    "duration": note.getDuration(),
                    "pitch": note.getPitch(),
                })
                note_id += 1
        return notes

    def _add_notes(self, track_id, notes):
        project = self._project()
        track = self._resolve_track(project, track_id)
        if track is None:
            return {"error": INVALID_TRACK_ID}
        if not isinstance(notes, list) or len(notes) == 0:
            return {"error": NO_NOTES_PROVIDED}

        group = self._editable_group(project, track)
        added_note_ids = []
        for note_data in notes:
            note = self.host.create("Note")
            note.setLyrics(_field(note_data, "lyrics", ""))
            note.setOnset(_field(note_data, "startTime", 0))
            note.setDuration(_field(note_data, "duration", self.host.QUARTER))
            note.setPitch(_field(note_data, "pitch", DEFAULT_PITCH))
            group.addNote(note)
            added_note_ids.append(group.getNumNotes())

        if len(added_note_ids) == 1:
            message = "Note added successfully"
        else:
            message = str(len(added_note_ids)) + " notes added successfully"
        return {
            "message": message,
            "noteIds": added_note_ids,
        }

    def _edit_notes(self, track_id, notes):
        project = self._project()
        track = self._resolve_track(project, track_id)
        if track is None:
            return {"error": INVALID_TRACK_ID}
        if not isinstance(notes, list) or len(notes) == 0:
            return {"error": NO_NOTES_PROVIDED}

        group = self._editable_group(project, track)
        edited_note_ids = []
        for note_data in notes:
            # An id outside the group is a host fault and aborts the tick.
            note = group.getNote(note_data["id"])
            if note_data.get("lyrics") is not None:
                note.setLyrics(note_data["lyrics"])
            if note_data.get("startTime") is not None:
                note.setOnset(note_data["startTime"])
            if note_data.get("duration") is not None:
                note.setDuration(note_data["duration"])
            if note_data.get("pitch") is not None:
                note.setPitch(note_data["pitch"])
            edited_note_ids.append(note_data["id"])

        if len(edited_note_ids) == 1:
            message = "Note edited successfully"
        else:
            message = str(len(edited_note_ids)) + " notes edited successfully"
        return {
            "message": message,
            "noteIds": edited_note_ids,
        }

    def _add_track(self, name):
        project = self._project()
        track_name = name or DEFAULT_TRACK_NAME

        track = self.host.create("Track")
        track.setName(track_name)
        project.addTrack(track)
        self._attach_new_group(project, track)

        return {
            "message": "Track added successfully",
            "trackId": project.getNumTracks(),
            "name": track_name,
        }


def _field(note_data, key, default):
    if isinstance(note_data, dict) and note_data.get(key) is not None:
        return note_data[key]
    return default
