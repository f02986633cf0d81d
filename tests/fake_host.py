"""In-memory stand-in for the Synthesizer V Studio object model used by the host script."""

from types import SimpleNamespace

QUARTER = 705600000


class FakeNote:
    def __init__(self, lyrics="", onset=0, duration=QUARTER, pitch=60):
        self._lyrics = lyrics
        self._onset = onset
        self._duration = duration
        self._pitch = pitch

    def getLyrics(self):
        return self._lyrics

    def setLyrics(self, value):
        self._lyrics = value

    def getOnset(self):
        return self._onset

    def setOnset(self, value):
        self._onset = value

    def getDuration(self):
        return self._duration

    def setDuration(self, value):
        self._duration = value

    def getPitch(self):
        return self._pitch

    def setPitch(self, value):
        self._pitch = value


class FakeNoteGroup:
    def __init__(self, notes=None):
        self.notes = list(notes or [])

    def getNumNotes(self):
        return len(self.notes)

    def getNote(self, index):
        if not isinstance(index, int) or index < 1 or index > len(self.notes):
            raise IndexError("note index out of range: {0}".format(index))
        return self.notes[index - 1]

    def addNote(self, note):
        self.notes.append(note)
        return len(self.notes)


class FakeNoteGroupReference:
    def __init__(self, target=None):
        self._target = target

    def getTarget(self):
        return self._target

    def setTarget(self, group):
        self._target = group


class FakeTrack:
    """A track always starts with its main group reference, as in the editor."""

    def __init__(self, name="Unnamed Track"):
        self._name = name
        self.group_refs = [FakeNoteGroupReference(FakeNoteGroup())]

    def getName(self):
        return self._name

    def setName(self, name):
        self._name = name

    def getNumGroups(self):
        return len(self.group_refs)

    def getGroupReference(self, index):
        if index < 1 or index > len(self.group_refs):
            raise IndexError("group index out of range: {0}".format(index))
        return self.group_refs[index - 1]

    def addGroupReference(self, group_ref):
        self.group_refs.append(group_ref)


class FakeTimeAxis:
    def __init__(self, bpm=120.0, numerator=4, denominator=4):
        self.bpm = bpm
        self.numerator = numerator
        self.denominator = denominator

    def getTempoMarkAt(self, blick):
        return SimpleNamespace(position=0, bpm=self.bpm)

    def getMeasureMarkAtBlick(self, blick):
        return SimpleNamespace(position=0, numerator=self.numerator, denominator=self.denominator)


class FakeProject:
    def __init__(self, file_name="/projects/demo.svp", time_axis=None):
        self.file_name = file_name
        self.time_axis = time_axis or FakeTimeAxis()
        self.tracks = []
        self.note_groups = []

    def getFileName(self):
        return self.file_name

    def getTimeAxis(self):
        return self.time_axis

    def getNumTracks(self):
        return len(self.tracks)

    def getTrack(self, index):
        return self.tracks[index - 1]

    def addTrack(self, track):
        self.tracks.append(track)
        return len(self.tracks)

    def addNoteGroup(self, group):
        self.note_groups.append(group)


class FakeHost:
    """Host API double; ``setTimeout`` callbacks are queued and run by ``run_next``."""

    QUARTER = QUARTER

    def __init__(self, project=None):
        self.project = project or FakeProject()
        self.scheduled = []
        self.finished = False

    def getProject(self):
        return self.project

    def create(self, type_name):
        if type_name == "Track":
            return FakeTrack()
        if type_name == "NoteGroup":
            return FakeNoteGroup()
        if type_name == "NoteGroupReference":
            return FakeNoteGroupReference()
        if type_name == "Note":
            return FakeNote()
        raise ValueError("Unknown object type: {0}".format(type_name))

    def setTimeout(self, delay_ms, callback):
        self.scheduled.append((delay_ms, callback))

    def finish(self):
        self.finished = True

    def run_next(self):
        delay_ms, callback = self.scheduled.pop(0)
        callback()
        return delay_ms


def build_demo_project():
    """Two tracks: "Vocal" holds two notes in its second group, "Harmony" is empty."""
    project = FakeProject(file_name="/projects/demo.svp")

    vocal = FakeTrack("Vocal")
    vocal.addGroupReference(FakeNoteGroupReference(FakeNoteGroup([
        FakeNote("do", 0, QUARTER, 60),
        FakeNote("re", QUARTER, QUARTER, 62),
    ])))
    project.addTrack(vocal)
    project.addTrack(FakeTrack("Harmony"))
    return project
