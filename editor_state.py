"""Editor model, codecs and the transition function.

Everything here is pure: events go in, a new ApplicationState and a list of
effects come out. The shell in editor_shell.py performs the effects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath


class DecodeError(ValueError):
    pass


class ColorTheme(Enum):
    WHITE = "White"
    DARK = "Dark"


class LayoutMode(Enum):
    WRITE = "Write"
    FOCUS = "Focus"
    READ = "Read"


DEFAULT_NOTE_NAME = "untitled.md"


@dataclass(frozen=True)
class Note:
    name: str = DEFAULT_NOTE_NAME
    last_modified: float | None = None
    text: str = ""

    @property
    def bound(self) -> bool:
        return self.last_modified is not None


@dataclass(frozen=True)
class Preferences:
    color_theme: ColorTheme = ColorTheme.WHITE
    layout_mode: LayoutMode = LayoutMode.WRITE


@dataclass(frozen=True)
class ApplicationState:
    preferences: Preferences = field(default_factory=Preferences)
    note: Note = field(default_factory=Note)
    cloud_files: tuple[str, ...] = ()


# ---------------------------------------------------------------- codecs

def _load_object(raw) -> dict:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(str(e)) from e
    if not isinstance(raw, str):
        raise DecodeError(f"expected JSON text, got {type(raw).__name__}")
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise DecodeError(str(e)) from e
    if not isinstance(value, dict):
        raise DecodeError("expected a JSON object")
    return value


def _enum_value(enum_cls, raw):
    try:
        return enum_cls(raw)
    except ValueError as e:
        raise DecodeError(f"{raw!r} is not a {enum_cls.__name__}") from e


def encode_preferences(prefs: Preferences) -> str:
    return json.dumps({
        "colorTheme": prefs.color_theme.value,
        "layoutMode": prefs.layout_mode.value,
    })


def decode_preferences_strict(raw) -> Preferences:
    obj = _load_object(raw)
    if "colorTheme" not in obj or "layoutMode" not in obj:
        raise DecodeError("preferences need colorTheme and layoutMode")
    return Preferences(
        color_theme=_enum_value(ColorTheme, obj["colorTheme"]),
        layout_mode=_enum_value(LayoutMode, obj["layoutMode"]),
    )


def decode_preferences(raw) -> Preferences:
    """Decode a persisted preference record, falling back to the defaults."""
    try:
        return decode_preferences_strict(raw)
    except DecodeError:
        return Preferences()


def decode_note(raw) -> Note:
    obj = _load_object(raw)
    name = obj.get("name")
    text = obj.get("text")
    if not isinstance(name, str) or not isinstance(text, str):
        raise DecodeError("note needs string name and text")
    last_modified = obj.get("lastModified")
    if last_modified is not None:
        if isinstance(last_modified, bool) or not isinstance(last_modified, (int, float)):
            raise DecodeError("lastModified must be a number or null")
        last_modified = float(last_modified)
    return Note(name=name, last_modified=last_modified, text=text)


def encode_note(note: Note) -> str:
    return json.dumps({"name": note.name, "lastModified": note.last_modified, "text": note.text})


def initial_state(persisted=None) -> ApplicationState:
    if persisted is None:
        return ApplicationState()
    return replace(ApplicationState(), preferences=decode_preferences(persisted))


def note_title(name: str) -> str:
    # "notes/plan.md" -> "plan"
    return PurePosixPath(name).stem


# ---------------------------------------------------------------- menu actions

@dataclass(frozen=True)
class NewFile:
    pass


@dataclass(frozen=True)
class OpenFile:
    pass


@dataclass(frozen=True)
class SaveFile:
    pass


@dataclass(frozen=True)
class ListCloudFiles:
    pass


@dataclass(frozen=True)
class OpenCloudFile:
    name: str


@dataclass(frozen=True)
class SaveCloudFile:
    pass


@dataclass(frozen=True)
class ChangeTheme:
    theme: ColorTheme


@dataclass(frozen=True)
class ChangeLayout:
    mode: LayoutMode


# ---------------------------------------------------------------- events

@dataclass(frozen=True)
class EditText:
    body: str


@dataclass(frozen=True)
class SetLayout:
    mode: LayoutMode


@dataclass(frozen=True)
class NoteLoadedFromDevice:
    raw: object


@dataclass(frozen=True)
class NewNoteBuiltFromTemplate:
    raw: object


@dataclass(frozen=True)
class DeviceWriteAcknowledged:
    ok: bool = True


@dataclass(frozen=True)
class MenuAction:
    action: object


@dataclass(frozen=True)
class RemoteListReceived:
    files: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class RemoteFileReceived:
    name: str
    text: str = ""
    error: str | None = None


@dataclass(frozen=True)
class RemoteSaveAcknowledged:
    text: str = ""
    error: str | None = None


@dataclass(frozen=True)
class ToggleReadPreview:
    pass


# ---------------------------------------------------------------- effects

@dataclass(frozen=True)
class CreateNewFile:
    pass


@dataclass(frozen=True)
class OpenFilePicker:
    pass


@dataclass(frozen=True)
class OverwriteFile:
    text: str


@dataclass(frozen=True)
class SaveFileAs:
    text: str


@dataclass(frozen=True)
class PropagateText:
    text: str


@dataclass(frozen=True)
class PropagateTitle:
    text: str


@dataclass(frozen=True)
class PersistPreferences:
    payload: str


@dataclass(frozen=True)
class FetchCloudFileList:
    pass


@dataclass(frozen=True)
class FetchCloudFile:
    name: str


@dataclass(frozen=True)
class PostCloudFile:
    name: str
    text: str


# ---------------------------------------------------------------- transition

def _with_layout(state: ApplicationState, mode: LayoutMode) -> ApplicationState:
    return replace(state, preferences=replace(state.preferences, layout_mode=mode))


def _with_note(state: ApplicationState, note: Note) -> ApplicationState:
    return replace(state, note=note)


def _menu(action, state: ApplicationState):
    note = state.note
    if isinstance(action, NewFile):
        return state, [CreateNewFile()]
    if isinstance(action, OpenFile):
        return state, [OpenFilePicker()]
    if isinstance(action, SaveFile):
        if note.bound:
            return state, [OverwriteFile(note.text)]
        return state, [SaveFileAs(note.text)]
    if isinstance(action, ListCloudFiles):
        return state, [FetchCloudFileList()]
    if isinstance(action, OpenCloudFile):
        return state, [FetchCloudFile(action.name)]
    if isinstance(action, SaveCloudFile):
        return state, [PostCloudFile(note.name, note.text)]
    if isinstance(action, ChangeTheme):
        prefs = replace(state.preferences, color_theme=action.theme)
        return replace(state, preferences=prefs), []
    if isinstance(action, ChangeLayout):
        # Read is only reachable through the editor/preview toggle.
        if action.mode is LayoutMode.READ:
            return state, []
        return _with_layout(state, action.mode), []
    return state, []


def transition(event, state: ApplicationState) -> tuple[ApplicationState, list]:
    """Apply one event to the state.

    Never raises: undecodable payloads become the empty note and remote
    failures leave the state as it was.
    """
    if isinstance(event, EditText):
        return _with_note(state, replace(state.note, text=event.body)), [PropagateText(event.body)]

    if isinstance(event, SetLayout):
        return _with_layout(state, event.mode), []

    if isinstance(event, NoteLoadedFromDevice):
        try:
            note = decode_note(event.raw)
        except DecodeError:
            note = Note()
        return _with_note(state, note), []

    if isinstance(event, NewNoteBuiltFromTemplate):
        try:
            built = decode_note(event.raw)
        except DecodeError:
            return _with_note(state, Note()), []
        if state.note.text == "":
            text = "# " + note_title(built.name)
        else:
            text = state.note.text
        return _with_note(state, replace(built, text=text)), []

    if isinstance(event, DeviceWriteAcknowledged):
        return state, []

    if isinstance(event, MenuAction):
        return _menu(event.action, state)

    if isinstance(event, RemoteListReceived):
        if event.error is not None:
            return state, []
        return replace(state, cloud_files=tuple(event.files)), []

    if isinstance(event, RemoteFileReceived):
        if event.error is not None:
            return state, []
        note = Note(name=event.name, last_modified=None, text=event.text)
        return _with_note(state, note), [PropagateTitle(event.name)]

    if isinstance(event, RemoteSaveAcknowledged):
        return state, []

    if isinstance(event, ToggleReadPreview):
        mode = state.preferences.layout_mode
        if mode is LayoutMode.FOCUS:
            return _with_layout(state, LayoutMode.READ), []
        if mode is LayoutMode.READ:
            return _with_layout(state, LayoutMode.FOCUS), []
        return state, []

    return state, []


def transition_and_persist(event, state: ApplicationState) -> tuple[ApplicationState, list]:
    new_state, effects = transition(event, state)
    persist = PersistPreferences(encode_preferences(new_state.preferences))
    return new_state, [*effects, persist]


# ---------------------------------------------------------------- wire format

_PLAIN_ACTIONS = {
    "NewFile": NewFile,
    "OpenFile": OpenFile,
    "SaveFile": SaveFile,
    "ListCloudFiles": ListCloudFiles,
    "SaveCloudFile": SaveCloudFile,
}


def encode_action(action) -> dict:
    if isinstance(action, OpenCloudFile):
        return {"type": "Menu", "action": "OpenCloudFile", "name": action.name}
    if isinstance(action, ChangeTheme):
        return {"type": "Menu", "action": "ChangeTheme", "theme": action.theme.value}
    if isinstance(action, ChangeLayout):
        return {"type": "Menu", "action": "ChangeLayout", "mode": action.mode.value}
    for tag, cls in _PLAIN_ACTIONS.items():
        if isinstance(action, cls):
            return {"type": "Menu", "action": tag}
    raise TypeError(f"not a menu action: {action!r}")


def _string_field(obj: dict, key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"{key} must be a string")
    return value


def _decode_action(obj: dict):
    tag = obj.get("action")
    if tag in _PLAIN_ACTIONS:
        return _PLAIN_ACTIONS[tag]()
    if tag == "OpenCloudFile":
        return OpenCloudFile(_string_field(obj, "name"))
    if tag == "ChangeTheme":
        return ChangeTheme(_enum_value(ColorTheme, obj.get("theme")))
    if tag == "ChangeLayout":
        return ChangeLayout(_enum_value(LayoutMode, obj.get("mode")))
    raise DecodeError(f"unknown menu action {tag!r}")


def decode_event(raw):
    """Decode a user event sent by the editor page.

    Only the events a user can trigger are accepted here; bridge and remote
    results are produced by the shell itself.
    """
    obj = _load_object(raw)
    kind = obj.get("type")
    if kind == "EditText":
        return EditText(_string_field(obj, "body"))
    if kind == "SetLayout":
        return SetLayout(_enum_value(LayoutMode, obj.get("mode")))
    if kind == "ToggleReadPreview":
        return ToggleReadPreview()
    if kind == "Menu":
        return MenuAction(_decode_action(obj))
    raise DecodeError(f"unknown event type {kind!r}")
