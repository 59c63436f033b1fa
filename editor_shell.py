"""The editor's effect interpreter.

EditorShell owns the single ApplicationState. ``dispatch`` runs an event
through the transition function, performs the resulting effects in order and
feeds their results back in as new events until the queue is empty.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from cloud_client import CloudClient
from device_bridge import DeviceBridge
from editor_state import (
    ApplicationState,
    CreateNewFile,
    DeviceWriteAcknowledged,
    FetchCloudFile,
    FetchCloudFileList,
    NewNoteBuiltFromTemplate,
    NoteLoadedFromDevice,
    OpenFilePicker,
    OverwriteFile,
    PersistPreferences,
    PostCloudFile,
    PropagateText,
    PropagateTitle,
    SaveFileAs,
    initial_state,
    transition_and_persist,
)
from editor_view import RenderTree, project

log = logging.getLogger(__name__)


class EditorShell:
    """Single owner of the editor state.

    ``live_text`` and ``title`` receive the PropagateText and PropagateTitle
    effects for in-process consumers; the title also goes to the page through
    the outbox.
    """

    def __init__(self, bridge: DeviceBridge, cloud: CloudClient,
                 render: Callable[[str], str] | None = None):
        self.bridge = bridge
        self.cloud = cloud
        self.render = render
        self.state: ApplicationState = initial_state(bridge.load_preferences())
        self.title = ""
        self.live_text = self.state.note.text
        self.outbox: list[dict] = []

    def dispatch(self, event) -> ApplicationState:
        queue = deque([event])
        while queue:
            current = queue.popleft()
            log.debug("event %s", type(current).__name__)
            self.state, effects = transition_and_persist(current, self.state)
            for effect in effects:
                result = self._perform(effect)
                if result is not None:
                    queue.append(result)
        return self.state

    def _perform(self, effect):
        bridge = self.bridge
        if isinstance(effect, PersistPreferences):
            bridge.persist_preferences(effect.payload)
            return None
        if isinstance(effect, PropagateText):
            self.live_text = effect.text
            return None
        if isinstance(effect, PropagateTitle):
            self.title = effect.text
            self.outbox.append({"kind": "propagate-title", "text": effect.text})
            return None
        if isinstance(effect, CreateNewFile):
            try:
                return NewNoteBuiltFromTemplate(bridge.create_new_file())
            except OSError as e:
                log.warning("could not create a new file: %s", e)
                return None
        if isinstance(effect, OpenFilePicker):
            bridge.request_open()
            self.outbox.append({"kind": "open-file", "files": bridge.list_files()})
            return None
        if isinstance(effect, OverwriteFile):
            return DeviceWriteAcknowledged(bridge.overwrite_file(effect.text))
        if isinstance(effect, SaveFileAs):
            bridge.request_save_as(effect.text)
            self.outbox.append({"kind": "save-file-as", "suggested": self.state.note.name})
            return None
        if isinstance(effect, FetchCloudFileList):
            return self.cloud.list_files()
        if isinstance(effect, FetchCloudFile):
            return self.cloud.get_file(effect.name)
        if isinstance(effect, PostCloudFile):
            return self.cloud.post_file(effect.name, effect.text)
        raise TypeError(f"unhandled effect {effect!r}")

    # -- answers from the page to pending bridge dialogs

    def open_device_path(self, path: str) -> ApplicationState:
        return self.dispatch(NoteLoadedFromDevice(self.bridge.open_path(path)))

    def save_device_path(self, path: str) -> ApplicationState:
        return self.dispatch(DeviceWriteAcknowledged(self.bridge.save_as_path(path)))

    # -- page output

    def view(self) -> RenderTree:
        return project(self.state, self.render)

    def take_outbox(self) -> list[dict]:
        messages, self.outbox = self.outbox, []
        return messages
