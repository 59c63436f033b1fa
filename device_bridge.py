"""Local file bridge: note files and the preference record on this device."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from werkzeug.utils import secure_filename

log = logging.getLogger(__name__)

NEW_FILE_STEM = "untitled"
NEW_FILE_EXT = ".md"


class DeviceBridge:

    def __init__(self, root: Path, preferences_path: Path):
        self.root = Path(root)
        self.preferences_path = Path(preferences_path)
        self.current: Path | None = None
        self.pending_open = False
        self.pending_save_text: str | None = None

    # -- paths

    def _safe_path(self, raw_path: str, clean: bool = False) -> Path | None:
        if not raw_path:
            return None
        parts = [p for p in raw_path.replace("\\", "/").split("/") if p]
        if clean:
            parts = [secure_filename(p) for p in parts]
        if not parts or any(p in ("", ".", "..") for p in parts):
            return None
        root = self.root.resolve()
        try:
            candidate = (root / Path(*parts)).resolve()
            candidate.relative_to(root)
        except (ValueError, OSError):
            return None
        return candidate

    def _rel(self, path: Path) -> str:
        return path.relative_to(self.root.resolve()).as_posix()

    def _payload(self, path: Path) -> str:
        return json.dumps({
            "name": self._rel(path),
            "lastModified": path.stat().st_mtime,
            "text": path.read_text(encoding="utf-8", errors="replace"),
        })

    def list_files(self) -> list[str]:
        root = self.root.resolve()
        if not root.is_dir():
            return []
        files = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                files.append(self._rel(Path(dirpath) / name))
        return files

    # -- outbound requests from the editor

    def create_new_file(self) -> str:
        self.root.mkdir(parents=True, exist_ok=True)
        root = self.root.resolve()
        fpath = root / f"{NEW_FILE_STEM}{NEW_FILE_EXT}"
        counter = 1
        while fpath.exists():
            fpath = root / f"{NEW_FILE_STEM}-{counter}{NEW_FILE_EXT}"
            counter += 1
        fpath.write_text("", encoding="utf-8")
        self.current = fpath
        log.info("created %s", self._rel(fpath))
        return self._payload(fpath)

    def request_open(self) -> None:
        self.pending_open = True

    def overwrite_file(self, text: str) -> bool:
        if self.current is None:
            log.warning("overwrite requested with no file open")
            return False
        try:
            self.current.write_text(text, encoding="utf-8")
        except OSError as e:
            log.warning("could not write %s: %s", self.current, e)
            return False
        return True

    def request_save_as(self, text: str) -> None:
        self.pending_save_text = text

    def persist_preferences(self, payload: str) -> None:
        try:
            self.preferences_path.parent.mkdir(parents=True, exist_ok=True)
            self.preferences_path.write_text(payload, encoding="utf-8")
        except OSError as e:
            log.warning("could not persist preferences to %s: %s", self.preferences_path, e)

    def load_preferences(self) -> str | None:
        if not self.preferences_path.is_file():
            return None
        try:
            return self.preferences_path.read_text(encoding="utf-8")
        except OSError as e:
            log.warning("could not read %s: %s", self.preferences_path, e)
            return None

    # -- answers to pending dialogs

    def open_path(self, raw_path: str) -> str:
        """Read a device file and return its file-loaded payload.

        An unreadable or forbidden path returns an empty payload, which the
        editor treats as a fresh note.
        """
        self.pending_open = False
        fpath = self._safe_path(raw_path)
        if fpath is None or not fpath.is_file():
            log.warning("cannot open %r", raw_path)
            return ""
        try:
            payload = self._payload(fpath)
        except OSError as e:
            log.warning("could not read %s: %s", fpath, e)
            return ""
        self.current = fpath
        return payload

    def save_as_path(self, raw_path: str) -> bool:
        text = self.pending_save_text
        self.pending_save_text = None
        if text is None:
            return False
        fpath = self._safe_path(raw_path, clean=True)
        if fpath is None:
            log.warning("refusing to save to %r", raw_path)
            return False
        try:
            fpath.parent.mkdir(parents=True, exist_ok=True)
            fpath.write_text(text, encoding="utf-8")
        except OSError as e:
            log.warning("could not write %s: %s", fpath, e)
            return False
        self.current = fpath
        return True
