"""HTTP client for the cloud note store.

Each call returns the result event the editor expects; transport errors and
non-2xx responses come back as events carrying an error string.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from editor_state import RemoteFileReceived, RemoteListReceived, RemoteSaveAcknowledged

log = logging.getLogger(__name__)


def _file_url(name: str) -> str:
    return "/files/" + quote(name, safe="/")


class CloudClient:

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self.http.close()

    def list_files(self) -> RemoteListReceived:
        try:
            resp = self.http.get("/files")
            resp.raise_for_status()
            files = resp.json()
        except httpx.HTTPError as exc:
            log.warning("cloud list failed: %s", exc)
            return RemoteListReceived(error=str(exc))
        except ValueError as exc:
            log.warning("cloud list returned invalid JSON: %s", exc)
            return RemoteListReceived(error=str(exc))
        if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
            return RemoteListReceived(error="file list is not an array of strings")
        return RemoteListReceived(files=tuple(files))

    def get_file(self, name: str) -> RemoteFileReceived:
        try:
            resp = self.http.get(_file_url(name))
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("cloud get %s failed: %s", name, exc)
            return RemoteFileReceived(name, error=str(exc))
        return RemoteFileReceived(name, text=resp.text)

    def post_file(self, name: str, text: str) -> RemoteSaveAcknowledged:
        try:
            resp = self.http.post(
                _file_url(name),
                content=text.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("cloud save %s failed: %s", name, exc)
            return RemoteSaveAcknowledged(error=str(exc))
        return RemoteSaveAcknowledged(text=resp.text)
