"""Artifact persistence targets for summaries and transcripts.

A writer takes a file name, the text and a folder hint and returns a stable
handle that can be used later to reopen the artifact.
"""
from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import requests

from meetlogger.services.errors import ArtifactPersistenceFailed

_UNSAFE_NAME_RE = re.compile(r"[^\w.\- ]+")


@dataclass(frozen=True)
class ArtifactRef:
    id: str
    resolved_path: str

    def to_dict(self) -> dict:
        return {"id": self.id, "resolvedPath": self.resolved_path}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ArtifactRef"]:
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return cls(id=str(data["id"]), resolved_path=str(data.get("resolvedPath") or ""))


def safe_component(name: str) -> str:
    cleaned = _UNSAFE_NAME_RE.sub("_", name or "").strip(" .")
    return cleaned or "unnamed"


class ArtifactWriter(ABC):
    @abstractmethod
    def write(self, name: str, text: str, folder_hint: str) -> ArtifactRef:
        """Persist ``text``; raises ArtifactPersistenceFailed on any failure."""
        raise NotImplementedError


class LocalArtifactWriter(ArtifactWriter):
    """Writes plain-text files under ``<root>/<folder_hint>/``.

    An existing file is never overwritten: ``summary.txt`` becomes
    ``summary (1).txt``, ``summary (2).txt`` and so on.
    """

    def __init__(self, root_dir: str) -> None:
        self._root_dir = root_dir
        self._logger = logging.getLogger("meetlogger.artifacts.local")

    def _unique_path(self, folder: str, name: str) -> str:
        stem, ext = os.path.splitext(name)
        candidate = os.path.join(folder, name)
        counter = 1
        while os.path.exists(candidate):
            candidate = os.path.join(folder, f"{stem} ({counter}){ext}")
            counter += 1
        return candidate

    def write(self, name: str, text: str, folder_hint: str) -> ArtifactRef:
        folder = os.path.join(self._root_dir, safe_component(folder_hint))
        try:
            os.makedirs(folder, exist_ok=True)
            path = self._unique_path(folder, safe_component(name))
            with open(path, "x", encoding="utf-8") as f:
                f.write(text)
        except OSError as exc:
            raise ArtifactPersistenceFailed(f"Failed to write {name}: {exc}") from exc
        self._logger.info("Artifact written: %s", path)
        artifact_id = os.path.relpath(path, self._root_dir).replace(os.sep, "/")
        return ArtifactRef(id=artifact_id, resolved_path=os.path.abspath(path))


class GoogleDocsArtifactWriter(ArtifactWriter):
    """Creates one Google Docs document per artifact.

    The OAuth access token comes from an interactive authorization that
    happens outside this process.
    """

    DOCS_URL = "https://docs.googleapis.com/v1/documents"

    def __init__(self, access_token: str, *, timeout: float = 30.0, session: Any = None) -> None:
        self._access_token = access_token
        self._timeout = timeout
        self._http = session or requests
        self._logger = logging.getLogger("meetlogger.artifacts.gdocs")

    def _post(self, url: str, body: dict) -> dict:
        if not self._access_token:
            raise ArtifactPersistenceFailed("Google Docs is not authorized")
        try:
            response = self._http.post(
                url,
                headers={"Authorization": f"Bearer {self._access_token}"},
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ArtifactPersistenceFailed(f"Google Docs unreachable: {exc}") from exc
        if response.status_code // 100 != 2:
            self._logger.error(
                "Google Docs error: %s - %s", response.status_code, (response.text or "")[:300]
            )
            raise ArtifactPersistenceFailed(f"Google Docs error: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    def create_document(self, title: str) -> str:
        data = self._post(self.DOCS_URL, {"title": title})
        document_id = data.get("documentId")
        if not document_id:
            raise ArtifactPersistenceFailed("Google Docs did not return a document id")
        return str(document_id)

    def insert_text(self, document_id: str, text: str) -> None:
        self._post(
            f"{self.DOCS_URL}/{document_id}:batchUpdate",
            {"requests": [{"insertText": {"location": {"index": 1}, "text": text}}]},
        )

    def write(self, name: str, text: str, folder_hint: str) -> ArtifactRef:
        document_id = self.create_document(f"{folder_hint} {os.path.splitext(name)[0]}")
        self.insert_text(document_id, text)
        url = f"https://docs.google.com/document/d/{document_id}/edit"
        self._logger.info("Document created: id=%s", document_id)
        return ArtifactRef(id=document_id, resolved_path=url)
