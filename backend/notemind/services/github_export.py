"""
Publish notes as Markdown files to a GitHub repository.

Each note becomes ``notes/<slug>.md`` through the contents API: look up the
file's current sha on the branch (if it exists), then create-or-update it.
One failing note does not stop the batch; a bad repository URL or missing
token stops it before any request is made.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

import requests
from pydantic import BaseModel, Field

from ..config import Config
from .errors import SyncError
from .models import Note

logger = logging.getLogger(__name__)

NOTES_PREFIX = "notes/"

_REPO_URL_RE = re.compile(
    r"^(?:https?://[^/]+/|git@[^:]+:)(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+?)(?:\.git)?/?$"
)


class ExportReport(BaseModel):
    published: List[str] = Field(default_factory=list, description="Repository paths written")
    failures: Dict[str, str] = Field(default_factory=dict, description="note_id -> error message")

    @property
    def ok(self) -> bool:
        return not self.failures


def parse_repo_url(url: Optional[str]) -> Tuple[str, str]:
    """
    Split a repository URL into (owner, repo).

    Raises:
        SyncError: if the URL is missing or not a repository URL
    """
    match = _REPO_URL_RE.match((url or "").strip())
    if not match:
        raise SyncError(f"Repository URL is not valid: {url!r}")
    return match.group("owner"), match.group("repo")


def note_slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", title, flags=re.IGNORECASE).lower()


def note_path(note: Note) -> str:
    return f"{NOTES_PREFIX}{note_slug(note.title)}.md"


def render_note_markdown(note: Note) -> str:
    return (
        f"# {note.title}\n\n{note.content}\n\n---\n"
        f"**Summary:** {note.summary or 'N/A'}\n"
        f"**Tags:** {', '.join(note.tags)}"
    )


class GithubNoteExporter:
    def __init__(
        self,
        repo_url: Optional[str] = None,
        token: Optional[str] = None,
        branch: Optional[str] = None,
        api_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.repo_url = repo_url or Config.GITHUB_REPO_URL
        self.token = token or Config.GITHUB_TOKEN
        self.branch = branch or Config.GITHUB_BRANCH
        self.api_url = (api_url or Config.GITHUB_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def export(
        self,
        notes: Iterable[Note],
        repo_url: Optional[str] = None,
        token: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> ExportReport:
        """
        Publish every note. Per-note failures are collected in the report.

        Raises:
            SyncError: missing token or invalid repository URL (nothing attempted)
        """
        token = token or self.token
        branch = branch or self.branch
        if not token:
            raise SyncError("GitHub personal access token is required")
        owner, repo = parse_repo_url(repo_url or self.repo_url)

        report = ExportReport()
        for note in notes:
            try:
                path = self.publish_note(owner, repo, note, token=token, branch=branch)
            except SyncError as e:
                logger.error("export of note %s failed: %s", note.id, e)
                report.failures[note.id] = e.message
                continue
            logger.info("exported note %s to %s/%s:%s", note.id, owner, repo, path)
            report.published.append(path)
        return report

    def publish_note(self, owner: str, repo: str, note: Note, token: str, branch: str) -> str:
        path = note_path(note)
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{path}"
        headers = self._headers(token)

        body = {
            "message": f"Sync note: {note.title}",
            "content": base64.b64encode(render_note_markdown(note).encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        sha = self._existing_sha(url, headers, branch)
        if sha:
            body["sha"] = sha

        try:
            resp = self.session.put(url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise SyncError(f"request to GitHub failed: {e}", note_id=note.id) from e

        if not resp.ok:
            raise SyncError(self._error_message(resp), note_id=note.id)
        return path

    def _existing_sha(self, url: str, headers: Dict[str, str], branch: str) -> Optional[str]:
        # A missing file (404) or a failed lookup both mean "create".
        try:
            resp = self.session.get(url, params={"ref": branch}, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("sha lookup for %s failed: %s", url, e)
            return None
        if not resp.ok:
            return None
        try:
            return resp.json().get("sha")
        except ValueError:
            return None

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github+json",
        }

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            message = resp.json().get("message")
        except ValueError:
            message = None
        return message or f"GitHub returned HTTP {resp.status_code}"
