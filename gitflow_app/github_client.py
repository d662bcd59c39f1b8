"""
Typed wrapper around the GitHub git data API.

Every call is one blocking round trip. Responses are parsed into the value
objects of ``gitflow_app.objects``; transport failures and error statuses are
mapped onto the ``gitflow_app.errors`` taxonomy in ``_request``. There is no
graph logic here.
"""
import base64
import logging

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .errors import (
    InvalidChangeSet,
    MergeConflict,
    NotFound,
    RefConflict,
    UpstreamUnavailable,
)
from .helpers import parse_commit, parse_file_changes, parse_tree, tree_entry_payload
from .objects import Commit, FileChange, ReviewRequest, TreeEntry

logger = logging.getLogger(__name__)

MERGE_METHODS = ("merge", "squash", "rebase")


def _error_detail(resp) -> str:
    try:
        return resp.json().get("message", "")
    except ValueError:
        return resp.text[:200]


class GitHubObjectStore:
    def __init__(self, owner: str, repo: str, token: str = "",
                 api_url: str = "https://api.github.com", timeout: float = 30,
                 session: requests.Session | None = None):
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/vnd.github+json"})
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls) -> "GitHubObjectStore":
        if not settings.GITHUB_OWNER or not settings.GITHUB_REPO:
            raise ImproperlyConfigured("GITHUB_OWNER and GITHUB_REPO must be set")
        return cls(
            owner=settings.GITHUB_OWNER,
            repo=settings.GITHUB_REPO,
            token=settings.GITHUB_TOKEN,
            api_url=settings.GITHUB_API_URL,
            timeout=settings.GITHUB_TIMEOUT,
        )

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, operation: str, identifier: str = "",
                 allow: tuple = (), url: str | None = None, **kwargs):
        try:
            resp = self.session.request(method, url or self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamUnavailable(
                f"{operation} failed for '{identifier}': {exc}",
                operation=operation, identifier=identifier,
            ) from exc

        if resp.status_code in allow or 200 <= resp.status_code < 300:
            return resp

        detail = _error_detail(resp)
        logger.debug("%s %s -> %s %s", method, path, resp.status_code, detail)
        if resp.status_code == 404:
            raise NotFound(f"{operation}: '{identifier}' not found", operation=operation, identifier=identifier)
        if resp.status_code == 422:
            raise InvalidChangeSet(
                f"{operation} rejected for '{identifier}': {detail}",
                operation=operation, identifier=identifier,
            )
        raise UpstreamUnavailable(
            f"{operation} returned {resp.status_code} for '{identifier}': {detail}",
            operation=operation, identifier=identifier,
        )

    # reads

    def get_branch_tip(self, branch: str) -> str:
        resp = self._request("GET", f"git/ref/heads/{branch}", "get_branch_tip", branch)
        return resp.json()["object"]["sha"]

    def get_commit(self, commit_id: str) -> Commit:
        resp = self._request("GET", f"git/commits/{commit_id}", "get_commit", commit_id)
        return parse_commit(resp.json())

    def get_commit_file_changes(self, commit_id: str) -> list[FileChange]:
        resp = self._request("GET", f"commits/{commit_id}", "get_commit_file_changes", commit_id,
                             params={"per_page": 100})
        files = list(resp.json().get("files", []))
        next_url = resp.links.get("next", {}).get("url")
        while next_url:
            resp = self._request("GET", "", "get_commit_file_changes", commit_id, url=next_url)
            files.extend(resp.json().get("files", []))
            next_url = resp.links.get("next", {}).get("url")
        return parse_file_changes(files)

    def get_tree(self, tree_id: str) -> dict[str, TreeEntry]:
        resp = self._request("GET", f"git/trees/{tree_id}", "get_tree", tree_id, params={"recursive": "1"})
        payload = resp.json()
        if payload.get("truncated"):
            raise UpstreamUnavailable(
                f"Tree {tree_id} was truncated by the API",
                operation="get_tree", identifier=tree_id,
            )
        return parse_tree(payload)

    def get_review_request(self, number: int) -> ReviewRequest:
        resp = self._request("GET", f"pulls/{number}", "get_review_request", str(number))
        return self._parse_review(resp.json())

    # writes

    def create_blob(self, content: bytes) -> str:
        resp = self._request("POST", "git/blobs", "create_blob", json={
            "content": base64.b64encode(content).decode("ascii"),
            "encoding": "base64",
        })
        sha = resp.json()["sha"]
        logger.debug("Created blob %s (%d bytes)", sha, len(content))
        return sha

    def create_tree(self, base_tree_id: str, entries: list[TreeEntry]) -> str:
        resp = self._request("POST", "git/trees", "create_tree", base_tree_id, json={
            "base_tree": base_tree_id,
            "tree": [tree_entry_payload(e) for e in entries],
        })
        return resp.json()["sha"]

    def create_commit(self, tree_id: str, parents: list[str], message: str) -> str:
        resp = self._request("POST", "git/commits", "create_commit", tree_id, json={
            "message": message,
            "tree": tree_id,
            "parents": list(parents),
        })
        return resp.json()["sha"]

    def update_ref(self, branch: str, expected_old: str, new: str) -> None:
        """
        Move ``branch`` from ``expected_old`` to ``new``.

        The current tip is checked first; the PATCH itself is sent without
        force so the API also rejects any update that is not a fast forward
        of the tip it holds at that moment.
        """
        current = self.get_branch_tip(branch)
        if current != expected_old:
            raise RefConflict(
                f"Branch '{branch}' moved to {current}, expected {expected_old}",
                identifier=branch, expected=expected_old, actual=current,
            )
        resp = self._request("PATCH", f"git/refs/heads/{branch}", "update_ref", branch,
                             allow=(409, 422), json={"sha": new, "force": False})
        if resp.status_code in (409, 422):
            raise RefConflict(
                f"Branch '{branch}' could not be advanced to {new}: {_error_detail(resp)}",
                identifier=branch, expected=expected_old,
            )
        logger.info("Advanced %s: %s -> %s", branch, expected_old[:7], new[:7])

    def create_ref(self, branch: str, from_commit_id: str) -> None:
        resp = self._request("POST", "git/refs", "create_ref", branch, allow=(422,), json={
            "ref": f"refs/heads/{branch}",
            "sha": from_commit_id,
        })
        if resp.status_code == 422:
            raise RefConflict(
                f"Branch '{branch}' already exists: {_error_detail(resp)}",
                operation="create_ref", identifier=branch,
            )

    def delete_ref(self, branch: str) -> None:
        self._request("DELETE", f"git/refs/heads/{branch}", "delete_ref", branch)

    def create_review_request(self, from_branch: str, to_branch: str, title: str, body: str = "") -> ReviewRequest:
        resp = self._request("POST", "pulls", "create_review_request", from_branch, json={
            "title": title,
            "head": from_branch,
            "base": to_branch,
            "body": body,
        })
        return self._parse_review(resp.json())

    def approve_and_merge(self, number: int, method: str = "merge") -> str:
        if method not in MERGE_METHODS:
            raise InvalidChangeSet(
                f"Unknown merge method '{method}'", operation="approve_and_merge", identifier=str(number),
            )
        self._request("POST", f"pulls/{number}/reviews", "approve_review", str(number),
                      json={"event": "APPROVE"})
        resp = self._request("PUT", f"pulls/{number}/merge", "merge_review", str(number),
                             allow=(405, 409), json={"merge_method": method})
        if resp.status_code == 405:
            raise MergeConflict(
                f"Review #{number} cannot be merged: {_error_detail(resp)}",
                operation="merge_review", identifier=str(number),
            )
        if resp.status_code == 409:
            raise RefConflict(
                f"Review #{number} head moved: {_error_detail(resp)}",
                operation="merge_review", identifier=str(number),
            )
        return resp.json()["sha"]

    def merge_branches(self, base: str, head: str, message: str) -> str | None:
        """Merge commit sha, or None when ``base`` already contains ``head``."""
        resp = self._request("POST", "merges", "merge_branches", f"{head}->{base}", allow=(204, 409), json={
            "base": base,
            "head": head,
            "commit_message": message,
        })
        if resp.status_code == 204:
            return None
        if resp.status_code == 409:
            raise MergeConflict(
                f"Merging '{head}' into '{base}' has conflicts",
                operation="merge_branches", identifier=f"{head}->{base}",
            )
        return resp.json()["sha"]

    @staticmethod
    def _parse_review(data: dict) -> ReviewRequest:
        return ReviewRequest(
            number=data["number"],
            url=data.get("html_url", ""),
            head=data["head"]["ref"],
            base=data["base"]["ref"],
        )
