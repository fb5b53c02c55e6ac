"""CircleClient: wraps the CircleCI v1.1 REST API.

All HTTP calls go through _request() so every call carries a timeout derived
from the caller's CancelScope, and every error response becomes a
CircleApiError. Transport failures are left as requests exceptions.

Each request runs on its own worker thread while the caller waits on the
scope, so cancelling the scope returns control at once. An abandoned request
finishes in the background, bounded by its timeout.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List

import requests

from circlewait.cancel_scope import CancelScope
from circlewait.circle.builds import BuildDetail, BuildSummary
from circlewait.errors import CircleApiError, OperationCancelled, UnknownVcsError
from circlewait.version import VERSION

BASE_URL = "https://circleci.com/api/v1.1/project"
DEFAULT_TIMEOUT = 20


def vcs_type(host: str) -> str:
    if "github.com" in host:
        return "github"
    if "bitbucket.org" in host:
        return "bitbucket"
    raise UnknownVcsError(host)


class CircleClient:
    """CircleCI API client.

    Args:
        token: CircleCI API token.
        base_url: API root, overridable for tests.
        session: Optional requests.Session to reuse connections.
    """

    def __init__(self, token, base_url=BASE_URL, session=None):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()

    def _project_path(self, remote) -> str:
        return f"/{vcs_type(remote.host)}/{remote.org}/{remote.project}"

    def _send(self, scope: CancelScope, method, url, **kwargs):
        """session.request() on a worker thread; raises OperationCancelled if scope is cancelled first."""
        done = threading.Event()
        outcome = {}

        def _run():
            try:
                outcome["response"] = self._session.request(method, url, **kwargs)
            except Exception as err:
                outcome["error"] = err
            finally:
                done.set()

        threading.Thread(target=_run, name="circle-request", daemon=True).start()
        if not scope.wait_for(done):
            raise OperationCancelled(f"{method} {url} cancelled")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["response"]

    def _request(self, method, path, scope: CancelScope, timeout=DEFAULT_TIMEOUT):
        response = self._send(
            scope,
            method,
            self._base_url + path,
            params={"circle-token": self._token} if self._token else None,
            headers={
                "Accept": "application/json",
                "User-Agent": f"circlewait/{VERSION}",
            },
            timeout=scope.timeout_for(timeout),
        )
        if response.status_code >= 400:
            raise CircleApiError(response.status_code, _error_message(response))
        if not response.content:
            return None
        return response.json()

    def list_recent_builds(self, remote, branch: str, scope: CancelScope) -> List[BuildSummary]:
        """Most recent builds for branch, newest first."""
        data = self._request("GET", f"{self._project_path(remote)}/tree/{branch}", scope)
        return [BuildSummary.from_json(b) for b in data or []]

    def get_build_detail(self, remote, build_num: int, scope: CancelScope) -> BuildDetail:
        data = self._request("GET", f"{self._project_path(remote)}/{build_num}", scope)
        return BuildDetail.from_json(data or {})

    def get_failure_text(self, build: BuildDetail, step_id: int, action_position: int,
                         scope: CancelScope) -> str:
        """Concatenated output messages of one failed action."""
        path = (f"/{build.vcs_type}/{build.username}/{build.reponame}"
                f"/{build.build_num}/output/{step_id}/{action_position}")
        outputs = self._request("GET", path, scope) or []
        return "".join((output.get("message") or "") + "\n" for output in outputs)

    def failure_texts(self, build: BuildDetail, scope: CancelScope) -> List[str]:
        """Output of every failed action, fetched concurrently, in step order."""
        failures = build.failures()
        if not failures:
            return []
        with ThreadPoolExecutor(max_workers=min(len(failures), 8)) as pool:
            futures = [
                pool.submit(self.get_failure_text, build, step_id, position, scope)
                for step_id, position in failures
            ]
            return [future.result() for future in futures]

    def cancel_build(self, remote, build_num: int, scope: CancelScope) -> BuildDetail:
        data = self._request("POST", f"{self._project_path(remote)}/{build_num}/cancel", scope)
        return BuildDetail.from_json(data or {})

    def rebuild(self, build: BuildSummary, scope: CancelScope) -> None:
        self._request(
            "POST",
            f"/{build.vcs_type}/{build.username}/{build.reponame}/{build.build_num}/retry",
            scope,
        )

    def enable(self, remote, scope: CancelScope) -> None:
        data = self._request("POST", f"{self._project_path(remote)}/follow", scope) or {}
        if not data.get("following"):
            raise CircleApiError(200, "not following the project")


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return response.text.strip()
