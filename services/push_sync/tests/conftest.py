"""
Shared fixtures for Push Sync Service tests.

``FakeRally`` is an in-memory stand-in for the Rally WSAPI served through
``httpx.MockTransport``; it records every request so tests can assert on the
exact calls the service makes.
"""

import json
import re
from typing import Any, Dict, List, Optional, Set

import httpx
import pytest

from config.settings import RallySettings, RedisSettings, Settings
from services.push_sync.main import PushSyncService
from services.push_sync.tracker import API_PATH, RallyClient
from shared.events import EventPublisher

RALLY_URL = "https://rally.example.com"
API_URL = f"{RALLY_URL}{API_PATH}"
WORKSPACE_REF = f"{API_URL}/workspace/100"
REPO_URL = "https://github.com/acme/widgets"

_QUERY_VALUE_RE = re.compile(r"=\s*(.*)\)$")


def artifact_ref(kind: str, number: int) -> str:
    return f"{API_URL}/{kind}/{number}"


class FakeRally:
    """Minimal Rally WSAPI emulation."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.workspaces: Dict[str, List[str]] = {"Acme": [WORKSPACE_REF]}
        self.repositories: Dict[str, str] = {}
        self.users: Dict[str, List[str]] = {"dev@example.com": [f"{API_URL}/user/7"]}
        self.artifacts: Dict[str, Dict[str, str]] = {
            "hierarchicalrequirement": {
                "US12345": artifact_ref("hierarchicalrequirement", 12345),
                "US1": artifact_ref("hierarchicalrequirement", 1),
            },
            "task": {"TA6789": artifact_ref("task", 6789)},
            "defect": {"DE42": artifact_ref("defect", 42)},
        }
        self.failing_lookups: Set[str] = set()
        self.failing_revisions: Set[str] = set()
        self.empty_changeset_revisions: Set[str] = set()
        self.failing_paths: Set[str] = set()
        self.state_echo: Optional[str] = None
        self.fail_user_lookup = False
        self.fail_workspace_lookup = False
        self.changeset_count = 0

    # request helpers
    def calls(self, method: str, path_suffix: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.endswith(path_suffix)
        ]

    def bodies(self, method: str, path_suffix: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.calls(method, path_suffix)]

    @property
    def state_updates(self) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == "POST" and not r.url.path.endswith("/create")
        ]

    # responses
    @staticmethod
    def _query(refs: List[str]) -> httpx.Response:
        return httpx.Response(200, json={
            "QueryResult": {
                "Errors": [],
                "Warnings": [],
                "TotalResultCount": len(refs),
                "StartIndex": 1,
                "PageSize": 20,
                "Results": [{"_ref": ref, "_type": "Object"} for ref in refs],
            }
        })

    @staticmethod
    def _created(ref: str, errors: Optional[List[str]] = None) -> httpx.Response:
        obj = {"_ref": ref} if ref else None
        return httpx.Response(200, json={
            "CreateResult": {"Errors": errors or [], "Warnings": [], "Object": obj}
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(API_PATH):]

        if request.method == "GET":
            value = _QUERY_VALUE_RE.search(request.url.params.get("query", ""))
            value = value.group(1).strip() if value else ""
            resource = path.strip("/")
            if resource == "workspace":
                if self.fail_workspace_lookup:
                    return httpx.Response(503, text="unavailable")
                return self._query(self.workspaces.get(value, []))
            if resource == "scmrepository":
                ref = self.repositories.get(value)
                return self._query([ref] if ref else [])
            if resource == "user":
                if self.fail_user_lookup:
                    return httpx.Response(500, text="boom")
                return self._query(self.users.get(value, []))
            if value in self.failing_lookups:
                return httpx.Response(500, text="boom")
            ref = self.artifacts.get(resource, {}).get(value)
            return self._query([ref] if ref else [])

        body = json.loads(request.content)
        if path == "/scmrepository/create":
            name = body["SCMRepository"]["Name"]
            ref = f"{API_URL}/scmrepository/{len(self.repositories) + 1}"
            self.repositories[name] = ref
            return self._created(ref)
        if path == "/changeset/create":
            revision = body["Changeset"]["Revision"]
            if revision in self.failing_revisions:
                return httpx.Response(500, text="changeset failed")
            if revision in self.empty_changeset_revisions:
                return self._created("", errors=["Could not create"])
            self.changeset_count += 1
            return self._created(f"{API_URL}/changeset/{self.changeset_count}")
        if path == "/change/create":
            if body["Change"]["PathAndFilename"] in self.failing_paths:
                return httpx.Response(500, text="change failed")
            return self._created(f"{API_URL}/change/{len(self.requests)}")

        # schedule state update posted to an artifact ref
        wrapper, fields = next(iter(body.items()))
        state = self.state_echo or fields["ScheduleState"]
        return httpx.Response(200, json={
            "OperationResult": {
                "Errors": [] if state == fields["ScheduleState"] else ["Not allowed"],
                "Warnings": [],
                "Object": {"_ref": str(request.url), "_type": wrapper, "ScheduleState": state},
            }
        })


def make_commit(commit_id: str, message: str, email: str = "dev@example.com",
                added=None, modified=None, removed=None) -> Dict[str, Any]:
    return {
        "id": commit_id,
        "tree_id": "f" * 40,
        "distinct": True,
        "message": message,
        "timestamp": "2019-05-01T10:00:00-04:00",
        "url": f"{REPO_URL}/commit/{commit_id}",
        "author": {"name": "Dev", "email": email, "username": "dev"},
        "committer": {"name": "Dev", "email": email, "username": "dev"},
        "added": added or [],
        "removed": removed or [],
        "modified": modified or [],
    }


def make_push(commits: List[Dict[str, Any]], ref: str = "refs/heads/main") -> Dict[str, Any]:
    return {
        "ref": ref,
        "before": "0" * 40,
        "after": commits[-1]["id"] if commits else "0" * 40,
        "created": False,
        "deleted": False,
        "forced": False,
        "compare": f"{REPO_URL}/compare/a...b",
        "commits": commits,
        "head_commit": commits[-1] if commits else None,
        "repository": {
            "id": 1,
            "name": "widgets",
            "full_name": "acme/widgets",
            "url": REPO_URL,
            "html_url": REPO_URL,
            "owner": {"name": "acme", "login": "acme"},
        },
        "pusher": {"name": "dev", "email": "dev@example.com"},
        "sender": {"login": "dev", "id": 7},
    }


@pytest.fixture
def fake_rally():
    return FakeRally()


@pytest.fixture
def rally_client(fake_rally):
    return RallyClient(RALLY_URL, "token-123", transport=httpx.MockTransport(fake_rally.handler))


@pytest.fixture
def sync_settings():
    return Settings(
        environment="testing",
        rally=RallySettings(url=RALLY_URL, api_token="token-123", workspace="Acme"),
        redis=RedisSettings(events_enabled=False),
    )


@pytest.fixture
def service(sync_settings, rally_client):
    return PushSyncService(
        config=sync_settings,
        client=rally_client,
        publisher=EventPublisher(sync_settings.redis),
    )


@pytest.fixture
def push_payload():
    return make_push([
        make_commit("a" * 40, "STARTS US12345 wire up parser",
                    added=["src/parser.py"], modified=["README.md"]),
        make_commit("b" * 40, "COMPLETES US12345 and TA6789",
                    modified=["src/parser.py", "setup.cfg"], removed=["old.py"]),
    ])


@pytest.fixture
def commit_factory():
    return make_commit


@pytest.fixture
def push_factory():
    return make_push
