"""
Async client for the Rally web services API (WSAPI v2.0).

Only the operations the push sync engine needs are implemented. Every call
carries the ZSESSIONID API key header and decodes into the typed envelopes in
``shared.models``; transport failures, non-2xx statuses and undecodable bodies
all surface as ``TrackerRequestError``.
"""

import logging
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from shared.models import (
    ArtifactKind, ChangeCreate, ChangesetCreate, CreateResponse, CreateResult,
    OperationResponse, QueryResponse, QueryResult, Reference, ScheduleState,
    SCMRepositoryCreate, StateUpdate, TrackerRequest,
)
from .errors import StateUpdateError, TrackerRequestError

logger = logging.getLogger(__name__)

API_PATH = "/slm/webservice/v2.0"
AUTH_HEADER = "ZSESSIONID"


class RallyClient:
    """Rally WSAPI operations used by the sync engine."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}{API_PATH}"
        self.client = httpx.AsyncClient(
            headers={AUTH_HEADER: api_token, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise TrackerRequestError(
                f"Rally returned {e.response.status_code} for {method} {url}",
                context={"status": e.response.status_code, "url": url},
            ) from e
        except httpx.HTTPError as e:
            raise TrackerRequestError(
                f"Rally request failed for {method} {url}: {e}", context={"url": url}
            ) from e
        except ValueError as e:
            raise TrackerRequestError(
                f"Rally response for {method} {url} is not JSON", context={"url": url}
            ) from e

    @staticmethod
    def _decode(model: type, data: Any, url: str) -> BaseModel:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TrackerRequestError(
                f"Unexpected Rally response shape from {url}", context={"url": url}
            ) from e

    async def query(self, resource: str, query: str) -> QueryResult:
        """Run a WSAPI query such as ``(Name = Acme)`` against ``resource``."""
        url = f"{self.api_url}/{resource}"
        logger.debug(f"Querying {resource} with {query}")
        data = await self._send("GET", url, params={"query": query})
        return self._decode(QueryResponse, data, url).query_result

    async def create(self, resource: str, body: TrackerRequest) -> CreateResult:
        url = f"{self.api_url}/{resource}/create"
        data = await self._send("POST", url, json=body.to_payload())
        return self._decode(CreateResponse, data, url).create_result

    @staticmethod
    def _single_ref(result: QueryResult) -> Optional[str]:
        if len(result.results) == 1:
            return result.results[0].ref
        return None

    async def find_workspace(self, name: str) -> Optional[str]:
        """Return the workspace ref when exactly one workspace has ``name``."""
        return self._single_ref(await self.query("workspace", f"(Name = {name})"))

    async def find_scm_repository(self, name: str) -> Optional[str]:
        return self._single_ref(await self.query("scmrepository", f"(Name = {name})"))

    async def create_scm_repository(self, request: SCMRepositoryCreate) -> CreateResult:
        return await self.create("scmrepository", request)

    async def find_user(self, username: str) -> List[Reference]:
        """Return every user whose UserName equals ``username``."""
        return (await self.query("user", f"(UserName = {username})")).results

    async def find_artifact(self, kind: ArtifactKind, formatted_id: str) -> Optional[str]:
        """Return the ref of the artifact with ``formatted_id``, if any."""
        result = await self.query(kind.value, f"(FormattedID = {formatted_id})")
        if result.total_result_count == 0 or not result.results:
            return None
        return result.results[0].ref

    async def update_state(self, ref: str, kind: ArtifactKind, state: ScheduleState) -> None:
        """Set the schedule state of the artifact at ``ref``.

        Raises ``StateUpdateError`` unless Rally echoes the requested state.
        """
        body = StateUpdate(kind=kind, schedule_state=state)
        data = await self._send("POST", ref, json=body.to_payload())
        result = self._decode(OperationResponse, data, ref).operation_result
        if result.schedule_state != state.value:
            raise StateUpdateError(
                f"failed to update state - {result.errors}",
                context={"ref": ref, "requested": state.value, "reported": result.schedule_state},
            )

    async def create_changeset(self, request: ChangesetCreate) -> CreateResult:
        return await self.create("changeset", request)

    async def create_change(self, request: ChangeCreate) -> CreateResult:
        return await self.create("change", request)


def create_rally_client(config, transport: Optional[httpx.AsyncBaseTransport] = None) -> RallyClient:
    """Build a client from ``RallySettings``."""
    token = config.api_token.get_secret_value() if config.api_token else ""
    return RallyClient(
        base_url=config.url,
        api_token=token,
        timeout=config.request_timeout,
        transport=transport,
    )
