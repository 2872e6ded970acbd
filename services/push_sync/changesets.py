"""Changeset and change recording for a single commit."""

import logging
from typing import Dict, Optional

from shared.models import (
    ChangeAction, ChangeCreate, ChangesetCreate, Commit, CommitRecordResult, Reference,
)
from .errors import ChangesetRecordingError, PushSyncError
from .state import StateTransitioner
from .tracker import RallyClient
from .users import UserResolver

logger = logging.getLogger(__name__)


def commit_url(repository_url: str, revision: str) -> str:
    return f"{repository_url}/commit/{revision}"


def blob_url(repository_url: str, branch: str, path: str) -> str:
    return f"{repository_url}/blob/{branch}/{path}"


class ChangesetRecorder:
    """Records one commit in Rally.

    Order of operations: author lookup, schedule state updates for every
    referenced artifact, changeset creation, then one change per touched
    path. Only a failed changeset aborts the commit.
    """

    def __init__(
        self,
        client: RallyClient,
        users: UserResolver,
        transitioner: Optional[StateTransitioner] = None,
    ):
        self.client = client
        self.users = users
        self.transitioner = transitioner or StateTransitioner(client)

    async def record(
        self,
        commit: Commit,
        repository_ref: str,
        artifacts: Dict[str, str],
        repository_url: str,
        branch: str,
    ) -> CommitRecordResult:
        result = CommitRecordResult(revision=commit.id)
        author_ref = await self.users.resolve(commit.author.email)

        for identifier, ref in artifacts.items():
            try:
                state = await self.transitioner.transition(identifier, ref, commit.message)
            except PushSyncError as e:
                result.state_failures += 1
                logger.warning(f"Error updating state of {identifier}: {e}")
                continue
            if state is not None:
                result.states_applied[identifier] = state.value

        request = ChangesetCreate(
            scm_repository=repository_ref,
            revision=commit.id,
            message=commit.message,
            uri=commit_url(repository_url, commit.id),
            commit_timestamp=commit.timestamp or None,
            author=author_ref or None,
            artifacts=[Reference(ref=ref) for ref in artifacts.values()] or None,
        )
        result.changeset_ref = await self._create_changeset(request)

        for action, path in commit.changes():
            if await self._add_change(action, result.changeset_ref, path, blob_url(repository_url, branch, path)):
                result.changes_created += 1
            else:
                result.change_failures += 1

        logger.info(
            f"Recorded {commit.id} as {result.changeset_ref} "
            f"({result.changes_created} changes, {result.change_failures} failed)"
        )
        return result

    async def _create_changeset(self, request: ChangesetCreate) -> str:
        try:
            created = await self.client.create_changeset(request)
        except PushSyncError as e:
            raise ChangesetRecordingError(
                f"unable to create changeset for {request.revision}: {e}",
                context={"revision": request.revision},
            ) from e

        if not created.ref:
            raise ChangesetRecordingError(
                f"unable to create changeset for {request.revision}: {created.errors}",
                context={"revision": request.revision, "errors": created.errors},
            )
        return created.ref

    async def _add_change(self, action: ChangeAction, changeset_ref: str, path: str, uri: str) -> bool:
        request = ChangeCreate(action=action, changeset=changeset_ref, path=path, uri=uri)
        try:
            await self.client.create_change(request)
        except PushSyncError as e:
            logger.warning(f"Error adding change {action.value} {path}: {e}")
            return False
        return True
