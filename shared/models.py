"""
Data models for the GitHub → Rally push sync service.

This module provides:
- The subset of the GitHub push webhook payload the sync engine reads
- Rally artifact kinds, schedule states and change actions
- Typed Rally WSAPI request bodies, serialized with Rally field names
- Typed Rally WSAPI response envelopes
- Sync outcome reports
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

_REF_PREFIX_RE = re.compile(r"^refs/(heads|tags)/")


class ArtifactKind(Enum):
    """Rally artifact types, valued by their WSAPI resource path."""
    DEFECT = "defect"
    DEFECT_SUITE = "defectsuite"
    TASK = "task"
    TEST_CASE = "testcase"
    REQUIREMENT = "hierarchicalrequirement"

    @property
    def type_name(self) -> str:
        """WSAPI object type used to wrap request bodies."""
        return _TYPE_NAMES[self]


_TYPE_NAMES = {
    ArtifactKind.DEFECT: "Defect",
    ArtifactKind.DEFECT_SUITE: "DefectSuite",
    ArtifactKind.TASK: "Task",
    ArtifactKind.TEST_CASE: "TestCase",
    ArtifactKind.REQUIREMENT: "HierarchicalRequirement",
}


class ScheduleState(Enum):
    """Workflow states the sync engine moves artifacts into."""
    IN_PROGRESS = "In-Progress"
    COMPLETED = "Completed"


class ChangeAction(Enum):
    """Rally change actions for touched paths."""
    ADDED = "A"
    MODIFIED = "M"
    REMOVED = "R"


# GitHub push payload
class CommitAuthor(BaseModel):
    """Author or committer identity on a pushed commit."""

    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Email address")
    username: Optional[str] = Field(default=None, description="GitHub login")

    model_config = {"frozen": True, "extra": "ignore"}


class Commit(BaseModel):
    """A single commit from a GitHub push event."""

    id: str = Field(..., min_length=1, description="Commit SHA")
    tree_id: Optional[str] = None
    distinct: bool = True
    message: str = Field(default="", description="Commit message")
    timestamp: str = Field(default="", description="Commit timestamp as sent by GitHub")
    url: str = Field(default="", description="Commit URL")
    author: CommitAuthor = Field(default_factory=CommitAuthor)
    committer: Optional[CommitAuthor] = None
    added: List[str] = Field(default_factory=list, description="Added paths")
    removed: List[str] = Field(default_factory=list, description="Removed paths")
    modified: List[str] = Field(default_factory=list, description="Modified paths")

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("added", "removed", "modified", mode="before")
    @classmethod
    def validate_paths(cls, v):
        """GitHub sends null for empty path lists on some events."""
        return v or []

    def changes(self) -> List[Tuple[ChangeAction, str]]:
        """Return every touched path tagged with its action, added first."""
        return (
            [(ChangeAction.ADDED, path) for path in self.added]
            + [(ChangeAction.MODIFIED, path) for path in self.modified]
            + [(ChangeAction.REMOVED, path) for path in self.removed]
        )


class Repository(BaseModel):
    """Repository the push was made to."""

    id: Optional[int] = None
    name: str = Field(..., min_length=1, description="Repository name")
    full_name: str = ""
    url: str = Field(default="", description="Repository web URL")
    html_url: str = ""

    model_config = {"frozen": True, "extra": "ignore"}

    @property
    def web_url(self) -> str:
        return (self.url or self.html_url).rstrip("/")


class PushEvent(BaseModel):
    """GitHub push webhook payload."""

    ref: str = Field(default="", description="Pushed ref, e.g. refs/heads/main")
    before: str = ""
    after: str = ""
    commits: List[Commit] = Field(default_factory=list)
    repository: Repository
    pusher: Optional[CommitAuthor] = None

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("commits", mode="before")
    @classmethod
    def validate_commits(cls, v):
        return v or []

    @property
    def branch(self) -> str:
        """Branch (or tag) name without its refs/ prefix."""
        if _REF_PREFIX_RE.match(self.ref):
            return _REF_PREFIX_RE.sub("", self.ref)
        return self.ref.rsplit("/", 1)[-1]


# Rally references and resolution results
class Reference(BaseModel):
    """A Rally object reference as returned in query results."""

    ref: str = Field(default="", alias="_ref")
    ref_object_name: Optional[str] = Field(default=None, alias="_refObjectName")
    ref_object_uuid: Optional[str] = Field(default=None, alias="_refObjectUUID")
    type: Optional[str] = Field(default=None, alias="_type")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ArtifactReference(BaseModel):
    """An artifact identifier found in a commit message."""

    identifier: str
    kind: ArtifactKind
    ref: str = ""

    @property
    def resolved(self) -> bool:
        return bool(self.ref)


# Rally request bodies
class TrackerRequest(BaseModel):
    """Base for Rally create/update bodies, wrapped in their object type."""

    wrapper: ClassVar[str] = ""

    model_config = {"populate_by_name": True}

    def to_payload(self) -> Dict[str, Any]:
        return {self.wrapper: self.model_dump(by_alias=True, exclude_none=True, mode="json")}


class SCMRepositoryCreate(TrackerRequest):
    wrapper: ClassVar[str] = "SCMRepository"

    scm_type: str = Field(default="GitHub", alias="SCMType")
    name: str = Field(..., alias="Name")
    workspace: str = Field(..., alias="Workspace")
    description: str = Field(default="GitHub-Service push Changesets", alias="Description")
    uri: str = Field(..., alias="Uri")


class ChangesetCreate(TrackerRequest):
    wrapper: ClassVar[str] = "Changeset"

    scm_repository: str = Field(..., alias="SCMRepository")
    revision: str = Field(..., alias="Revision")
    message: str = Field(default="", alias="Message")
    uri: str = Field(..., alias="Uri")
    commit_timestamp: Optional[str] = Field(default=None, alias="CommitTimestamp")
    author: Optional[str] = Field(default=None, alias="Author")
    artifacts: Optional[List[Reference]] = Field(default=None, alias="Artifacts")


class ChangeCreate(TrackerRequest):
    wrapper: ClassVar[str] = "Change"

    action: ChangeAction = Field(..., alias="Action")
    changeset: str = Field(..., alias="Changeset")
    path: str = Field(..., alias="PathAndFilename")
    uri: str = Field(..., alias="Uri")


class StateUpdate(TrackerRequest):
    """Schedule state update, wrapped in the artifact's own type name."""

    kind: ArtifactKind = Field(default=ArtifactKind.REQUIREMENT, exclude=True)
    schedule_state: ScheduleState = Field(..., alias="ScheduleState")

    def to_payload(self) -> Dict[str, Any]:
        return {
            self.kind.type_name: self.model_dump(by_alias=True, exclude_none=True, mode="json")
        }


# Rally response envelopes
class QueryResult(BaseModel):
    total_result_count: int = Field(default=0, alias="TotalResultCount")
    results: List[Reference] = Field(default_factory=list, alias="Results")
    errors: List[Any] = Field(default_factory=list, alias="Errors")
    warnings: List[Any] = Field(default_factory=list, alias="Warnings")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class QueryResponse(BaseModel):
    query_result: QueryResult = Field(..., alias="QueryResult")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class CreateResult(BaseModel):
    object: Optional[Reference] = Field(default=None, alias="Object")
    errors: List[Any] = Field(default_factory=list, alias="Errors")
    warnings: List[Any] = Field(default_factory=list, alias="Warnings")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def ref(self) -> str:
        return self.object.ref if self.object else ""


class CreateResponse(BaseModel):
    create_result: CreateResult = Field(..., alias="CreateResult")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ArtifactState(Reference):
    schedule_state: Optional[str] = Field(default=None, alias="ScheduleState")


class OperationResult(BaseModel):
    object: Optional[ArtifactState] = Field(default=None, alias="Object")
    errors: List[Any] = Field(default_factory=list, alias="Errors")
    warnings: List[Any] = Field(default_factory=list, alias="Warnings")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @property
    def schedule_state(self) -> Optional[str]:
        return self.object.schedule_state if self.object else None


class OperationResponse(BaseModel):
    operation_result: OperationResult = Field(..., alias="OperationResult")

    model_config = {"populate_by_name": True, "extra": "ignore"}


# Service responses and reports
class PushResponse(BaseModel):
    """Acknowledgement returned to the webhook caller."""

    result: str
    errors: List[str] = Field(default_factory=list)


class CommitRecordResult(BaseModel):
    """Outcome of recording one commit in Rally."""

    revision: str
    changeset_ref: str = ""
    changes_created: int = 0
    change_failures: int = 0
    states_applied: Dict[str, str] = Field(default_factory=dict)
    state_failures: int = 0


class PushSyncReport(BaseModel):
    """Outcome of the detached processing of one push."""

    repository: str
    branch: str
    repository_ref: str = ""
    commits_total: int = 0
    commits_processed: int = 0
    changesets_created: int = 0
    changeset_failures: int = 0
    changes_created: int = 0
    change_failures: int = 0
    state_updates: int = 0
    state_failures: int = 0
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.changeset_failures == 0

    def add_commit(self, result: CommitRecordResult) -> None:
        self.commits_processed += 1
        self.changesets_created += 1
        self.changes_created += result.changes_created
        self.change_failures += result.change_failures
        self.state_updates += len(result.states_applied)
        self.state_failures += result.state_failures
