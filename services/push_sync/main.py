"""
GitHub → Rally push sync service.

This service receives GitHub push webhooks and records every pushed commit in
Rally:
- Validates the configured Rally workspace before acknowledging a push
- Gets or creates the Rally SCM repository for the pushed repository
- Links commits to the work items their messages reference (US123, DE45, ...)
- Moves work items to In-Progress / Completed on STARTS / COMPLETES keywords
- Records a changeset with one change per added, modified or removed path

Pushes are acknowledged immediately; the Rally calls run in a detached job
because GitHub drops webhook deliveries that take too long.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, settings
from shared.events import EventFactory, EventPublisher
from shared.models import Commit, PushEvent, PushResponse, PushSyncReport, SCMRepositoryCreate
from .artifacts import ArtifactResolver
from .changesets import ChangesetRecorder
from .dispatcher import PushDispatcher
from .errors import (
    InvalidArgumentError, PushSyncError, RepositoryResolutionError, TrackerRequestError,
    WorkspaceNotFoundError,
)
from .metrics import SyncMetrics
from .signature import SignatureValidator, signature_from_headers
from .tracker import RallyClient, create_rally_client
from .users import UserResolver

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.monitoring.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Push Sync Service",
    description="Synchronizes GitHub pushes into Rally changesets",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.service.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PushSyncService:
    """Core push synchronization logic."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[RallyClient] = None,
        publisher: Optional[EventPublisher] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        self.settings = config or settings
        self.workspace = self.settings.rally.workspace
        self.client = client or create_rally_client(self.settings.rally)
        self.users = UserResolver(self.client)
        self.artifacts = ArtifactResolver(self.client)
        self.recorder = ChangesetRecorder(self.client, self.users)
        self.dispatcher = PushDispatcher(
            max_concurrent=self.settings.sync.max_concurrent_pushes,
            timeout=self.settings.sync.push_timeout_seconds,
        )
        self.publisher = publisher or EventPublisher(self.settings.redis)
        self.metrics = metrics or SyncMetrics()

    async def initialize(self):
        """Initialize the service."""
        await self.publisher.initialize()
        logger.info(f"Push sync service initialized for workspace {self.workspace!r}")

    async def close(self):
        """Finish in-flight pushes and close connections."""
        await self.dispatcher.drain(timeout=self.settings.service.graceful_shutdown_timeout)
        await self.client.close()
        await self.publisher.close()
        logger.info("Push sync service connections closed")

    async def validate_workspace(self) -> str:
        """Return the ref of the configured workspace or raise."""
        try:
            workspace_ref = await self.client.find_workspace(self.workspace)
        except TrackerRequestError as e:
            logger.error(f"Workspace lookup failed: {e}")
            workspace_ref = None

        if not workspace_ref:
            raise WorkspaceNotFoundError("workspace not found", context={"workspace": self.workspace})
        return workspace_ref

    async def receive_push(self, event: PushEvent) -> PushResponse:
        """Acknowledge a push and schedule its processing.

        Only a missing workspace fails the call; everything after that runs
        detached and is reported through logs, metrics and events.
        """
        with self.metrics.timed("receive_push"):
            logger.info(
                f"Push to {event.repository.name} ({event.branch}) "
                f"with {len(event.commits)} commits"
            )
            try:
                workspace_ref = await self.validate_workspace()
            except WorkspaceNotFoundError:
                self.metrics.pushes_rejected += 1
                raise

            self.submit_push(event, workspace_ref)
            self.metrics.pushes_accepted += 1
            return PushResponse(result="created")

    def submit_push(self, event: PushEvent, workspace_ref: str) -> asyncio.Task:
        """Schedule detached processing and return the job handle."""
        name = f"push:{event.repository.name}:{event.after[:12] or event.branch}"
        return self.dispatcher.submit(lambda: self.process_push(event, workspace_ref), name=name)

    async def process_push(self, event: PushEvent, workspace_ref: str) -> PushSyncReport:
        """Record every commit of ``event`` in Rally, in order."""
        repository = event.repository
        report = PushSyncReport(
            repository=repository.name,
            branch=event.branch,
            commits_total=len(event.commits),
        )
        await self.publisher.publish(
            EventFactory.push_received(repository.name, event.branch, len(event.commits), event.after or None)
        )

        with self.metrics.timed("process_push"):
            try:
                report.repository_ref = await self.get_or_create_repository(
                    repository.name, repository.web_url, workspace_ref
                )
            except RepositoryResolutionError as e:
                logger.error(f"GetOrCreateSCMRepository {repository.name} failed: {e}")
                report.error = str(e)
            else:
                for commit in event.commits:
                    await self._process_commit(commit, event, report)

        report.finished_at = datetime.now(timezone.utc)
        self.metrics.record_report(report)
        await self.publisher.publish(EventFactory.push_finished(report, event.after or None))
        logger.info(
            f"Update rally completed for {repository.name}: "
            f"{report.changesets_created}/{report.commits_total} changesets, "
            f"{report.changeset_failures} failed, {report.change_failures} change failures"
        )
        return report

    async def _process_commit(self, commit: Commit, event: PushEvent, report: PushSyncReport):
        artifacts = await self.find_artifacts(commit)
        if artifacts:
            logger.info(f"Commit {commit.id[:12]} references {', '.join(artifacts)}")

        try:
            result = await self.recorder.record(
                commit,
                report.repository_ref,
                artifacts,
                event.repository.web_url,
                event.branch,
            )
        except PushSyncError as e:
            report.changeset_failures += 1
            logger.error(f"Error recording commit {commit.id}: {e}")
            return
        report.add_commit(result)

    async def find_artifacts(self, commit: Commit) -> Dict[str, str]:
        """Resolve the artifacts referenced by ``commit``."""
        with self.metrics.timed("find_artifacts"):
            return await self.artifacts.resolve(commit.message)

    async def get_or_create_repository(self, name: str, url: str, workspace_ref: str) -> str:
        try:
            existing = await self.client.find_scm_repository(name)
            if existing:
                return existing
            created = await self.client.create_scm_repository(
                SCMRepositoryCreate(name=name, workspace=workspace_ref, uri=url)
            )
        except TrackerRequestError as e:
            raise RepositoryResolutionError(str(e), context={"repository": name}) from e

        if not created.ref:
            raise RepositoryResolutionError(
                f"unable to create SCM repository {name}: {created.errors}",
                context={"repository": name},
            )
        logger.info(f"Created Rally SCM repository {name} as {created.ref}")
        return created.ref


def parse_push_event(body: bytes) -> PushEvent:
    """Decode a GitHub push payload."""
    try:
        return PushEvent.model_validate(json.loads(body))
    except ValueError as e:
        logger.warning(f"Rejected push payload: {e}")
        raise InvalidArgumentError("invalid argument") from e


# Service instance
push_sync_service = PushSyncService()

signature_validator = SignatureValidator(
    secret=(
        settings.github.webhook_secret.get_secret_value()
        if settings.github.webhook_secret else None
    ),
    required=settings.github.signature_required,
)


# API endpoints
@app.on_event("startup")
async def startup_event():
    """Initialize service on startup."""
    await push_sync_service.initialize()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    await push_sync_service.close()


@app.post("/api/receive", response_model=PushResponse)
async def receive_push(request: Request):
    """Receive a GitHub push webhook."""
    body = await request.body()
    try:
        signature_validator.check(body, signature_from_headers(request.headers))
        event = parse_push_event(body)
        return await push_sync_service.receive_push(event)

    except PushSyncError as e:
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})
    except Exception as e:
        logger.error(f"Error receiving push: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        return {
            "status": "healthy",
            "service": "push_sync",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "workspace": push_sync_service.workspace,
            "pending_pushes": push_sync_service.dispatcher.pending,
            "events": await push_sync_service.publisher.status(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "service": "push_sync",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )


@app.get("/metrics")
async def get_metrics():
    """Get service metrics."""
    if not settings.monitoring.enable_metrics:
        return JSONResponse(status_code=404, content={"error": "metrics disabled"})
    return push_sync_service.metrics.snapshot()
