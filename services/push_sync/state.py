"""
Schedule state inference from commit message keywords.

``STARTS US12`` / ``BEGINS US12`` move US12 to In-Progress and
``COMPLETES US12`` / ``FINISHES US12`` move it to Completed. Keywords are
case-sensitive and only apply to the identifier that directly follows them.
"""

import logging
import re
from typing import Optional, Tuple

from shared.models import ArtifactKind, ScheduleState
from .artifacts import ArtifactMatcher
from .tracker import RallyClient

logger = logging.getLogger(__name__)

START_KEYWORDS = ("STARTS", "BEGINS")
COMPLETE_KEYWORDS = ("COMPLETES", "FINISHES")


def _keyword_pattern(keywords: Tuple[str, ...], identifier: str):
    return re.compile(r"(?:" + "|".join(keywords) + r")\s" + re.escape(identifier) + r"(?!\d)")


class StateTransitioner:
    """Derives and applies schedule state changes for referenced artifacts."""

    def __init__(self, client: Optional[RallyClient] = None, matcher: Optional[ArtifactMatcher] = None):
        self.client = client
        self.matcher = matcher or ArtifactMatcher()

    @staticmethod
    def detect(message: str, identifier: str) -> Tuple[bool, bool]:
        """Return ``(starts, completes)`` for ``identifier`` in ``message``."""
        message = message or ""
        starts = bool(_keyword_pattern(START_KEYWORDS, identifier).search(message))
        completes = bool(_keyword_pattern(COMPLETE_KEYWORDS, identifier).search(message))
        return starts, completes

    def target_state(self, message: str, identifier: str) -> Optional[ScheduleState]:
        starts, completes = self.detect(message, identifier)
        # Completion wins when both keywords name the same artifact
        if completes:
            return ScheduleState.COMPLETED
        if starts:
            return ScheduleState.IN_PROGRESS
        return None

    async def transition(self, identifier: str, ref: str, message: str) -> Optional[ScheduleState]:
        """Apply the state signalled for ``identifier``, if any.

        Returns the applied state. Errors from the update propagate to the
        caller.
        """
        state = self.target_state(message, identifier)
        if state is None:
            return None

        kind = self.matcher.kind_for(identifier) or ArtifactKind.REQUIREMENT
        logger.info(f"Moving {identifier} to {state.value}")
        await self.client.update_state(ref, kind, state)
        return state
