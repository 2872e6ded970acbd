"""
Artifact identifier extraction and resolution.

Commit messages reference Rally work items by formatted ID: a type prefix
immediately followed by digits, e.g. ``US123`` or ``DE42``.
"""

import logging
import re
from typing import Dict, List, Optional

from shared.models import ArtifactKind, ArtifactReference
from .errors import TrackerRequestError
from .tracker import RallyClient

logger = logging.getLogger(__name__)

PREFIX_KINDS = {
    "D": ArtifactKind.DEFECT,
    "DE": ArtifactKind.DEFECT,
    "DS": ArtifactKind.DEFECT_SUITE,
    "TA": ArtifactKind.TASK,
    "TC": ArtifactKind.TEST_CASE,
    "S": ArtifactKind.REQUIREMENT,
    "US": ArtifactKind.REQUIREMENT,
}

# Two-letter prefixes first so DE12 is never read as D + E12
_PREFIXES = sorted(PREFIX_KINDS, key=len, reverse=True)
IDENTIFIER_RE = re.compile(r"(?P<prefix>" + "|".join(_PREFIXES) + r")(?P<number>\d+)")


class ArtifactMatcher:
    """Tokenizer for formatted artifact identifiers."""

    pattern = IDENTIFIER_RE

    def find(self, message: str) -> List[ArtifactReference]:
        """Return every identifier in ``message`` in order, duplicates included."""
        return [
            ArtifactReference(identifier=match.group(0), kind=PREFIX_KINDS[match.group("prefix")])
            for match in self.pattern.finditer(message or "")
        ]

    def kind_for(self, identifier: str) -> Optional[ArtifactKind]:
        match = self.pattern.fullmatch(identifier)
        if not match:
            return None
        return PREFIX_KINDS[match.group("prefix")]


class ArtifactResolver:
    """Maps identifiers in a commit message to Rally artifact refs."""

    def __init__(self, client: RallyClient, matcher: Optional[ArtifactMatcher] = None):
        self.client = client
        self.matcher = matcher or ArtifactMatcher()

    async def resolve(self, message: str) -> Dict[str, str]:
        """Return ``{identifier: ref}`` for every identifier Rally knows about.

        Unknown identifiers and failed lookups are left out; one failure never
        stops the remaining lookups.
        """
        artifacts: Dict[str, str] = {}
        for reference in self.matcher.find(message):
            try:
                ref = await self.client.find_artifact(reference.kind, reference.identifier)
            except TrackerRequestError as e:
                logger.warning(f"Lookup of {reference.identifier} failed: {e}")
                continue
            if not ref:
                logger.debug(f"No {reference.kind.value} found for {reference.identifier}")
                continue
            artifacts[reference.identifier] = ref
        return artifacts
