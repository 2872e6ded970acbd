"""
Unit tests for artifact identifier matching and resolution.
"""

import pytest
from unittest.mock import AsyncMock

from services.push_sync.artifacts import ArtifactMatcher, ArtifactResolver, PREFIX_KINDS
from services.push_sync.errors import TrackerRequestError
from shared.models import ArtifactKind


class TestArtifactMatcher:
    """Test cases for ArtifactMatcher."""

    @pytest.fixture
    def matcher(self):
        return ArtifactMatcher()

    @pytest.mark.parametrize("message", [
        "",
        "fix typo in README",
        "bump version to 1.2.3",
        "US-123 is not a valid identifier",
    ])
    def test_no_identifiers(self, matcher, message):
        assert matcher.find(message) == []

    def test_finds_identifiers_in_order(self, matcher):
        found = matcher.find("US12345 and TA6789: parser work")

        assert [r.identifier for r in found] == ["US12345", "TA6789"]
        assert [r.kind for r in found] == [ArtifactKind.REQUIREMENT, ArtifactKind.TASK]
        assert all(not r.resolved for r in found)

    def test_keeps_duplicates(self, matcher):
        found = matcher.find("US1 then US1 again")

        assert [r.identifier for r in found] == ["US1", "US1"]

    @pytest.mark.parametrize("identifier,kind", [
        ("D12", ArtifactKind.DEFECT),
        ("DE12", ArtifactKind.DEFECT),
        ("DS3", ArtifactKind.DEFECT_SUITE),
        ("TA4", ArtifactKind.TASK),
        ("TC5", ArtifactKind.TEST_CASE),
        ("S6", ArtifactKind.REQUIREMENT),
        ("US7", ArtifactKind.REQUIREMENT),
    ])
    def test_prefix_kind_mapping(self, matcher, identifier, kind):
        found = matcher.find(f"fixes {identifier}")

        assert len(found) == 1
        assert found[0].identifier == identifier
        assert found[0].kind == kind
        assert matcher.kind_for(identifier) == kind

    def test_two_letter_prefix_wins(self, matcher):
        found = matcher.find("DE42")

        assert found[0].identifier == "DE42"
        assert found[0].kind == ArtifactKind.DEFECT

    def test_kind_for_rejects_non_identifiers(self, matcher):
        assert matcher.kind_for("XY12") is None
        assert matcher.kind_for("US") is None
        assert matcher.kind_for("US12 ") is None

    def test_every_prefix_is_mapped(self):
        assert set(PREFIX_KINDS) == {"D", "DE", "DS", "TA", "TC", "S", "US"}


class TestArtifactResolver:
    """Test cases for ArtifactResolver against the fake Rally server."""

    @pytest.mark.asyncio
    async def test_empty_mapping_without_identifiers(self, rally_client, fake_rally):
        resolver = ArtifactResolver(rally_client)

        assert await resolver.resolve("refactor logging") == {}
        assert fake_rally.requests == []

    @pytest.mark.asyncio
    async def test_resolves_both_existing_identifiers(self, rally_client, fake_rally):
        resolver = ArtifactResolver(rally_client)

        artifacts = await resolver.resolve("US12345 and TA6789")

        assert artifacts == {
            "US12345": fake_rally.artifacts["hierarchicalrequirement"]["US12345"],
            "TA6789": fake_rally.artifacts["task"]["TA6789"],
        }
        queries = [r.url.params["query"] for r in fake_rally.requests]
        assert queries == ["(FormattedID = US12345)", "(FormattedID = TA6789)"]
        assert fake_rally.requests[0].url.path.endswith("/hierarchicalrequirement")
        assert fake_rally.requests[1].url.path.endswith("/task")

    @pytest.mark.asyncio
    async def test_drops_unknown_identifier(self, rally_client, fake_rally):
        del fake_rally.artifacts["task"]["TA6789"]
        resolver = ArtifactResolver(rally_client)

        artifacts = await resolver.resolve("US12345 and TA6789")

        assert list(artifacts) == ["US12345"]

    @pytest.mark.asyncio
    async def test_failed_lookup_does_not_stop_others(self, rally_client, fake_rally):
        fake_rally.failing_lookups.add("US12345")
        resolver = ArtifactResolver(rally_client)

        artifacts = await resolver.resolve("US12345 TA6789 DE42")

        assert set(artifacts) == {"TA6789", "DE42"}
        assert len(fake_rally.requests) == 3

    @pytest.mark.asyncio
    async def test_duplicates_are_each_looked_up(self, rally_client, fake_rally):
        resolver = ArtifactResolver(rally_client)

        artifacts = await resolver.resolve("US1 and US1")

        assert list(artifacts) == ["US1"]
        assert len(fake_rally.requests) == 2

    @pytest.mark.asyncio
    async def test_transport_errors_are_swallowed(self):
        client = AsyncMock()
        client.find_artifact.side_effect = [
            TrackerRequestError("connection reset"),
            "https://rally/task/1",
        ]
        resolver = ArtifactResolver(client)

        artifacts = await resolver.resolve("US9 TA1")

        assert artifacts == {"TA1": "https://rally/task/1"}
        assert client.find_artifact.await_count == 2
