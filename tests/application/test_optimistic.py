"""Tests for optimistic edits with commit and revert."""

import asyncio

import pytest

from govcon_match_engine.application.optimistic import OptimisticRecord
from govcon_match_engine.exceptions import InvalidRecordError, OptimisticCommitError
from tests.fakes import FakeProfileGateway
from tests.support.errors import FakeProviderError

ORIGINAL: dict[str, object] = {
    "id": "profile-1",
    "companyName": "Acme",
    "website": "https://old.acme.test",
    "naicsCodes": ["541512"],
}


class TestApplyAndRevert:
    """Tests for local transitions."""

    def test_apply_shows_edits_and_tracks_pending_fields(self) -> None:
        record = OptimisticRecord(ORIGINAL)

        record.apply_optimistic({"companyName": "Acme Federal"})

        assert record.view["companyName"] == "Acme Federal"
        assert record.snapshot["companyName"] == "Acme"
        assert record.pending_fields == frozenset({"companyName"})
        assert record.current.is_pending is True

    def test_revert_restores_every_field(self) -> None:
        record = OptimisticRecord(ORIGINAL)
        record.apply_optimistic({"companyName": "Acme Federal"})
        record.apply_optimistic({"website": "https://acme.test"})

        record.revert()

        assert dict(record.view) == ORIGINAL
        assert record.pending_fields == frozenset()

    def test_commit_adopts_server_record(self) -> None:
        record = OptimisticRecord(ORIGINAL)
        record.apply_optimistic({"companyName": "Acme Federal"})

        record.commit({**ORIGINAL, "companyName": "ACME FEDERAL LLC"})

        assert record.view["companyName"] == "ACME FEDERAL LLC"
        assert record.snapshot == record.view
        assert record.pending_fields == frozenset()

    def test_views_are_isolated_from_caller_mutation(self) -> None:
        source: dict[str, object] = {"id": "p1", "naicsCodes": ["541512"]}
        record = OptimisticRecord(source)
        codes = source["naicsCodes"]
        assert isinstance(codes, list)

        codes.append("999999")

        assert record.view["naicsCodes"] == ["541512"]

    def test_record_requires_an_id(self) -> None:
        with pytest.raises(InvalidRecordError):
            OptimisticRecord({"companyName": "Acme"})

    def test_explicit_record_id(self) -> None:
        record = OptimisticRecord({"companyName": "Acme"}, record_id="p9")

        assert record.record_id == "p9"


class TestSubmit:
    """Tests for persisting edits through a gateway."""

    def test_accepted_edit_is_committed(self) -> None:
        gateway = FakeProfileGateway(server_record=dict(ORIGINAL))
        record = OptimisticRecord(ORIGINAL)

        view = record.submit(
            {"companyName": "Acme Federal", "website": "https://acme.test"}, gateway
        )

        assert view["companyName"] == "Acme Federal"
        assert view["website"] == "https://acme.test"
        assert record.pending_fields == frozenset()
        assert dict(record.view) == gateway.server_record
        assert gateway.edits == [
            ("profile-1", {"companyName": "Acme Federal", "website": "https://acme.test"})
        ]

    def test_rejected_edit_reverts_all_fields_together(self) -> None:
        gateway = FakeProfileGateway(
            server_record=dict(ORIGINAL), error=FakeProviderError("validation failed")
        )
        record = OptimisticRecord(ORIGINAL)

        with pytest.raises(OptimisticCommitError) as exc_info:
            record.submit({"companyName": "Acme Federal", "website": "https://acme.test"}, gateway)

        assert exc_info.value.fields == ("companyName", "website")
        assert record.view["companyName"] == "Acme"
        assert record.view["website"] == "https://old.acme.test"
        assert record.pending_fields == frozenset()

    def test_async_submit_exposes_optimistic_view_while_in_flight(self) -> None:
        gateway = FakeProfileGateway(server_record=dict(ORIGINAL))
        record = OptimisticRecord(ORIGINAL)
        observed: list[object] = []

        async def run() -> None:
            task = asyncio.create_task(record.asubmit({"companyName": "Acme Federal"}, gateway))
            await asyncio.sleep(0)
            observed.append(record.view["companyName"])
            observed.append(record.pending_fields)
            await task

        asyncio.run(run())

        assert observed == ["Acme Federal", frozenset({"companyName"})]
        assert record.pending_fields == frozenset()

    def test_async_rejection_reverts(self) -> None:
        gateway = FakeProfileGateway(server_record=dict(ORIGINAL), error=FakeProviderError())
        record = OptimisticRecord(ORIGINAL)

        with pytest.raises(OptimisticCommitError):
            asyncio.run(record.asubmit({"website": "https://acme.test"}, gateway))

        assert dict(record.view) == ORIGINAL

    def test_overlapping_async_submits_settle_in_order(self) -> None:
        gateway = FakeProfileGateway(server_record=dict(ORIGINAL))
        record = OptimisticRecord(ORIGINAL)
        observed: list[frozenset[str]] = []

        async def run() -> None:
            first = asyncio.create_task(record.asubmit({"companyName": "Acme Federal"}, gateway))
            second = asyncio.create_task(record.asubmit({"website": "https://acme.test"}, gateway))
            await asyncio.sleep(0)
            observed.append(record.pending_fields)
            await asyncio.gather(first, second)

        asyncio.run(run())

        assert observed == [frozenset({"companyName"})]
        assert gateway.edits == [
            ("profile-1", {"companyName": "Acme Federal"}),
            ("profile-1", {"website": "https://acme.test"}),
        ]
        assert record.view["companyName"] == "Acme Federal"
        assert record.view["website"] == "https://acme.test"
        assert record.pending_fields == frozenset()
