"""Optimistic local edits reconciled against the authoritative record.

Every transition replaces the visible record in one assignment, so a reader
sees either the fully merged edit, the server's record, or the last
known-good snapshot; never a mix of them.

Usage example:
    record = OptimisticRecord({"id": "p1", "companyName": "Acme"})
    record.submit({"companyName": "Acme Federal"}, gateway)
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from ..exceptions import InvalidRecordError, OptimisticCommitError
from ..observability.logging import get_logger
from ..protocols import ProfileGateway

logger = get_logger("govcon_match_engine.optimistic")


def _frozen(record: Mapping[str, object]) -> Mapping[str, object]:
    return MappingProxyType(copy.deepcopy(dict(record)))


@dataclass(frozen=True)
class OptimisticEdit:
    """What a reader can observe at one instant."""

    snapshot: Mapping[str, object]
    view: Mapping[str, object]
    pending_fields: frozenset[str]

    @property
    def is_pending(self) -> bool:
        return bool(self.pending_fields)


class OptimisticRecord:
    """A record that shows local edits before the server confirms them."""

    def __init__(self, record: Mapping[str, object], *, record_id: str | None = None) -> None:
        resolved_id = record_id or record.get("id")
        if not isinstance(resolved_id, str) or not resolved_id:
            raise InvalidRecordError("optimistic record", "missing id")
        self.record_id = resolved_id
        frozen = _frozen(record)
        self._state = OptimisticEdit(snapshot=frozen, view=frozen, pending_fields=frozenset())
        self._submit_lock = asyncio.Lock()

    @property
    def current(self) -> OptimisticEdit:
        return self._state

    @property
    def view(self) -> Mapping[str, object]:
        return self._state.view

    @property
    def snapshot(self) -> Mapping[str, object]:
        return self._state.snapshot

    @property
    def pending_fields(self) -> frozenset[str]:
        return self._state.pending_fields

    def apply_optimistic(self, updates: Mapping[str, object]) -> None:
        """Show ``updates`` immediately; the pre-edit record stays as the snapshot."""
        state = self._state
        merged = {**state.view, **copy.deepcopy(dict(updates))}
        self._state = OptimisticEdit(
            snapshot=state.snapshot,
            view=MappingProxyType(merged),
            pending_fields=state.pending_fields | frozenset(updates),
        )

    def commit(self, server_record: Mapping[str, object]) -> None:
        """Adopt the server's record as both view and snapshot."""
        frozen = _frozen(server_record)
        self._state = OptimisticEdit(snapshot=frozen, view=frozen, pending_fields=frozenset())

    def revert(self) -> None:
        """Restore the last known-good snapshot and drop every pending field."""
        state = self._state
        if state.pending_fields:
            logger.info(
                "Reverting %s on %s", ", ".join(sorted(state.pending_fields)), self.record_id
            )
        self._state = OptimisticEdit(
            snapshot=state.snapshot, view=state.snapshot, pending_fields=frozenset()
        )

    def submit(
        self, updates: Mapping[str, object], gateway: ProfileGateway
    ) -> Mapping[str, object]:
        """Apply, persist, then commit or revert.

        Raises:
            OptimisticCommitError: If the gateway fails; the record has already
                been reverted when this is raised.
        """
        self.apply_optimistic(updates)
        try:
            server_record = gateway.persist_optimistic_edit(self.record_id, dict(updates))
        except Exception as exc:
            self.revert()
            raise OptimisticCommitError(updates.keys(), str(exc)) from exc
        self.commit(server_record)
        return self.view

    async def asubmit(
        self, updates: Mapping[str, object], gateway: ProfileGateway
    ) -> Mapping[str, object]:
        """Awaitable ``submit``; the optimistic view is visible while the request runs.

        Overlapping submits on one record run one after another, so a commit or
        revert only ever settles its own edit.
        """
        async with self._submit_lock:
            self.apply_optimistic(updates)
            try:
                server_record = await asyncio.to_thread(
                    gateway.persist_optimistic_edit, self.record_id, dict(updates)
                )
            except Exception as exc:
                self.revert()
                raise OptimisticCommitError(updates.keys(), str(exc)) from exc
            self.commit(server_record)
            return self.view
