"""Trigger and poll deep analysis for opportunities.

Each opportunity owns at most one polling task. Every artifact being processed
carries its own start time, and the task gives up on an artifact once the
timeout has elapsed since that start. The task ends as soon as nothing is left
processing, so no background work outlives the timeout.

Usage example:
    orchestrator = AnalysisOrchestrator(provider=provider, clock=SystemClock())
    await orchestrator.trigger("opp-1")
    await orchestrator.wait("opp-1")
    orchestrator.state("opp-1", ArtifactType.COMPETITORS)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timedelta
from types import MappingProxyType

from ..domain.analysis import (
    ALL_ARTIFACTS,
    DEFAULT_ARTIFACT_TTLS,
    PENDING,
    AnalysisCompleted,
    ArtifactState,
    ArtifactType,
    Completed,
    Failed,
    Processing,
)
from ..domain.analysis import is_stale as artifact_is_stale
from ..exceptions import AnalysisRequestError
from ..observability.logging import get_logger
from ..protocols import AnalysisProvider, Clock

logger = get_logger("govcon_match_engine.analysis_orchestrator")

DEFAULT_POLL_INTERVAL = timedelta(seconds=3)
DEFAULT_TIMEOUT = timedelta(minutes=5)

TIMED_OUT = "timed out"
CANCELLED = "cancelled"


def _item_count(data: object, *keys: str) -> int:
    if isinstance(data, list | tuple):
        return len(data)
    if isinstance(data, Mapping):
        for key in (*keys, "items", "results"):
            value = data.get(key)
            if isinstance(value, list | tuple):
                return len(value)
    return 0


class AnalysisOrchestrator:
    """Per-opportunity state machine over the three analysis artifacts."""

    def __init__(
        self,
        *,
        provider: AnalysisProvider,
        clock: Clock,
        poll_interval: timedelta = DEFAULT_POLL_INTERVAL,
        timeout: timedelta = DEFAULT_TIMEOUT,
        ttls: Mapping[ArtifactType, timedelta] = DEFAULT_ARTIFACT_TTLS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        on_complete: Callable[[AnalysisCompleted], None] | None = None,
    ) -> None:
        self._provider = provider
        self._clock = clock
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.ttls = MappingProxyType(dict(ttls))
        self._sleep = sleep
        self._on_complete = on_complete
        self._states: dict[str, dict[ArtifactType, ArtifactState]] = {}
        self._cycles: dict[str, int] = {}
        self._notified: set[tuple[str, int]] = set()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.notifications: list[AnalysisCompleted] = []

    # Queries

    def state(self, opportunity_id: str, artifact: ArtifactType) -> ArtifactState:
        return self._states.get(opportunity_id, {}).get(artifact, PENDING)

    def snapshot(self, opportunity_id: str) -> Mapping[ArtifactType, ArtifactState]:
        """Current state of every artifact for an opportunity."""
        states = self._states.get(opportunity_id, {})
        return MappingProxyType(
            {artifact: states.get(artifact, PENDING) for artifact in ALL_ARTIFACTS}
        )

    def is_stale(self, opportunity_id: str, artifact: ArtifactType) -> bool:
        """True when the artifact completed longer ago than its TTL.

        Stale data stays available; only an explicit ``trigger`` refreshes it.
        """
        return artifact_is_stale(
            self.state(opportunity_id, artifact), self.ttls[artifact], self._clock.now()
        )

    def stale_artifacts(self, opportunity_id: str) -> tuple[ArtifactType, ...]:
        return tuple(
            artifact for artifact in ALL_ARTIFACTS if self.is_stale(opportunity_id, artifact)
        )

    def is_polling(self, opportunity_id: str) -> bool:
        task = self._tasks.get(opportunity_id)
        return task is not None and not task.done()

    def cycle(self, opportunity_id: str) -> int:
        return self._cycles.get(opportunity_id, 0)

    # Commands

    async def trigger(
        self,
        opportunity_id: str,
        artifact_types: Iterable[ArtifactType] = ALL_ARTIFACTS,
    ) -> tuple[ArtifactType, ...]:
        """Request analysis for the given artifacts and make sure polling runs.

        Artifacts already processing are skipped, so repeated triggers never
        start a second request or polling loop.

        Returns:
            The artifacts that were actually requested.

        Raises:
            AnalysisRequestError: If the provider rejects the request. The
                requested artifacts are marked failed first.
        """
        states = self._states.setdefault(
            opportunity_id, {artifact: PENDING for artifact in ALL_ARTIFACTS}
        )
        requested = tuple(
            artifact
            for artifact in dict.fromkeys(artifact_types)
            if not isinstance(states.get(artifact, PENDING), Processing)
        )
        if not requested:
            logger.info("Analysis for %s already in progress; trigger ignored", opportunity_id)
            return ()

        started_at = self._clock.now()
        for artifact in requested:
            states[artifact] = Processing(started_at=started_at)
        self._cycles[opportunity_id] = self._cycles.get(opportunity_id, 0) + 1
        logger.info(
            "Analysis cycle %s for %s: %s -> processing",
            self._cycles[opportunity_id],
            opportunity_id,
            ", ".join(artifact.value for artifact in requested),
        )

        try:
            await asyncio.to_thread(self._provider.trigger_analysis, opportunity_id, requested)
        except asyncio.CancelledError:
            self._fail_requested(states, requested, CANCELLED)
            logger.info("Analysis request for %s cancelled", opportunity_id)
            raise
        except Exception as exc:
            self._fail_requested(states, requested, str(exc))
            logger.warning("Analysis request for %s failed: %s", opportunity_id, exc)
            raise AnalysisRequestError(opportunity_id, str(exc)) from exc

        if not self.is_polling(opportunity_id):
            self._tasks[opportunity_id] = asyncio.get_running_loop().create_task(
                self._poll(opportunity_id), name=f"analysis-poll-{opportunity_id}"
            )
        return requested

    async def wait(self, opportunity_id: str) -> None:
        """Wait until the opportunity's polling task has finished."""
        task = self._tasks.get(opportunity_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def cancel(self, opportunity_id: str) -> bool:
        """Stop polling for an opportunity; processing artifacts become failed."""
        task = self._tasks.pop(opportunity_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        now = self._clock.now()
        for artifact, state in self._states.get(opportunity_id, {}).items():
            if isinstance(state, Processing):
                self._states[opportunity_id][artifact] = Failed(reason=CANCELLED, failed_at=now)
        logger.info("Analysis polling for %s cancelled", opportunity_id)
        return True

    async def aclose(self) -> None:
        """Cancel every polling task and wait for them to unwind."""
        tasks = list(self._tasks.values())
        for opportunity_id in list(self._tasks):
            self.cancel(opportunity_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def clear(self, opportunity_id: str | None = None) -> None:
        """Forget analysis state for one opportunity, or for all of them."""
        targets = [opportunity_id] if opportunity_id is not None else list(self._states)
        for target in targets:
            task = self._tasks.pop(target, None)
            if task is not None and not task.done():
                task.cancel()
            self._states.pop(target, None)
            self._cycles.pop(target, None)
        if opportunity_id is None:
            self._notified.clear()
        else:
            self._notified = {entry for entry in self._notified if entry[0] != opportunity_id}
        logger.info("Cleared analysis state for %s", opportunity_id or "all opportunities")

    def _fail_requested(
        self,
        states: dict[ArtifactType, ArtifactState],
        requested: Iterable[ArtifactType],
        reason: str,
    ) -> None:
        failed_at = self._clock.now()
        for artifact in requested:
            if isinstance(states.get(artifact), Processing):
                states[artifact] = Failed(reason=reason, failed_at=failed_at)

    # Polling

    def _processing(self, opportunity_id: str) -> dict[ArtifactType, Processing]:
        return {
            artifact: state
            for artifact, state in self._states.get(opportunity_id, {}).items()
            if isinstance(state, Processing)
        }

    def _remaining(self, processing: Mapping[ArtifactType, Processing]) -> timedelta:
        earliest_deadline = min(state.started_at for state in processing.values()) + self.timeout
        return max(timedelta(0), earliest_deadline - self._clock.now())

    def _next_delay(self, processing: Mapping[ArtifactType, Processing]) -> float:
        return min(self.poll_interval, self._remaining(processing)).total_seconds()

    async def _poll(self, opportunity_id: str) -> None:
        try:
            processing = self._processing(opportunity_id)
            while processing:
                await self._sleep(self._next_delay(processing))
                processing = self._processing(opportunity_id)
                if not processing:
                    break
                since: dict[ArtifactType, datetime | None] = {
                    artifact: state.started_at for artifact, state in processing.items()
                }
                results = await self._poll_once(opportunity_id, since, self._remaining(processing))
                self._apply(opportunity_id, results)
                processing = self._processing(opportunity_id)
        finally:
            if self._tasks.get(opportunity_id) is asyncio.current_task():
                del self._tasks[opportunity_id]

    async def _poll_once(
        self,
        opportunity_id: str,
        since: Mapping[ArtifactType, datetime | None],
        remaining: timedelta,
    ) -> Mapping[ArtifactType, object | None]:
        """Poll once, giving up when the earliest deadline passes first."""
        if remaining <= timedelta(0):
            return {}
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._provider.poll_analysis, opportunity_id, since),
                timeout=remaining.total_seconds(),
            )
        except TimeoutError:
            logger.warning("Polling analysis for %s outlasted the timeout", opportunity_id)
        except Exception as exc:
            logger.warning("Polling analysis for %s failed: %s", opportunity_id, exc)
        return {}

    def _apply(
        self, opportunity_id: str, results: Mapping[ArtifactType, object | None]
    ) -> None:
        states = self._states.get(opportunity_id)
        if states is None:
            return
        now = self._clock.now()
        for artifact, payload in results.items():
            if payload is not None and isinstance(states.get(artifact), Processing):
                states[artifact] = Completed(data=payload, cached_at=now)
                logger.info("Analysis %s for %s completed", artifact.value, opportunity_id)
        for artifact, state in states.items():
            if isinstance(state, Processing) and now - state.started_at >= self.timeout:
                states[artifact] = Failed(reason=TIMED_OUT, failed_at=now)
                logger.warning("Analysis %s for %s timed out", artifact.value, opportunity_id)
        self._maybe_notify(opportunity_id, now)

    def _maybe_notify(self, opportunity_id: str, now: datetime) -> None:
        states = self._states.get(opportunity_id, {})
        if not all(isinstance(states.get(artifact), Completed) for artifact in ALL_ARTIFACTS):
            return
        cycle = self._cycles.get(opportunity_id, 0)
        if (opportunity_id, cycle) in self._notified:
            return
        self._notified.add((opportunity_id, cycle))

        competitors = states[ArtifactType.COMPETITORS]
        similar = states[ArtifactType.SIMILAR_CONTRACTS]
        event = AnalysisCompleted(
            opportunity_id=opportunity_id,
            cycle=cycle,
            competitors_count=_item_count(
                competitors.data if isinstance(competitors, Completed) else None, "competitors"
            ),
            similar_contracts_count=_item_count(
                similar.data if isinstance(similar, Completed) else None, "contracts"
            ),
            completed_at=now,
        )
        self.notifications.append(event)
        logger.info("%s (%s)", event.message, opportunity_id)
        if self._on_complete is not None:
            self._on_complete(event)
