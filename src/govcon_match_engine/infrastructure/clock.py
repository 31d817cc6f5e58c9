"""Wall-clock implementation of the Clock protocol."""

from __future__ import annotations

from datetime import UTC, datetime
from typing_extensions import override

from ..protocols import Clock


class SystemClock(Clock):
    @override
    def now(self) -> datetime:
        return datetime.now(UTC)
