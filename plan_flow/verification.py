"""Targeted re-query of a single legal requirement, patched into the plan in place."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import DefaultDict, FrozenSet, Set

import structlog

from .context import SessionContext
from .errors import InvalidIndexError, StaleResultError
from .llm import PlanBackend
from .schemas import RegulatoryDetail

logger = structlog.get_logger(__name__)


class LegalVerifier:
    """Refresh ``legal_requirements[index]`` through a shallow merge.

    Only the verifiable fields are taken from the backend; anything it omits
    keeps its prior value. Different indices may be verified concurrently,
    while calls for the same index queue behind a per-index lock.
    """

    def __init__(self, backend: PlanBackend, context: SessionContext) -> None:
        self._backend = backend
        self._context = context
        self._locks: DefaultDict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._in_flight: Set[int] = set()

    @property
    def in_flight(self) -> FrozenSet[int]:
        return frozenset(self._in_flight)

    async def verify(self, index: int) -> RegulatoryDetail:
        self._entry(index)
        async with self._locks[index]:
            plan = self._context.require_plan()
            original = self._entry(index)
            token = self._context.token()
            self._in_flight.add(index)
            try:
                patch = await self._backend.verify_regulatory_detail(original, plan.target_location)
            finally:
                self._in_flight.discard(index)

            latest = self._context.plan
            if not self._context.is_current(token) or latest is None:
                raise StaleResultError("session was reset while the requirement was being verified")
            if index >= len(latest.legal_requirements) or latest.legal_requirements[index] != original:
                raise StaleResultError(f"legal requirement {index} was regenerated while it was being verified")

            changes = patch.changes()
            merged = original.model_copy(update=changes)
            requirements = list(latest.legal_requirements)
            requirements[index] = merged
            self._context.plan = latest.model_copy(update={"legal_requirements": requirements})
            logger.info("legal_requirement_verified", index=index, name=original.name, updated=sorted(changes))
            return merged

    def _entry(self, index: int) -> RegulatoryDetail:
        requirements = self._context.require_plan().legal_requirements
        if index < 0 or index >= len(requirements):
            raise InvalidIndexError(f"no legal requirement at index {index}")
        return requirements[index]
