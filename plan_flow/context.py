"""Mutable state shared by the operations of one planning session."""

from __future__ import annotations

from .errors import NoPlanError
from .schemas import BusinessPlan, Language


class SessionContext:
    """Hold the current plan, the language tag and the generation token.

    Every asynchronous operation captures :meth:`token` before its first
    backend call and checks :meth:`is_current` after each await; a reset bumps
    the generation so that results from calls issued before it are discarded.
    """

    def __init__(self, language: Language = Language.AUTO) -> None:
        self.language = language
        self.plan: BusinessPlan | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def token(self) -> int:
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def require_plan(self) -> BusinessPlan:
        if self.plan is None:
            raise NoPlanError("no business plan has been generated for this session yet")
        return self.plan

    def reset(self) -> None:
        """Discard the plan and invalidate every in-flight call."""

        self._generation += 1
        self.plan = None
