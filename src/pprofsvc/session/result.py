"""Immutable per-kind outcomes of a start or stop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pprofsvc.core.kinds import ProfileKind


@dataclass(frozen=True)
class Outcome:
    ok: bool
    message: str


@dataclass(frozen=True)
class SessionResult:
    operation: str
    outcomes: tuple[tuple[ProfileKind, Outcome], ...]

    @property
    def ok(self) -> bool:
        return all(outcome.ok for _, outcome in self.outcomes)

    @property
    def failed(self) -> tuple[ProfileKind, ...]:
        return tuple(kind for kind, outcome in self.outcomes if not outcome.ok)

    def outcome(self, kind: ProfileKind) -> Optional[Outcome]:
        for k, outcome in self.outcomes:
            if k == kind:
                return outcome
        return None

    def messages(self) -> dict[str, str]:
        """Messages keyed by kind name, in processing order."""
        return {kind.value: outcome.message for kind, outcome in self.outcomes}
