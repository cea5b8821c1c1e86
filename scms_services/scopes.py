"""
scms_services.scopes -- capability checks for workflow transitions.

The engine asks one question: does this principal hold every one of these
scopes on this site?  Production wires a checker backed by the site's role
tables; ``StaticScopeChecker`` serves local runs and tests.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

SITE_SUBMISSIONS_READ = "site:submissions:read"
SITE_SUBMISSIONS_UPDATE = "site:submissions:update"
SITE_PUBLISHING = "site:submissions:publishing"


@runtime_checkable
class ScopeChecker(Protocol):
    def has_scopes(self, principal: str, tenant: str, required: Iterable[str]) -> bool:
        """True iff ``principal`` holds ALL of ``required`` on ``tenant``."""
        ...


class StaticScopeChecker:
    """ScopeChecker backed by a dict of (principal, tenant) -> scopes."""

    def __init__(
        self,
        grants: dict[tuple[str, str], Iterable[str]] | None = None,
    ) -> None:
        self._grants: dict[tuple[str, str], frozenset[str]] = {
            key: frozenset(scopes) for key, scopes in (grants or {}).items()
        }

    def grant(self, principal: str, tenant: str, *scopes: str) -> None:
        key = (principal, tenant)
        self._grants[key] = self._grants.get(key, frozenset()) | frozenset(scopes)

    def has_scopes(self, principal: str, tenant: str, required: Iterable[str]) -> bool:
        held = self._grants.get((principal, tenant), frozenset())
        return frozenset(required) <= held
