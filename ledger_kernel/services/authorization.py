"""Authority -- injected capability checks for ledger operations.

Callers authenticate users elsewhere and hand the kernel an ``Actor`` plus an
``Authority``.  The orchestrator asks the authority for one
``(resource, action)`` capability before each operation and raises
PermissionDeniedError on refusal.  Super-admins bypass grants.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from ledger_kernel.domain.dtos import Actor
from ledger_kernel.exceptions import PermissionDeniedError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.authorization")

# Capabilities checked by LedgerOrchestrator
ORDERS_CREATE = ("orders", "create")
ORDERS_UPDATE = ("orders", "update")
ORDERS_DISCOUNT = ("orders", "discount")
PAYMENTS_CREATE = ("payments", "create")
PAYMENTS_EDIT = ("payments", "edit")
PAYMENTS_DELETE = ("payments", "delete")
EXPENSES_CREATE = ("expenses", "create")
EXPENSES_DELETE = ("expenses", "delete")
SETTINGS_DELETE = ("settings", "delete")


@runtime_checkable
class Authority(Protocol):
    """Decides whether an actor holds a capability."""

    def is_allowed(self, actor: Actor, resource: str, action: str) -> bool:
        ...


class AllowAllAuthority:
    """Grants everything.  For scripts and single-user deployments."""

    def is_allowed(self, actor: Actor, resource: str, action: str) -> bool:
        return True


class PermissionSetAuthority:
    """Authority backed by an explicit set of ``(resource, action)`` grants.

    Grants may be given as tuples or as ``"resource:action"`` strings.
    """

    def __init__(self, grants: Iterable[tuple[str, str] | str] = ()):
        self._grants: frozenset[tuple[str, str]] = frozenset(
            self._parse(g) for g in grants
        )

    @staticmethod
    def _parse(grant: tuple[str, str] | str) -> tuple[str, str]:
        if isinstance(grant, str):
            resource, sep, action = grant.partition(":")
            if not sep or not resource or not action:
                raise ValueError(f"Grant must look like 'resource:action', got {grant!r}")
            return resource, action
        resource, action = grant
        return resource, action

    @property
    def grants(self) -> frozenset[tuple[str, str]]:
        return self._grants

    def is_allowed(self, actor: Actor, resource: str, action: str) -> bool:
        if actor.is_super_admin:
            return True
        return (resource, action) in self._grants


def require(
    authority: Authority,
    actor: Actor,
    capability: tuple[str, str],
) -> None:
    """Raise PermissionDeniedError unless ``actor`` holds ``capability``."""
    resource, action = capability
    if authority.is_allowed(actor, resource, action):
        return
    logger.warning(
        "permission_denied",
        extra={
            "actor_id": str(actor.id),
            "resource": resource,
            "action": action,
        },
    )
    raise PermissionDeniedError(str(actor.id), resource, action)
