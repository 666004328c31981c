"""
access.py - Router authorization and pause state

The pool never evaluates authorization logic itself; it asks two predicates:

- RouterAccess: is_authorized_router(caller) -> bool
- PauseState: is_active() -> bool

PoolAdmin is a minimal in-process implementation of both, with owner-gated
set_router / pause / unpause.
"""

from typing import Optional, Protocol, runtime_checkable

from .core import InvalidArgument, Unauthorized


@runtime_checkable
class RouterAccess(Protocol):
    """Predicate telling whether a caller may run router-only operations."""

    def is_authorized_router(self, caller: str) -> bool:
        ...


@runtime_checkable
class PauseState(Protocol):
    """Predicate telling whether the pool accepts new activity."""

    def is_active(self) -> bool:
        ...


class PoolAdmin:
    """
    Owner-controlled router address and pause switch.

    Only the owner may change the router or toggle the pause; anyone else
    gets Unauthorized.
    """

    def __init__(self, owner: str, router: Optional[str] = None, active: bool = True):
        if not owner or not owner.strip():
            raise InvalidArgument("owner cannot be empty")
        self.owner = owner
        self.router = router
        self._active = active

    def is_authorized_router(self, caller: str) -> bool:
        return self.router is not None and caller == self.router

    def is_active(self) -> bool:
        return self._active

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the owner")

    def set_router(self, caller: str, router: str) -> None:
        self._require_owner(caller)
        if not router or not router.strip():
            raise InvalidArgument("router cannot be empty")
        self.router = router

    def pause(self, caller: str) -> None:
        self._require_owner(caller)
        self._active = False

    def unpause(self, caller: str) -> None:
        self._require_owner(caller)
        self._active = True

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._require_owner(caller)
        if not new_owner or not new_owner.strip():
            raise InvalidArgument("new_owner cannot be empty")
        self.owner = new_owner

    def __repr__(self):
        state = "active" if self._active else "paused"
        return f"PoolAdmin(owner={self.owner}, router={self.router}, {state})"
