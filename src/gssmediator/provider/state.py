"""
GSSMediator Install State Machine

Tracks provider installation through its states:

    NOT_ATTEMPTED --BeginInstall--> INSTALLING
    INSTALLING --InstalledBySelf--> INSTALLED_SELF
    INSTALLING --FoundExternalInstall--> INSTALLED_EXTERNALLY
    INSTALLING --InstallFailed--> FAILED

FAILED is terminal. The machine itself is not synchronized; the
installer only drives it while holding the installation lock.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import attrs

from gssmediator.core.state_machine import StateMachineBase, TransitionEntry
from gssmediator.core.types import InstallState


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True)
class BeginInstall:
    provider_name: str


@attrs.define(frozen=True)
class InstalledBySelf:
    login_ticket_cache: Optional[str] = None


@attrs.define(frozen=True)
class FoundExternalInstall:
    login_ticket_cache: Optional[str] = None


@attrs.define(frozen=True)
class InstallFailed:
    cause: BaseException


# =============================================================================
# CONTEXT
# =============================================================================


@attrs.define
class InstallContext:
    """Data carried alongside the install state."""

    provider_name: str = ""
    login_ticket_cache: Optional[str] = None
    cause: Optional[BaseException] = None


def failure_has_cause(state: InstallState, ctx: InstallContext) -> bool:
    """FAILED always records what went wrong."""
    return state is not InstallState.FAILED or ctx.cause is not None


# =============================================================================
# STATE MACHINE
# =============================================================================


@attrs.define
class InstallStateMachine(StateMachineBase[InstallState, Any, InstallContext]):
    """State machine for one provider installation."""

    _state: InstallState = attrs.field(default=InstallState.NOT_ATTEMPTED, alias="_state")
    _context: InstallContext = attrs.field(factory=InstallContext, alias="_context")

    def __attrs_post_init__(self) -> None:
        self.add_invariant("failure_has_cause", failure_has_cause)

    def initial_state(self) -> InstallState:
        return InstallState.NOT_ATTEMPTED

    def transition_table(self) -> Dict[Tuple[InstallState, type], TransitionEntry]:
        return {
            (InstallState.NOT_ATTEMPTED, BeginInstall): (
                InstallState.INSTALLING,
                self._handle_begin,
            ),
            (InstallState.INSTALLING, InstalledBySelf): (
                InstallState.INSTALLED_SELF,
                self._handle_installed,
            ),
            (InstallState.INSTALLING, FoundExternalInstall): (
                InstallState.INSTALLED_EXTERNALLY,
                self._handle_installed,
            ),
            (InstallState.INSTALLING, InstallFailed): (
                InstallState.FAILED,
                self._handle_failed,
            ),
        }

    @property
    def cause(self) -> Optional[BaseException]:
        return self.context.cause

    @staticmethod
    def _handle_begin(event: BeginInstall, ctx: InstallContext) -> InstallContext:
        return attrs.evolve(ctx, provider_name=event.provider_name)

    @staticmethod
    def _handle_installed(event: Any, ctx: InstallContext) -> InstallContext:
        return attrs.evolve(ctx, login_ticket_cache=event.login_ticket_cache)

    @staticmethod
    def _handle_failed(event: InstallFailed, ctx: InstallContext) -> InstallContext:
        return attrs.evolve(ctx, cause=event.cause)
