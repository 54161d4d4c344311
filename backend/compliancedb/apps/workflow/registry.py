from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

# Actor kinds. "admin" is the platform operator; "manager" and "client"
# are the two sides of a manager/client relationship.
ADMIN = "admin"
MANAGER = "manager"
CLIENT = "client"

CLIENT_ENTRY = "client_management.entry"

# Statuses are plain strings here; client_management.models.ClientStatus
# carries the same values.
PENDING = "PENDING"
APPROVED = "APPROVED"
LEAVE_REQUESTED = "LEAVE_REQUESTED"
REMOVE_REQUESTED = "REMOVE_REQUESTED"
REVOKED = "REVOKED"

LIVE_STATES = frozenset({PENDING, APPROVED, LEAVE_REQUESTED, REMOVE_REQUESTED})


@dataclass(frozen=True)
class Transition:
    action: str
    actors: FrozenSet[str]
    # None stands for "no entry yet".
    from_states: FrozenSet[Optional[str]]
    to_state: str
    admits: bool = False
    stamps_approval: bool = False

    @property
    def releases(self) -> bool:
        return self.to_state == REVOKED


def _t(
    action: str,
    actors,
    from_states,
    to_state: str,
    admits: bool = False,
    stamps_approval: bool = False,
) -> Transition:
    return Transition(
        action=action,
        actors=frozenset(actors),
        from_states=frozenset(from_states),
        to_state=to_state,
        admits=admits,
        stamps_approval=stamps_approval,
    )


WORKFLOWS = {
    CLIENT_ENTRY: {
        "actions": {
            t.action: t
            for t in (
                _t("direct_create", {MANAGER}, {None}, APPROVED, admits=True, stamps_approval=True),
                _t("request_join", {CLIENT}, {None, REVOKED}, PENDING, admits=True),
                _t("approve_join", {MANAGER}, {PENDING}, APPROVED, stamps_approval=True),
                _t("reject_join", {MANAGER}, {PENDING}, REVOKED),
                _t("request_leave", {CLIENT}, {APPROVED}, LEAVE_REQUESTED),
                _t("accept_leave", {MANAGER}, {LEAVE_REQUESTED}, REVOKED),
                _t("reject_leave", {MANAGER}, {LEAVE_REQUESTED}, APPROVED),
                _t("request_removal", {MANAGER}, {APPROVED}, REMOVE_REQUESTED),
                _t("accept_removal", {CLIENT}, {REMOVE_REQUESTED}, REVOKED),
                _t("reject_removal", {CLIENT}, {REMOVE_REQUESTED}, APPROVED),
                _t("revoke", {ADMIN, CLIENT}, LIVE_STATES, REVOKED),
            )
        }
    },
}
