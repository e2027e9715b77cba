from __future__ import annotations

"""
Role-based access control for the treasury.

All capability checks go through one table, `CAPABILITIES`, mapping each
`Operation` to the roles allowed to invoke it. The aggregate calls
`AccessControl.require(caller, operation)` uniformly before dispatch; no
operation carries its own inline role logic. ADMIN implicitly holds every
capability.

Read-only queries are not gated.
"""


from enum import Enum
from threading import RLock
from typing import Dict, FrozenSet, Iterable, List, Mapping, Set

from .errors import AuthorizationError, StateError, ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    ALLOCATION_MANAGER = "allocation_manager"
    DEPOSITOR = "depositor"
    PROPOSER = "proposer"
    APPROVER = "approver"
    EXECUTOR = "executor"
    PROGRAM_MANAGER = "program_manager"
    EXTERNAL_FUNDER = "external_funder"
    GOVERNANCE = "governance"
    EMERGENCY = "emergency"


class Operation(str, Enum):
    MANAGE_ROLES = "manage_roles"
    UPDATE_ALLOCATION = "update_allocation"
    DEPOSIT = "deposit"
    RESERVE = "reserve"
    REBALANCE = "rebalance"
    PROPOSE = "propose"
    GOVERNANCE_PROPOSE = "governance_propose"
    APPROVE = "approve"
    CANCEL = "cancel"
    EXECUTE = "execute"
    CONFIGURE_PROGRAM = "configure_program"
    DISTRIBUTE_PROGRAM = "distribute_program"
    CONFIGURE_FUNDING = "configure_funding"
    FUND_EXTERNAL = "fund_external"
    PAUSE = "pause"
    EMERGENCY_WITHDRAW = "emergency_withdraw"
    EMERGENCY_RECOVERY = "emergency_recovery"


def _roles(*rs: Role) -> FrozenSet[Role]:
    return frozenset(rs)


CAPABILITIES: Mapping[Operation, FrozenSet[Role]] = {
    Operation.MANAGE_ROLES: _roles(),
    Operation.UPDATE_ALLOCATION: _roles(Role.ALLOCATION_MANAGER),
    Operation.DEPOSIT: _roles(Role.DEPOSITOR),
    Operation.RESERVE: _roles(Role.ALLOCATION_MANAGER),
    Operation.REBALANCE: _roles(Role.ALLOCATION_MANAGER),
    Operation.PROPOSE: _roles(Role.PROPOSER),
    Operation.GOVERNANCE_PROPOSE: _roles(Role.GOVERNANCE),
    Operation.APPROVE: _roles(Role.APPROVER),
    Operation.CANCEL: _roles(Role.PROPOSER, Role.GOVERNANCE),
    Operation.EXECUTE: _roles(Role.EXECUTOR, Role.PROPOSER, Role.APPROVER),
    Operation.CONFIGURE_PROGRAM: _roles(Role.PROGRAM_MANAGER),
    Operation.DISTRIBUTE_PROGRAM: _roles(Role.PROGRAM_MANAGER),
    Operation.CONFIGURE_FUNDING: _roles(Role.EXTERNAL_FUNDER),
    Operation.FUND_EXTERNAL: _roles(Role.EXTERNAL_FUNDER),
    Operation.PAUSE: _roles(Role.EMERGENCY),
    Operation.EMERGENCY_WITHDRAW: _roles(Role.EMERGENCY),
    Operation.EMERGENCY_RECOVERY: _roles(Role.EMERGENCY),
}


class AccessControl:
    """
    Holds role membership. Storage-agnostic: `dump()` / `load()` round-trip a
    JSON-friendly mapping of role -> sorted member list.
    """

    def __init__(self, admins: Iterable[str] = ()) -> None:
        self._members: Dict[Role, Set[str]] = {r: set() for r in Role}
        self._lock = RLock()
        for a in admins:
            self._members[Role.ADMIN].add(a)

    # --- queries ---

    def has_role(self, who: str, role: Role) -> bool:
        with self._lock:
            return who in self._members[role]

    def members(self, role: Role) -> List[str]:
        with self._lock:
            return sorted(self._members[role])

    def roles_of(self, who: str) -> List[Role]:
        with self._lock:
            return [r for r in Role if who in self._members[r]]

    def can(self, who: str, op: Operation) -> bool:
        with self._lock:
            if who in self._members[Role.ADMIN]:
                return True
            return any(who in self._members[r] for r in CAPABILITIES[op])

    def holders(self, op: Operation) -> List[str]:
        """Everyone currently allowed to perform `op`, admins included."""
        with self._lock:
            who = set(self._members[Role.ADMIN])
            for r in CAPABILITIES[op]:
                who |= self._members[r]
            return sorted(who)

    def require(self, who: str, op: Operation) -> None:
        if not self.can(who, op):
            required = {Role.ADMIN.value} | {r.value for r in CAPABILITIES[op]}
            raise AuthorizationError(caller=who, operation=op.value, required=required)

    # --- mutations ---

    def grant(self, role: Role, who: str) -> bool:
        """Add `who` to `role`. Returns False if it already held the role."""
        if not who:
            raise ValidationError("role member must be a non-empty id")
        with self._lock:
            if who in self._members[role]:
                return False
            self._members[role].add(who)
            return True

    def revoke(self, role: Role, who: str) -> bool:
        """Remove `who` from `role`. The last ADMIN cannot be removed."""
        with self._lock:
            if who not in self._members[role]:
                return False
            if role is Role.ADMIN and len(self._members[Role.ADMIN]) == 1:
                raise StateError("cannot revoke the last admin", details={"who": who})
            self._members[role].discard(who)
            return True

    # --- persistence ---

    def dump(self) -> Dict[str, List[str]]:
        with self._lock:
            return {r.value: sorted(m) for r, m in self._members.items()}

    @classmethod
    def load(cls, data: Mapping[str, Iterable[str]]) -> "AccessControl":
        ac = cls()
        for name, members in data.items():
            ac._members[Role(name)] = set(members)
        return ac


__all__ = ["Role", "Operation", "CAPABILITIES", "AccessControl"]
