"""
Roles and what each one may do.

Every role (legacy values included) resolves to one canonical role, and every
canonical role has exactly one ``RoleCapabilities`` record. Services ask the
capability record instead of comparing role strings.
"""
from dataclasses import dataclass
from typing import Optional

from creditflow.db.models.user import UserRole


@dataclass(frozen=True)
class RoleCapabilities:
    can_approve: bool
    can_initiate: bool
    can_process_payouts: bool
    # Admin/HOD: policy requests they file start at pending_signature and
    # they skip the initiator-link check
    is_manager: bool
    can_administer: bool = False


_CANONICAL_ROLES: dict[UserRole, UserRole] = {
    UserRole.ADMIN: UserRole.ADMIN,
    UserRole.HOD: UserRole.HOD,
    UserRole.EMPLOYEE: UserRole.EMPLOYEE,
    UserRole.ACCOUNT: UserRole.ACCOUNT,
    UserRole.USER: UserRole.EMPLOYEE,
    UserRole.INITIATOR: UserRole.EMPLOYEE,
    UserRole.ACCOUNTS_MANAGER: UserRole.ACCOUNT,
}

ROLE_CAPABILITIES: dict[UserRole, RoleCapabilities] = {
    UserRole.ADMIN: RoleCapabilities(
        can_approve=True, can_initiate=True, can_process_payouts=True,
        is_manager=True, can_administer=True,
    ),
    UserRole.HOD: RoleCapabilities(
        can_approve=True, can_initiate=True, can_process_payouts=False, is_manager=True,
    ),
    UserRole.EMPLOYEE: RoleCapabilities(
        can_approve=False, can_initiate=True, can_process_payouts=False, is_manager=False,
    ),
    UserRole.ACCOUNT: RoleCapabilities(
        can_approve=False, can_initiate=False, can_process_payouts=True, is_manager=False,
    ),
}


def _check_exhaustive() -> None:
    unmapped = set(UserRole) - set(_CANONICAL_ROLES)
    if unmapped:
        raise RuntimeError(f"Roles without a canonical mapping: {sorted(r.value for r in unmapped)}")
    missing = set(_CANONICAL_ROLES.values()) - set(ROLE_CAPABILITIES)
    if missing:
        raise RuntimeError(f"Roles without capabilities: {sorted(r.value for r in missing)}")


_check_exhaustive()


def parse_role(value: "UserRole | str") -> UserRole:
    """Accept enum members or raw strings such as 'accounts_manager'"""
    if isinstance(value, UserRole):
        return value
    return UserRole(str(value).strip().lower())


def canonical_role(role: "UserRole | str") -> UserRole:
    return _CANONICAL_ROLES[parse_role(role)]


def capabilities_for(role: "UserRole | str") -> RoleCapabilities:
    return ROLE_CAPABILITIES[canonical_role(role)]


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as supplied by the identity provider"""

    user_id: int
    role: UserRole
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def canonical_role(self) -> UserRole:
        return canonical_role(self.role)

    @property
    def capabilities(self) -> RoleCapabilities:
        return capabilities_for(self.role)

    @property
    def display_name(self) -> str:
        return self.name or self.email or f"user {self.user_id}"
