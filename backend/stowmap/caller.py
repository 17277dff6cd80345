from dataclasses import dataclass

from .errors import Forbidden
from .models import OrgRole


# Minimum roles per concern.
VIEW_ROLE = OrgRole.member
EDIT_ROLE = OrgRole.general_officers
ELEVATED_ROLE = OrgRole.executive_officers


@dataclass(frozen=True)
class CallerContext:
    user_id: int
    org_id: int
    role: OrgRole


def role_meets(candidate: OrgRole, minimum: OrgRole) -> bool:
    return candidate.rank >= minimum.rank


def require_min_role(caller: CallerContext, minimum: OrgRole) -> CallerContext:
    if not role_meets(caller.role, minimum):
        raise Forbidden(f"Requires {minimum.value} role or higher")
    return caller
