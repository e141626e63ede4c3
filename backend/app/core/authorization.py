"""
Role model: who may see a report and who may move it through its lifecycle.

Everything here is a pure function of (profile, report) so the same rules back
the dashboards, the detail endpoints and the repository's mutation checks.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, List, Optional

from app.models.report import AssignedTo
from app.models.user import UserRole
from app.schemas.report import DisasterReport
from app.schemas.user import UserProfile

LOGIN_LOCATION = "/login"
PUBLIC_LANDING = "/"

ROLE_LANDINGS = {
    UserRole.ADMIN: "/admin",
    UserRole.VOLUNTEER: "/volunteer",
    UserRole.NDRF: "/ndrf",
}


def _role_of(profile: Optional[UserProfile]) -> Optional[UserRole]:
    if profile is None:
        return None
    try:
        return UserRole(profile.role)
    except ValueError:
        return None


def landing_for(profile: Optional[UserProfile]) -> str:
    """Dashboard a profile lands on; the public page for anything unrecognized."""
    role = _role_of(profile)
    return ROLE_LANDINGS.get(role, PUBLIC_LANDING)


def can_view(profile: Optional[UserProfile], report: DisasterReport) -> bool:
    role = _role_of(profile)
    if role == UserRole.ADMIN:
        return True
    if role == UserRole.VOLUNTEER:
        return report.assigned_to == AssignedTo.VOLUNTEER and report.assigned_user_id in (None, profile.id)
    if role == UserRole.NDRF:
        # Unit-wide: no narrowing by the specific assignee
        return report.assigned_to == AssignedTo.NDRF
    return False


def filter_visible(profile: Optional[UserProfile], reports: Iterable[DisasterReport]) -> List[DisasterReport]:
    return [report for report in reports if can_view(profile, report)]


def can_assign(profile: Optional[UserProfile]) -> bool:
    return _role_of(profile) == UserRole.ADMIN


def can_set_status(profile: Optional[UserProfile], report: DisasterReport) -> bool:
    """Administrators always; volunteers and responders only on reports they can see."""
    if _role_of(profile) == UserRole.ADMIN:
        return True
    return can_view(profile, report)


def can_annotate(profile: Optional[UserProfile], report: DisasterReport) -> bool:
    """Notes and response images: any signed-in actor with visibility."""
    return can_view(profile, report)


class GuardOutcome(str, enum.Enum):
    ALLOW = "allow"
    WAIT = "wait"
    LOGIN = "login"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardDecision:
    outcome: GuardOutcome
    location: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == GuardOutcome.ALLOW


def route_guard(
    required_roles: Iterable[UserRole],
    authenticated: bool,
    profile: Optional[UserProfile],
    profile_loading: bool = False,
) -> GuardDecision:
    """
    Decide whether a role-gated surface may render.

    - While the profile is still loading the caller should show a neutral
      waiting state.
    - No authenticated principal, or no profile for it, goes to the login page.
    - A known role outside `required_roles` goes to its own dashboard; an
      unrecognized role goes to the public landing page.
    """
    if profile_loading:
        return GuardDecision(GuardOutcome.WAIT)
    if not authenticated or profile is None:
        return GuardDecision(GuardOutcome.LOGIN, LOGIN_LOCATION)

    role = _role_of(profile)
    if role is not None and role in set(required_roles):
        return GuardDecision(GuardOutcome.ALLOW)
    return GuardDecision(GuardOutcome.REDIRECT, landing_for(profile))
