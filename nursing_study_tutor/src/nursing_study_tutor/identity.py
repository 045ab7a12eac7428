"""
Identity and Profile Layer

Thin wrapper over Supabase auth plus the `profiles` table. The role stored
on the profile (student or lecturer) decides which features a user sees.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from nursing_study_tutor.errors import AuthError

logger = logging.getLogger(__name__)

PROFILE_PENDING_MESSAGE = (
    "Your profile is being initialized. Please try logging in again in a moment."
)


class UserRole(str, Enum):
    STUDENT = "student"
    LECTURER = "lecturer"


# feature id -> roles allowed to use it
FEATURE_ROLES: Dict[str, List[UserRole]] = {
    "dashboard": [UserRole.STUDENT, UserRole.LECTURER],
    "material-lab": [UserRole.STUDENT],
    "chat": [UserRole.STUDENT],
    "lecturer-hub": [UserRole.LECTURER],
    "exam-guide": [UserRole.STUDENT, UserRole.LECTURER],
    "practice": [UserRole.STUDENT],
    "games": [UserRole.STUDENT],
}


@dataclass(frozen=True)
class User:
    """Read-only profile of the signed-in user."""
    id: str
    email: str
    full_name: str
    role: UserRole
    school: str = ""
    course: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: Dict[str, Any]) -> "User":
        try:
            role = UserRole(profile.get("role") or UserRole.STUDENT.value)
        except ValueError:
            role = UserRole.STUDENT
        return cls(
            id=str(profile["id"]),
            email=profile.get("email") or "",
            full_name=profile.get("full_name") or "",
            role=role,
            school=profile.get("school") or "",
            course=profile.get("course") or "",
            created_at=profile.get("created_at"),
        )


def features_for(user: User) -> List[str]:
    """Feature ids visible to this user, in menu order."""
    return [feature for feature, roles in FEATURE_ROLES.items() if user.role in roles]


def require_role(user: User, *roles: UserRole):
    if user.role not in roles:
        allowed = ", ".join(role.value for role in roles)
        raise AuthError(f"This feature is only available to: {allowed}")


class IdentityService:
    """Registration, login and session restore against Supabase."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    def _fetch_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table('profiles') \
                .select('*') \
                .eq('id', user_id) \
                .single() \
                .execute()
        except Exception as e:
            # .single() raises when the row does not exist yet
            logger.warning(f"⚠️ [Identity] Profile fetch failed for {user_id}: {e}")
            return None
        return result.data or None

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        role: UserRole = UserRole.STUDENT,
        school: str = "",
        course: str = "",
    ) -> bool:
        """Create an auth user; a database trigger provisions the profile row."""
        try:
            self.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": {
                    "data": {
                        "fullName": full_name,
                        "role": UserRole(role).value,
                        "school": school,
                        "course": course,
                    }
                },
            })
        except Exception as e:
            raise AuthError(str(e)) from e
        logger.info(f"✅ [Identity] Registered {email} as {UserRole(role).value}")
        return True

    async def login(self, email: str, password: str) -> User:
        try:
            response = self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            raise AuthError(str(e)) from e
        if not response or not response.user:
            raise AuthError("Invalid login credentials")

        profile = self._fetch_profile(response.user.id)
        if not profile:
            raise AuthError(PROFILE_PENDING_MESSAGE)
        return User.from_profile(profile)

    async def get_active_user(self) -> Optional[User]:
        """Restore the signed-in user, or None if there is no usable session."""
        try:
            session = self.supabase.auth.get_session()
        except Exception as e:
            logger.warning(f"⚠️ [Identity] Session restore failed: {e}")
            return None
        if not session or not session.user:
            return None
        profile = self._fetch_profile(session.user.id)
        return User.from_profile(profile) if profile else None

    async def get_user_for_token(self, token: str) -> User:
        """Resolve a bearer token to a user (backend request auth)."""
        try:
            response = self.supabase.auth.get_user(token)
        except Exception as e:
            raise AuthError("Invalid or expired token") from e
        if not response or not response.user:
            raise AuthError("Invalid or expired token")
        profile = self._fetch_profile(response.user.id)
        if not profile:
            raise AuthError(PROFILE_PENDING_MESSAGE)
        return User.from_profile(profile)

    async def logout(self):
        try:
            self.supabase.auth.sign_out()
        except Exception as e:
            logger.warning(f"⚠️ [Identity] Sign-out failed: {e}")
