"""
Unit Tests for the Identity Layer

Tests role gating and the Supabase auth/profile flows against a fake client.
"""

import pytest

from nursing_study_tutor.errors import AuthError
from nursing_study_tutor.identity import (
    PROFILE_PENDING_MESSAGE,
    IdentityService,
    User,
    UserRole,
    features_for,
    require_role,
)

PROFILE = {
    "id": "user-1",
    "email": "ada@example.edu",
    "full_name": "Ada Obi",
    "role": "lecturer",
    "school": "College of Nursing",
    "course": "BNSc",
}


class TestRoleGating:

    def test_student_features(self):
        student = User.from_profile({**PROFILE, "role": "student"})
        assert features_for(student) == [
            "dashboard", "material-lab", "chat", "exam-guide", "practice", "games",
        ]

    def test_lecturer_features(self):
        lecturer = User.from_profile(PROFILE)
        assert features_for(lecturer) == ["dashboard", "lecturer-hub", "exam-guide"]

    def test_unknown_role_defaults_to_student(self):
        assert User.from_profile({**PROFILE, "role": "admin"}).role == UserRole.STUDENT

    def test_require_role(self):
        student = User.from_profile({**PROFILE, "role": "student"})
        with pytest.raises(AuthError):
            require_role(student, UserRole.LECTURER)
        require_role(student, UserRole.STUDENT, UserRole.LECTURER)


class TestIdentityService:

    @pytest.fixture
    def service(self, supabase):
        return IdentityService(supabase)

    @pytest.mark.asyncio
    async def test_login_returns_profile_user(self, service, supabase):
        supabase.rows["profiles"] = PROFILE

        user = await service.login("ada@example.edu", "secret")

        assert user.full_name == "Ada Obi"
        assert user.role == UserRole.LECTURER

    @pytest.mark.asyncio
    async def test_login_without_profile_is_pending(self, service, supabase):
        supabase.rows["profiles"] = None

        with pytest.raises(AuthError) as exc_info:
            await service.login("ada@example.edu", "secret")

        assert str(exc_info.value) == PROFILE_PENDING_MESSAGE

    @pytest.mark.asyncio
    async def test_bad_credentials_raise_auth_error(self, service, supabase):
        supabase.auth.error = RuntimeError("Invalid login credentials")

        with pytest.raises(AuthError):
            await service.login("ada@example.edu", "wrong")

    @pytest.mark.asyncio
    async def test_register_sends_profile_metadata(self, service, supabase):
        await service.register("new@example.edu", "pw", "New Student", school="UNN", course="BNSc")

        data = supabase.auth.sign_up_payloads[0]["options"]["data"]
        assert data == {"fullName": "New Student", "role": "student", "school": "UNN", "course": "BNSc"}

    @pytest.mark.asyncio
    async def test_active_user_none_without_session(self, service, supabase):
        supabase.auth.user_id = None
        assert await service.get_active_user() is None

    @pytest.mark.asyncio
    async def test_token_lookup(self, service, supabase):
        supabase.rows["profiles"] = PROFILE
        user = await service.get_user_for_token("token-abc")
        assert user.id == "user-1"

    @pytest.mark.asyncio
    async def test_invalid_token(self, service, supabase):
        supabase.auth.error = RuntimeError("jwt expired")
        with pytest.raises(AuthError):
            await service.get_user_for_token("token-abc")

    @pytest.mark.asyncio
    async def test_logout(self, service, supabase):
        await service.logout()
        assert supabase.auth.signed_out
