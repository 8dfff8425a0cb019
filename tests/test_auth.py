"""
Feature: Account registration and bearer tokens
  As a team member
  I want to register, log in and log out
  So that the REST API and the socket know who I am

Scenario: Register and log in
  When a user registers
  Then they receive an access token
  And can log in again with username or email

Scenario: Rejected credentials and tokens
  Then wrong passwords, revoked tokens and expired tokens are refused with 401

Scenario: Refresh a token
  When a user exchanges their refresh token
  Then they receive a new token pair and the old pair stops working

Scenario: Profile and password changes
  Then a user can update their profile and change their password
"""

import pytest
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser
from apis.auth import register, login, refresh, me, update_profile, change_password, logout
from apis.schemas.auth import (
    RegisterRequest, LoginRequest, RefreshTokenRequest, UpdateProfileRequest, ChangePasswordRequest
)
from helpers.auth import get_auth_token, get_current_user, resolve_token, hash_password
from helpers.errors import AuthenticationError, ValidationError
from datetime import datetime, timezone, timedelta


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


async def authenticate(session, access_token):
    token = await get_auth_token(authorization=f"Bearer {access_token}", db_session=session)
    return await get_current_user(token=token, db_session=session)


@pytest.mark.asyncio
async def test_register_and_login(session):
    # When a user registers
    result = await register(
        RegisterRequest(username="alice", email="Alice@Example.com", password="secret1", fullName="Alice A"),
        db_session=session
    )

    # Then they get a token tied to their account
    assert result.access_token.startswith("tkn_")
    assert result.user.username == "alice"
    assert result.user.email == "alice@example.com"
    assert result.user.full_name == "Alice A"
    user = await authenticate(session, result.access_token)
    assert user.id == result.user.id

    # And can log in with username or email
    by_name = await login(LoginRequest(identifier="alice", password="secret1"), db_session=session)
    by_email = await login(LoginRequest(identifier="ALICE@example.com", password="secret1"), db_session=session)
    assert by_name.user.id == by_email.user.id == user.id
    assert by_name.access_token != result.access_token
    assert by_name.user.last_login is not None


@pytest.mark.asyncio
async def test_register_duplicate(session):
    await register(RegisterRequest(username="alice", email="alice@example.com", password="secret1"), db_session=session)

    with pytest.raises(ValidationError) as exc_info:
        await register(
            RegisterRequest(username="alice", email="other@example.com", password="secret1"),
            db_session=session
        )
    assert "Username" in exc_info.value.message

    with pytest.raises(ValidationError):
        await register(
            RegisterRequest(username="bob", email="alice@example.com", password="secret1"),
            db_session=session
        )


@pytest.mark.asyncio
async def test_login_wrong_password(session):
    await register(RegisterRequest(username="alice", email="alice@example.com", password="secret1"), db_session=session)

    with pytest.raises(AuthenticationError) as exc_info:
        await login(LoginRequest(identifier="alice", password="wrong"), db_session=session)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_token(session):
    result = await register(
        RegisterRequest(username="alice", email="alice@example.com", password="secret1"),
        db_session=session
    )
    token = await get_auth_token(authorization=f"Bearer {result.access_token}", db_session=session)

    response = await logout(token=token, db_session=session)

    assert response.success is True
    with pytest.raises(AuthenticationError) as exc_info:
        await authenticate(session, result.access_token)
    assert exc_info.value.message == "Invalid token"


def test_expired_and_missing_tokens(session):
    user = User(username="alice", email="alice@example.com", hashed_password=hash_password("secret1"))
    token = Token(access_token="expired_token", expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    session.add_all([user, token])
    session.commit()
    session.add(TokenUser(token_id=token.id, user_id=user.id))
    session.commit()

    with pytest.raises(AuthenticationError) as exc_info:
        resolve_token("expired_token", session)
    assert exc_info.value.message == "Token has expired"

    with pytest.raises(AuthenticationError):
        resolve_token("", session)
    with pytest.raises(AuthenticationError):
        resolve_token("unknown_token", session)


@pytest.mark.asyncio
async def test_deactivated_user_is_refused(session):
    result = await register(
        RegisterRequest(username="alice", email="alice@example.com", password="secret1"),
        db_session=session
    )
    user = session.get(User, result.user.id)
    user.is_active = False
    session.add(user)
    session.commit()

    with pytest.raises(AuthenticationError) as exc_info:
        await authenticate(session, result.access_token)
    assert exc_info.value.message == "User account is deactivated"


@pytest.mark.asyncio
async def test_missing_authorization_header(session):
    with pytest.raises(AuthenticationError):
        await get_auth_token(authorization=None, db_session=session)


@pytest.mark.asyncio
async def test_profile_and_password(session):
    result = await register(
        RegisterRequest(username="alice", email="alice@example.com", password="secret1"),
        db_session=session
    )
    await register(RegisterRequest(username="bob", email="bob@example.com", password="secret1"), db_session=session)
    user = await authenticate(session, result.access_token)

    # Profile update
    updated = await update_profile(
        UpdateProfileRequest(fullName="Alice Liddell", avatar="/avatars/alice.png"),
        user=user,
        db_session=session
    )
    assert updated.full_name == "Alice Liddell"
    assert updated.avatar == "/avatars/alice.png"

    with pytest.raises(ValidationError):
        await update_profile(UpdateProfileRequest(username="bob"), user=user, db_session=session)

    # Password change
    with pytest.raises(ValidationError):
        await change_password(
            ChangePasswordRequest(currentPassword="wrong", newPassword="secret2"),
            user=user,
            db_session=session
        )
    await change_password(
        ChangePasswordRequest(currentPassword="secret1", newPassword="secret2"),
        user=user,
        db_session=session
    )
    relogin = await login(LoginRequest(identifier="alice", password="secret2"), db_session=session)
    assert relogin.user.id == user.id

    profile = await me(user=user)
    assert profile.username == "alice"


@pytest.mark.asyncio
async def test_refresh_token_rotates_pair(session):
    result = await register(
        RegisterRequest(username="alice", email="alice@example.com", password="secret1"),
        db_session=session
    )

    refreshed = await refresh(RefreshTokenRequest(refreshToken=result.refresh_token), db_session=session)

    assert refreshed.access_token != result.access_token
    assert refreshed.refresh_token.startswith("ref_")
    assert refreshed.user.id == result.user.id
    user = await authenticate(session, refreshed.access_token)
    assert user.username == "alice"

    # The old pair is revoked
    with pytest.raises(AuthenticationError):
        await authenticate(session, result.access_token)
    with pytest.raises(AuthenticationError) as exc_info:
        await refresh(RefreshTokenRequest(refreshToken=result.refresh_token), db_session=session)
    assert exc_info.value.message == "Invalid refresh token"

    with pytest.raises(AuthenticationError):
        await refresh(RefreshTokenRequest(refreshToken="ref_unknown"), db_session=session)
