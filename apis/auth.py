from fastapi import APIRouter, Depends
from sqlmodel import Session, select, or_
from database import get_session
from models.auth import User, Token, TokenUser
from .schemas.auth import (
    RegisterRequest, LoginRequest, LoginResponse, RefreshTokenRequest, UpdateProfileRequest,
    ChangePasswordRequest, UserResponse, SuccessResponse
)
from helpers.auth import get_auth_token, get_current_user, hash_password, resolve_user
from helpers.errors import AuthenticationError, ValidationError
from models.helper import id_generator, utcnow
from settings import logger, TOKEN_EXPIRE_HOURS

from datetime import timedelta

router = APIRouter(prefix="/auth", tags=["authentication"])

new_access_token = id_generator('tkn', 32)
new_refresh_token = id_generator('ref', 32)


def issue_token(db_session: Session, user: User) -> LoginResponse:
    """Create a bearer token for `user` and build the login response."""
    access_token = new_access_token()
    refresh_token = new_refresh_token()
    expires_at = utcnow() + timedelta(hours=TOKEN_EXPIRE_HOURS)

    new_token = Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at
    )
    db_session.add(new_token)
    db_session.flush()

    # Link token to user
    db_session.add(TokenUser(token_id=new_token.id, user_id=user.id))
    user.last_login = utcnow()
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        expires_at=expires_at,
        user=UserResponse.model_validate(user)
    )


@router.post("/register")
async def register(
    register_data: RegisterRequest,
    db_session: Session = Depends(get_session)
) -> LoginResponse:
    """Create an account and log it in."""
    username = register_data.username.strip()
    email = register_data.email.strip().lower()

    existing_statement = select(User).where(or_(User.username == username, User.email == email))
    existing = db_session.exec(existing_statement).first()
    if existing:
        field = "Username" if existing.username == username else "Email"
        raise ValidationError(f"{field} is already registered")

    new_user = User(
        username=username,
        email=email,
        hashed_password=hash_password(register_data.password),
        full_name=register_data.full_name.strip()
    )
    db_session.add(new_user)
    db_session.commit()
    db_session.refresh(new_user)

    logger.info("User registered", extra={"user_id": new_user.id})
    return issue_token(db_session, new_user)


@router.post("/login")
async def login(
    login_data: LoginRequest,
    db_session: Session = Depends(get_session)
) -> LoginResponse:
    """Login with username or email."""
    identifier = login_data.identifier.strip()
    user_statement = select(User).where(
        or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active == True  # Only allow login for active users
    )
    user = db_session.exec(user_statement).first()

    # Don't reveal whether the identifier or the password was wrong
    if not user or user.hashed_password != hash_password(login_data.password):
        raise AuthenticationError("Invalid credentials")

    return issue_token(db_session, user)


@router.post("/refresh")
async def refresh(
    refresh_data: RefreshTokenRequest,
    db_session: Session = Depends(get_session)
) -> LoginResponse:
    """Exchange a refresh token for a new token pair. The old pair is revoked."""
    token_statement = select(Token).where(Token.refresh_token == refresh_data.refresh_token.strip())
    token = db_session.exec(token_statement).first()
    if not token or token.is_revoked:
        raise AuthenticationError("Invalid refresh token")

    user = resolve_user(token, db_session)

    token.is_revoked = True
    db_session.add(token)
    logger.info("Token refreshed", extra={"user_id": user.id, "token_id": token.id})
    return issue_token(db_session, user)


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)


@router.put("/profile")
async def update_profile(
    profile_data: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> UserResponse:
    """Update the caller's username, display name or avatar."""
    if profile_data.username is not None and profile_data.username.strip() != user.username:
        username = profile_data.username.strip()
        taken = db_session.exec(select(User).where(User.username == username)).first()
        if taken:
            raise ValidationError("Username is already registered")
        user.username = username
    if profile_data.full_name is not None:
        user.full_name = profile_data.full_name.strip()
    if profile_data.avatar is not None:
        user.avatar = profile_data.avatar

    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return UserResponse.model_validate(user)


@router.put("/password")
async def change_password(
    password_data: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    if user.hashed_password != hash_password(password_data.current_password):
        raise ValidationError("Current password is incorrect")

    user.hashed_password = hash_password(password_data.new_password)
    db_session.add(user)
    db_session.commit()
    return SuccessResponse(message="Password updated successfully")


@router.post("/logout")
async def logout(
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> SuccessResponse:
    """Revoke the token used for this request."""
    token.is_revoked = True
    db_session.add(token)
    db_session.commit()
    return SuccessResponse(message="Logged out successfully")
