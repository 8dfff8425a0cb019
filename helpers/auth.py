from fastapi import Depends, Header
from sqlmodel import Session, select
from typing import Optional
from database import get_session
from models.auth import Token, TokenUser, User
from models.helper import as_utc, utcnow
from helpers.errors import AuthenticationError
import hashlib


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def resolve_token(access_token: str, db_session: Session) -> Token:
    """Look up an access token and check it is still usable."""
    if not access_token:
        raise AuthenticationError("No token provided")

    token_statement = select(Token).where(Token.access_token == access_token)
    token = db_session.exec(token_statement).first()

    if not token or token.is_revoked:
        raise AuthenticationError("Invalid token")

    if as_utc(token.expires_at) <= utcnow():
        raise AuthenticationError("Token has expired")

    return token


def resolve_user(token: Token, db_session: Session) -> User:
    """Return the active user a token was issued to."""
    user_statement = (
        select(User)
        .join(TokenUser, TokenUser.user_id == User.id)
        .where(TokenUser.token_id == token.id)
    )
    user = db_session.exec(user_statement).first()

    if not user:
        raise AuthenticationError("Token is valid but user not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_auth_token(
    authorization: Optional[str] = Header(default=None),
    db_session: Session = Depends(get_session)
) -> Token:
    """Extract and validate the bearer token from the Authorization header."""
    if not authorization:
        raise AuthenticationError("No token provided, authorization denied")

    access_token = authorization[7:] if authorization.startswith("Bearer ") else authorization
    return resolve_token(access_token.strip(), db_session)


async def get_current_user(
    token: Token = Depends(get_auth_token),
    db_session: Session = Depends(get_session)
) -> User:
    return resolve_user(token, db_session)

