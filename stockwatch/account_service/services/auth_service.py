# stockwatch/account_service/services/auth_service.py
"""
Registration, login and session-token handling for account-service.

Passwords are stored as bcrypt hashes. Session tokens are HS256 JWTs whose
payload is exactly {id, username}; no expiry claim is issued or enforced.
"""
import os
import logging
from typing import Any, Dict, Tuple

import bcrypt
import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockwatch.account_service.database.models import User

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "supersecretjwtkey")
JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))


class UserAlreadyExistsError(Exception):
    """Raised when registering a username that is already taken."""


class UserNotFoundError(Exception):
    """Raised when logging in with an unknown username."""


class InvalidCredentialsError(Exception):
    """Raised when the password does not match the stored hash."""


class InvalidTokenError(Exception):
    """Raised when a session token cannot be verified."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def issue_token(user_id: int, username: str) -> str:
    return jwt.encode({"id": user_id, "username": username}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verifies the signature and returns {id, username}.
    Raises InvalidTokenError for tampered, foreign or malformed tokens.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], options={"verify_exp": False})
    except jwt.PyJWTError as e:
        raise InvalidTokenError(str(e)) from e
    if not isinstance(payload.get("id"), int) or not isinstance(payload.get("username"), str):
        raise InvalidTokenError("Token payload is missing id or username")
    return {"id": payload["id"], "username": payload["username"]}


def register_user(session: Session, username: str, password: str) -> Dict[str, Any]:
    """
    Creates a user with a hashed password.

    Returns:
        Dict with id and username of the new user

    Raises:
        UserAlreadyExistsError: If the username is taken
    """
    user = User(username=username, password=hash_password(password))
    session.add(user)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        logger.info(f"Registration rejected for existing username '{username}'")
        raise UserAlreadyExistsError(username) from e
    logger.info(f"Registered user id={user.id} username='{username}'")
    return {"id": user.id, "username": user.username}


def login_user(session: Session, username: str, password: str) -> Tuple[str, Dict[str, Any]]:
    """Verifies credentials and returns (token, {id, username})."""
    user = session.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if user is None:
        raise UserNotFoundError(username)
    if not verify_password(password, user.password):
        raise InvalidCredentialsError(username)
    token = issue_token(user.id, user.username)
    return token, {"id": user.id, "username": user.username}
