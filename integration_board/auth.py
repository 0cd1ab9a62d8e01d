"""
Authentication glue.

Tokens are issued by the external auth provider; this module only verifies
them and resolves the caller's role. The resulting AuthContext is passed
explicitly to the lifecycle manager, so tests can build one by hand.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from integration_board.database import get_db
from integration_board.models.domain import UserRoleAssignment
from integration_board.models.enums import UserRole

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME")
JWT_ISSUER = os.getenv("JWT_ISSUER")
JWT_ALGORITHM = "HS256"

# Provider messages mapped to what the user should read
AUTH_ERROR_MESSAGES = {
    "Invalid login credentials": "E-mail ou senha inválidos",
    "Email not confirmed": "Confirme seu e-mail antes de entrar.",
    "User already registered": "Já existe uma conta com este e-mail.",
}


class AuthError(Exception):
    """Sign-in/sign-up failure with a user-facing message."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


def translate_auth_error(provider_message: str) -> AuthError:
    return AuthError(AUTH_ERROR_MESSAGES.get((provider_message or "").strip(), provider_message))


@dataclass(frozen=True)
class AuthContext:
    """Who is acting, and with which role."""
    user_id: Optional[str]
    email: Optional[str] = None
    role: UserRole = UserRole.VIEWER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def lookup_role(db: Session, user_id: str) -> UserRole:
    """Role for user_id. Missing rows and lookup failures fall back to viewer."""
    try:
        assignment = db.query(UserRoleAssignment).filter(UserRoleAssignment.user_id == user_id).first()
    except SQLAlchemyError:
        logger.warning("Role lookup failed for user %s, assuming viewer", user_id, exc_info=True)
        db.rollback()
        return UserRole.VIEWER
    if assignment is None:
        return UserRole.VIEWER
    return UserRole(assignment.role)


def create_access_token(user_id: str, email: Optional[str] = None) -> str:
    """Issue a token the way the provider does. Used by scripts and tests."""
    payload: Dict[str, Any] = {"sub": user_id}
    if email:
        payload["email"] = email
    if JWT_ISSUER:
        payload["iss"] = JWT_ISSUER
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], issuer=JWT_ISSUER)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


bearer = HTTPBearer(auto_error=False)


def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Dependency resolving the authenticated caller. Any role may read."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return AuthContext(user_id=str(user_id), email=payload.get("email"), role=lookup_role(db, str(user_id)))
