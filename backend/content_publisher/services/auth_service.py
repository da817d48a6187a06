"""Password login and bearer tokens for team members.

Tokens carry the user id (``sub``) and the team that was active when the
token was issued (``team``); the active team is still re-read from the user
row on every request.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from passlib.context import CryptContext
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from ..db import models

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(Exception):
    pass


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)

def verify_password(raw: str, hashed: Optional[str]) -> bool:
    return bool(hashed) and pwd_context.verify(raw, hashed)

def create_access_token(user: models.User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    claims: Dict[str, Any] = {"sub": user.id, "team": user.current_team_id, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)

def decode_access_token(token: str) -> str:
    """Return the user id from a bearer token or raise ``InvalidTokenError``."""
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    sub = claims.get("sub")
    if not sub:
        raise InvalidTokenError("token has no subject")
    return sub


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def find_user(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == email).first()

    def authenticate_user(self, email: str, password: str) -> Optional[models.User]:
        user = self.find_user(email)
        if user and verify_password(password, user.hashed_password):
            return user
        return None

    def register_if_absent(self, email: str, password: str) -> models.User:
        """Dev convenience: first login creates the user and a personal team."""
        user = self.find_user(email)
        if user:
            return user
        user = models.User(email=email, hashed_password=hash_password(password))
        self.db.add(user)
        self.db.flush()
        user.current_team_id = self._create_personal_team(user).id
        self.db.commit()
        return user

    def _create_personal_team(self, user: models.User) -> models.Team:
        team = models.Team(name=f"{user.email.split('@')[0]}'s team", owner_id=user.id)
        self.db.add(team)
        self.db.flush()
        return team
