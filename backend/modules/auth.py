"""
Bearer-token identity: issues HS256 JWTs at login and maps incoming
requests to a player or to the anonymous guest.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

GUEST_NAME = "Visitante"

_bearer = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    user_id: Optional[int]
    username: str

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


GUEST = Identity(user_id=None, username=GUEST_NAME)


class TokenService:
    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm

    def issue(self, user_id: int, username: str) -> str:
        return jwt.encode({"id": user_id, "username": username}, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[Identity]:
        """Decode a token; None when it is malformed, forged or missing claims."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.debug("[AUTH] Rejected token: %s", e)
            return None
        user_id = claims.get("id")
        if not isinstance(user_id, int):
            return None
        return Identity(user_id=user_id, username=str(claims.get("username", "")))


def current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Identity:
    """Caller identity; no token or a bad one degrades to the guest."""
    if credentials is None:
        return GUEST
    tokens: TokenService = request.app.state.tokens
    return tokens.verify(credentials.credentials) or GUEST


def require_identity(identity: Identity = Depends(current_identity)) -> Identity:
    if identity.is_guest:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity
