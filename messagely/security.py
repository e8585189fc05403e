from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from messagely.errors import UnauthenticatedError


class TokenService:
    """Mints and decodes bearer tokens that carry a username in `sub`."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def create_access_token(self, username: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expire_minutes))
        to_encode = {"sub": username, "exp": expire}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> str:
        """Return the username in a valid token, else raise UnauthenticatedError."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise UnauthenticatedError("Could not validate credentials")
        username = payload.get("sub")
        if not username:
            raise UnauthenticatedError("Could not validate credentials")
        return username
