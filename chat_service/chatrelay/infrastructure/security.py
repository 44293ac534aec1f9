# chatrelay/infrastructure/security.py
import datetime
import secrets
from typing import Optional

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from passlib.context import CryptContext

from chatrelay.config import AppConfig


class SecurityService:
    def __init__(self, config: AppConfig):
        self.config = config
        self.pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return self.pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def create_access_token(
        self, username: str, expires_delta: Optional[datetime.timedelta] = None
    ) -> tuple[str, datetime.datetime]:
        expire = datetime.datetime.now(datetime.timezone.utc) + (
            expires_delta
            or datetime.timedelta(minutes=self.config.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        # nonce keeps two logins within the same second from colliding on the unique column
        claims = {"sub": username, "nonce": secrets.token_hex(8), "exp": expire}
        return jwt.encode(claims, self.config.SECRET_KEY, algorithm=self.config.ALGORITHM), expire

    def create_refresh_token(self, username: str) -> tuple[str, datetime.datetime]:
        expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
            days=self.config.REFRESH_TOKEN_EXPIRE_DAYS
        )
        claims = {"sub": username, "nonce": secrets.token_hex(8), "exp": expire}
        return (
            jwt.encode(claims, self.config.REFRESH_SECRET_KEY, algorithm=self.config.ALGORITHM),
            expire,
        )

    def decode_access_token(self, token: str) -> Optional[str]:
        return self._subject(token, self.config.SECRET_KEY)

    def decode_refresh_token(self, token: str) -> Optional[str]:
        return self._subject(token, self.config.REFRESH_SECRET_KEY)

    def _subject(self, token: str, key: str) -> Optional[str]:
        try:
            payload = jwt.decode(token, key, algorithms=[self.config.ALGORITHM])
        except (ExpiredSignatureError, InvalidTokenError):
            return None
        return payload.get("sub")
