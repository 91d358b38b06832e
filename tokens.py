import uuid
import datetime
from dataclasses import dataclass
from typing import Optional

import jwt

from exceptions import TokenInvalid


@dataclass(frozen=True)
class TokenClaims:
    """Claims from a token whose signature, expiry, issuer and audience were checked"""
    sub: str
    sid: str
    role: str
    iat: int
    exp: int
    iss: str
    aud: str
    jti: str


@dataclass(frozen=True)
class UnverifiedClaims:
    """
    Claims read WITHOUT signature verification.
    Only good for locating a session record; never for authorization.
    """
    sub: Optional[str]
    sid: Optional[str]


class TokenService:
    def __init__(self, secret: str, issuer: str, audience: str,
                 algorithm: str = "HS256", ttl: int = 7200):
        if not secret:
            raise ValueError("JWT signing key is required")
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.ttl = ttl

    def issue(self, subject: str, session_id: str, role: str = "user",
              ttl: Optional[int] = None) -> str:
        """
        Signed JWT bound to a server-side session.
        Each token gets a unique jti so re-issuing never reproduces an old token.
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        lifetime = self.ttl if ttl is None else ttl
        payload = {
            "sub": subject,
            "sid": session_id,
            "role": role,
            "iat": now,
            "exp": now + datetime.timedelta(seconds=lifetime),
            "iss": self.issuer,
            "aud": self.audience,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "iss", "aud", "sub", "sid"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenInvalid("Token has expired")
        except jwt.InvalidTokenError:
            raise TokenInvalid()

        return TokenClaims(
            sub=payload["sub"],
            sid=payload["sid"],
            role=payload.get("role", "user"),
            iat=payload["iat"],
            exp=payload["exp"],
            iss=payload["iss"],
            aud=payload["aud"],
            jti=payload.get("jti", ""),
        )

    @staticmethod
    def decode_unverified(token: str) -> Optional[UnverifiedClaims]:
        """Returns None when the token is not even structurally a JWT"""
        if not token:
            return None
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.DecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return UnverifiedClaims(sub=payload.get("sub"), sid=payload.get("sid"))
