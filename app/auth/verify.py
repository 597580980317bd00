"""
verify.py
---------
Purpose:
    Bearer JWT verification against the identity provider's JWKS.

Notes:
    - The verifier is constructed by the app lifespan and stored on
      app.state; routes reach it through `auth_dependency`.
    - The `sub` claim is the actor id used everywhere else (clerk_user_id).
"""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import Settings

ALLOWED_ALGORITHMS = ["RS256", "ES256"]

_security = HTTPBearer()


class TokenVerifier:
    def __init__(self, settings: Settings):
        if not settings.AUTH_JWKS_URL:
            raise RuntimeError("AUTH_JWKS_URL must be configured to verify session tokens")
        self._jwk_client = PyJWKClient(settings.AUTH_JWKS_URL)
        self._issuer = settings.AUTH_ISSUER

    def verify(self, token: str) -> dict:
        try:
            signing_key = self._jwk_client.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=ALLOWED_ALGORITHMS,
                issuer=self._issuer,
                options={"verify_exp": True, "verify_aud": False, "verify_iss": bool(self._issuer)},
            )
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid authentication token: {e}",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e


def auth_dependency(
    request: Request, credentials: HTTPAuthorizationCredentials = Depends(_security)
) -> dict:
    verifier: TokenVerifier | None = getattr(request.app.state, "token_verifier", None)
    if verifier is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Token verification is not configured.",
        )
    return verifier.verify(credentials.credentials)


def current_user_id(claims: dict = Depends(auth_dependency)) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User ID not found in claims",
        )
    return user_id
