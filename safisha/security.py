import time

from jose import jwt, JWTError


def token_claims(token: str | None) -> dict | None:
    """
    Read the claims of a JWT access token without verifying it. The client
    never holds the signing secret, so this is only used to spot tokens that
    are already dead. Opaque (non-JWT) tokens give None.
    """
    if not token:
        return None
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def token_expired(token: str | None, leeway: float = 0) -> bool:
    claims = token_claims(token)
    if not claims:
        return False

    exp = claims.get("exp")
    if exp is None:
        return False
    try:
        return float(exp) + leeway <= time.time()
    except (TypeError, ValueError):
        return False
