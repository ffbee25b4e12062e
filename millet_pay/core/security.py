import hmac

from jose import JWTError, jwt

ALGORITHM = "HS256"


def decode_access_token(token: str, secret: str, audience: str | None = None) -> dict | None:
    """Decodes a customer bearer token issued by the identity provider; None when invalid."""
    if not secret:
        return None
    try:
        return jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience or None)
    except JWTError:
        return None


def create_access_token(data: dict, secret: str) -> str:
    """Used by scripts and tests; production tokens come from the identity provider."""
    return jwt.encode(data, secret, algorithm=ALGORITHM)


def constant_time_equals(provided: str | None, expected: str | None) -> bool:
    """Timing-safe comparison that leaks nothing about the expected value."""
    p = (provided or "").encode("utf-8")
    e = (expected or "").encode("utf-8")
    if not e:
        return False
    return hmac.compare_digest(p, e)
