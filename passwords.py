from __future__ import annotations

from werkzeug.security import check_password_hash, generate_password_hash

from utils import ApiError


def validate_password_policy(password: str, *, min_length: int = 6) -> str:
    pwd = str(password or "")
    if not pwd:
        raise ApiError("VALIDATION_ERROR", "Password is required", errors=[{"field": "password", "message": "Password is required"}])
    if len(pwd) < int(min_length):
        msg = f"Password must be at least {int(min_length)} characters long"
        raise ApiError("VALIDATION_ERROR", msg, errors=[{"field": "password", "message": msg}])
    if len(pwd) > 256:
        raise ApiError("VALIDATION_ERROR", "Password is too long", errors=[{"field": "password", "message": "Password is too long"}])
    return pwd


def hash_password(password: str, *, min_length: int = 6) -> str:
    pwd = validate_password_policy(password, min_length=min_length)
    # Werkzeug 3 defaults to scrypt; pin explicitly for stability.
    return generate_password_hash(pwd, method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return check_password_hash(str(password_hash), str(password or ""))
    except ValueError:
        return False
