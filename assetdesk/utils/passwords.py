# assetdesk/utils/passwords.py
from __future__ import annotations

import re
from typing import List

from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import ValidationFailed
from ..schemas import PASSWORD_MIN_LENGTH

# scrypt is werkzeug's default; pinned so stored hashes don't change scheme on upgrade
HASH_METHOD = "scrypt"


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or not plain_password.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain_password, method=HASH_METHOD)


def verify_password(password_hash: str | None, plain_password: str | None) -> bool:
    """False for disabled accounts with no hash as well as for a wrong password."""
    if not password_hash or not plain_password:
        return False
    return check_password_hash(password_hash, plain_password)


# =========================
# Password policy
# =========================
_POLICY = (
    (re.compile(r"[A-Za-z]"), "Include at least one letter."),
    (re.compile(r"\d"), "Include at least one number."),
)


def password_problems(plain_password: str) -> List[str]:
    """Every policy rule the password breaks, in a stable order. Empty means acceptable."""
    candidate = (plain_password or "").strip()
    if not candidate:
        return ["Password cannot be empty."]

    problems = []
    if len(candidate) < PASSWORD_MIN_LENGTH:
        problems.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
    problems.extend(msg for pattern, msg in _POLICY if not pattern.search(candidate))
    return problems


def enforce_password_policy(plain_password: str, field: str = "password") -> None:
    """Raise ValidationFailed keyed on ``field`` when the password breaks the policy."""
    problems = password_problems(plain_password)
    if problems:
        raise ValidationFailed(problems[0], errors={field: problems}, field=field)
