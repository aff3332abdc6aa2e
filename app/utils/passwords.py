"""
Password and phone number utilities.
Validation rules for new passwords, Argon2 hashing via passlib (legacy bcrypt
hashes still verify), Somali phone normalization and reset token helpers.
"""

from datetime import datetime, timedelta
from passlib.context import CryptContext
from app.config import settings
from typing import Optional
import hashlib
import hmac
import re
import secrets
import string


# New hashes use Argon2; bcrypt hashes from older accounts keep verifying and
# are flagged for rehash on the next successful login.
pwd_context = CryptContext(schemes=["argon2", "bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 5

COMMON_PASSWORDS = frozenset({
    "password", "password1", "123456", "12345678", "123456789", "qwerty",
    "abc123", "111111", "123123", "admin", "letmein", "welcome", "monkey",
    "dragon", "master", "login", "princess", "qwerty123", "iloveyou",
    "sunshine", "football", "baseball", "passw0rd", "abcdef", "abcde",
})

SECURE_PASSWORD_SYMBOLS = "!@#$%^&*"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone_number(phone: str) -> str:
    """
    Normalize a Somali phone number to international format.

    Numbers already carrying the 252 country code get a leading "+", bare
    9-digit local numbers are prefixed with +252. Anything else is returned
    unchanged so that validation can reject it.
    """
    if not phone:
        return phone

    digits = _NON_DIGITS.sub("", phone)

    if digits.startswith("252"):
        return f"+{digits}"
    if len(digits) == 9:
        return f"+252{digits}"
    return phone


def validate_phone_number(phone: str) -> bool:
    """Accept 9 local digits or 12 digits starting with the 252 country code."""
    if not phone:
        return False
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 9:
        return True
    return len(digits) == 12 and digits.startswith("252")


def validate_password(
    password: Optional[str],
    phone: Optional[str] = None,
    email: Optional[str] = None
) -> Optional[str]:
    """
    Check a candidate password against the account rules.

    Args:
        password: Candidate password
        phone: Owner's phone number in any format
        email: Owner's email address

    Returns:
        The first failing rule's message, or None if the password is acceptable
    """
    if not password:
        return "Password is required."

    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."

    if password.isdigit():
        return "Password cannot be only numbers."

    if not any(ch.isalnum() for ch in password):
        return "Password must contain at least one letter or number."

    if password.lower() in COMMON_PASSWORDS:
        return "Password is too common. Please choose a more secure password."

    if phone:
        phone_digits = _NON_DIGITS.sub("", normalize_phone_number(phone))
        if len(phone_digits) >= 6 and phone_digits[-6:] in password:
            return "Password cannot contain your phone number."

    if email:
        local_part = email.split("@")[0].lower()
        if len(local_part) >= 4 and local_part in password.lower():
            return "Password cannot contain your email address."

    return None


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against an Argon2 or legacy bcrypt hash.
    Malformed or unknown hashes verify as False instead of raising.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def needs_rehash(hashed_password: str) -> bool:
    """True for hashes produced by a deprecated scheme (bcrypt)."""
    return pwd_context.needs_update(hashed_password)


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_reset_token(token: str, token_hash: Optional[str]) -> bool:
    if not token or not token_hash:
        return False
    return hmac.compare_digest(hash_reset_token(token), token_hash)


def should_update_password(password_changed_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Whether the password is older than the configured maximum age."""
    if password_changed_at is None:
        return False
    now = now or datetime.now(password_changed_at.tzinfo)
    return now - password_changed_at > timedelta(days=settings.password_max_age_days)


def generate_secure_password(length: int = 12) -> str:
    """
    Generate a random password containing at least one lowercase letter,
    uppercase letter, digit and symbol.
    """
    if length < 4:
        raise ValueError("Password length must be at least 4")

    alphabet = string.ascii_letters + string.digits + SECURE_PASSWORD_SYMBOLS
    required = [
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.digits),
        secrets.choice(SECURE_PASSWORD_SYMBOLS),
    ]
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
