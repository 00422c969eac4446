from __future__ import annotations

from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

# Verified against when the username is unknown so both failure paths cost one hash check.
_UNKNOWN_USER_HASH = password_hash.hash('rep-stock-unknown-user')


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str | None) -> bool:
    if not hashed_password:
        password_hash.verify(raw_password, _UNKNOWN_USER_HASH)
        return False
    return password_hash.verify(raw_password, hashed_password)


def verify_and_upgrade(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Return ``(valid, new_hash)``; ``new_hash`` is set when the stored hash uses outdated parameters."""
    return password_hash.verify_and_update(raw_password, hashed_password)
