from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Password hashing and verification using Argon2id

_hasher = PasswordHasher()

# Verified against when no user matches, so a miss costs the same as a wrong password.
DUMMY_HASH = _hasher.hash("photoshare-dummy-password")


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(hash_value: str, password: str) -> bool:
    if not hash_value:
        return False
    try:
        return _hasher.verify(hash_value, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False
