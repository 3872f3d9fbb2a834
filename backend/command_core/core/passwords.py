"""Password hashing - salted bcrypt hashes, verification via bcrypt.checkpw.

Invariants:
    - Hashes are standard modular-crypt bcrypt strings ($2b$<rounds>$...)
    - Only the first 72 UTF-8 bytes take part in a bcrypt hash; both hashing and
      verification truncate there so long passwords behave the same way on both sides
    - verify_password never raises for a malformed stored hash; it returns False
"""

import bcrypt

DEFAULT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt(rounds)).decode("ascii")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(_secret(password), encoded.encode("ascii"))
    except (ValueError, TypeError, AttributeError, UnicodeEncodeError):
        return False
