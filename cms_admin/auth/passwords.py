"""bcrypt password hashing."""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger(__name__)

MIN_ROUNDS = 4
# bcrypt only reads this many bytes of input.
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


class PasswordHasher:
    """Hash and verify passwords with a per-password bcrypt salt."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = max(rounds, MIN_ROUNDS)

    def hash(self, password: str) -> str:
        if password_too_long(password):
            raise ValueError(
                f"password must be at most {MAX_PASSWORD_BYTES} bytes"
            )
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` when ``password`` matches ``hashed``.

        Over-long passwords and malformed hashes are treated as a mismatch.
        """

        if password_too_long(password):
            logger.info("password longer than %s bytes", MAX_PASSWORD_BYTES)
            return False
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"), hashed.encode("utf-8")
            )
        except ValueError:
            logger.warning("password hash could not be parsed")
            return False


__all__ = ["MAX_PASSWORD_BYTES", "PasswordHasher", "password_too_long"]
