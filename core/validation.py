"""
core/validation.py -- Accumulating request validator.

Each service operation checks all of its inputs before touching the database
and reports every problem at once, one message per line:

    v = Validator()
    v.require(email, "Email is not set.")
    v.check(password == confirm, "Passwords do not match.")
    v.raise_if_invalid()
"""

from __future__ import annotations

from typing import Any

from core.errors import BadRequestError


class Validator:
    def __init__(self) -> None:
        self.errors: list[str] = []

    def require(self, value: Any, message: str) -> bool:
        """Fail when value is None, blank, or the default integer 0."""
        if value is None or (isinstance(value, str) and not value.strip()) or value == 0:
            self.errors.append(message)
            return False
        return True

    def check(self, condition: bool, message: str) -> bool:
        if not condition:
            self.errors.append(message)
        return condition

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise BadRequestError("\n".join(self.errors))
