"""Auth Command Inputs - pydantic models behind validate() for the auth commands.

Invariants:
    - Emails are trimmed and lowercased before any rule runs; max 254 chars
    - Passwords: 8-128 chars with upper, lower, digit and special character
    - Names (optional): 2-100 chars after trimming
    - Cross-field rules (confirmation match, new != current) live in model validators
"""

import re
from typing import Annotated

from pydantic import (
    AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field,
    field_validator, model_validator,
)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain an uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain a lowercase letter"),
    (re.compile(r"[0-9]"), "Password must contain a number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain a special character"),
)


def normalize_email(value: object) -> object:
    return value.strip().lower() if isinstance(value, str) else value


def check_email(value: str) -> str:
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


def check_password_strength(value: str) -> str:
    for pattern, message in _PASSWORD_RULES:
        if not pattern.search(value):
            raise ValueError(message)
    return value


Email = Annotated[
    str, BeforeValidator(normalize_email), Field(max_length=254),
    AfterValidator(check_email),
]
StrongPassword = Annotated[
    str, Field(min_length=8, max_length=128),
    AfterValidator(check_password_strength),
]


class RegisterUserInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Email
    password: StrongPassword
    name: str | None = Field(default=None, min_length=2, max_length=100)
    confirm_password: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterUserInput":
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self


class ChangePasswordInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(min_length=1)
    current_password: str = Field(min_length=1, max_length=128)
    new_password: StrongPassword
    confirm_password: str | None = None

    @model_validator(mode="after")
    def passwords_consistent(self) -> "ChangePasswordInput":
        if self.new_password == self.current_password:
            raise ValueError("New password must differ from the current password")
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("Passwords don't match")
        return self


class LoginUserInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: Email
    password: str = Field(min_length=1, max_length=128)
