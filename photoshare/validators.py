import re
from dataclasses import dataclass, field
from typing import Dict

from .config import MAX_NAME_LENGTH, MAX_TITLE_LENGTH, MIN_PASSWORD_LENGTH

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


@dataclass
class ValidationResult:
    """Field-level failures. Rendered to the client as-is with a 400."""
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def error(self, name: str, message: str):
        self.errors.setdefault(name, message)

    def to_dict(self):
        return {"ok": self.ok, "errors": self.errors}


def validate_photo(title: str) -> ValidationResult:
    result = ValidationResult()
    title = (title or "").strip()
    if not title:
        result.error("title", "Title is missing")
    elif len(title) > MAX_TITLE_LENGTH:
        result.error("title", f"Title must be at most {MAX_TITLE_LENGTH} characters")
    return result


def validate_password(password: str, result: ValidationResult = None) -> ValidationResult:
    result = result or ValidationResult()
    if not password:
        result.error("password", "Password is missing")
    elif len(password) < MIN_PASSWORD_LENGTH:
        result.error("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return result


def validate_user(users, name: str, email: str, password: str = None, user_id=None) -> ValidationResult:
    """
    Checks signup/profile fields. Name and email availability is looked up in
    `users` (a UserRepository), ignoring `user_id` when editing.
    Pass password=None to skip the password check.
    """
    result = ValidationResult()
    name = (name or "").strip()
    email = (email or "").strip()

    if not name:
        result.error("name", "Name is missing")
    elif len(name) > MAX_NAME_LENGTH:
        result.error("name", f"Name must be at most {MAX_NAME_LENGTH} characters")
    elif name[0] in "@#" or any(c.isspace() for c in name):
        result.error("name", "Name cannot contain spaces or start with @ or #")
    elif not users.is_name_available(name, user_id):
        result.error("name", "Name already taken")

    if not email:
        result.error("email", "Email is missing")
    elif not EMAIL_PATTERN.match(email):
        result.error("email", "Invalid email address")
    elif not users.is_email_available(email, user_id):
        result.error("email", "Email already taken")

    if password is not None:
        validate_password(password, result)
    return result
