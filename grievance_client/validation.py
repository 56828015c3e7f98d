"""Client-side form checks. They run before any request is made."""

from typing import Optional

from Models.complaints_models import CATEGORIES
from Schemas.auth_schemas import MIN_PASSWORD_LEN
from Schemas.complaints_schema import MIN_DESCRIPTION_LEN


class ValidationError(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def validate_complaint(category: Optional[str], description: Optional[str],
                       attachment_url: Optional[str] = None) -> dict:
    if not category:
        raise ValidationError("category", "Please select a category")
    if category not in CATEGORIES:
        raise ValidationError("category", f"Unknown category: {category}")
    if description is None or len(description) < MIN_DESCRIPTION_LEN:
        raise ValidationError(
            "description", f"Description must be at least {MIN_DESCRIPTION_LEN} characters"
        )
    payload = {"category": category, "description": description}
    if attachment_url and attachment_url.strip():
        payload["attachment_url"] = attachment_url.strip()
    return payload


def validate_registration(email: str, password: str, name: str, branch: Optional[str],
                          confirm_password: Optional[str] = None) -> dict:
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("confirm_password", "Passwords do not match")
    if len(password or "") < MIN_PASSWORD_LEN:
        raise ValidationError("password", f"Password must be at least {MIN_PASSWORD_LEN} characters")
    if not branch or not branch.strip():
        raise ValidationError("branch", "Please select your branch")
    if not name or not name.strip():
        raise ValidationError("name", "Please enter your name")
    if not email or not email.strip():
        raise ValidationError("email", "Please enter your email")
    return {
        "email": email.strip().lower(),
        "password": password,
        "name": name.strip(),
        "branch": branch.strip(),
    }
