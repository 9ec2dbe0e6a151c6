import re
from typing import Optional

from errors import ValidationError

# Deliberately loose: one "@", no whitespace, a dot in the domain part
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TextValidator:
    """Basic text validations and normalisation for catalog fields."""

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        if text is None:
            return ""
        # collapse runs of whitespace
        return re.sub(r"\s+", " ", text).strip()

    @staticmethod
    def require(text: Optional[str], field: str) -> str:
        """Return the normalised text or raise if it is blank."""
        cleaned = TextValidator.normalize(text)
        if not cleaned:
            raise ValidationError(f"{field} cannot be empty.")
        return cleaned

    @staticmethod
    def optional(text: Optional[str]) -> Optional[str]:
        cleaned = TextValidator.normalize(text)
        return cleaned or None


class EmailValidator:

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return bool(_EMAIL_RE.match(email.strip()))

    @staticmethod
    def validate(email: Optional[str]) -> str:
        if not EmailValidator.is_valid_email(email):
            raise ValidationError(f"Invalid email address: {email!r}.")
        return email.strip()


class YearValidator:
    """Publication years must be positive."""

    @staticmethod
    def is_valid_year(year) -> bool:
        # bool is an int subclass; True is not a year
        return isinstance(year, int) and not isinstance(year, bool) and year > 0

    @staticmethod
    def validate(year) -> int:
        if not YearValidator.is_valid_year(year):
            raise ValidationError(f"Publication year must be a positive integer, got {year!r}.")
        return year
