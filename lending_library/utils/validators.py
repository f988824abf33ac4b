import re
from typing import Optional


class UserValidator:
    """Form checks for the registration screen."""

    MIN_LENGTH = 3

    @staticmethod
    def validate_username(username: Optional[str]) -> bool:
        if username is None:
            return False
        return len(username.strip()) >= UserValidator.MIN_LENGTH

    @staticmethod
    def validate_password(password: Optional[str]) -> bool:
        # passwords are not stripped
        if password is None:
            return False
        return len(password) >= UserValidator.MIN_LENGTH


class BookValidator:
    """Checks for the add-book form."""

    @staticmethod
    def _is_non_empty(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def validate_fields(title: Optional[str], author: Optional[str], genre: Optional[str]) -> bool:
        return all(BookValidator._is_non_empty(value) for value in (title, author, genre))

    @staticmethod
    def validate_image_url(url: Optional[str]) -> bool:
        # optional field: blank is fine, otherwise an absolute URL or a site path
        if url is None or not url.strip():
            return True
        return bool(re.match(r"^(https?://|/)\S+$", url.strip()))


class TextValidator:
    """Very basic sanitization of free text before it is stored or displayed."""

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # naive: strip HTML tags only
        cleaned = re.sub(r"<[^>]*>", "", text)
        return cleaned.strip()
