"""
Input Validation and Normalisation Utilities.

Every value that reaches a service passes through one of these validators
first, so services can assume well-formed identifiers, trimmed content and a
single representation for tags.

Key Components:
- `InputValidator`: Static validators for identifiers, handles, emails,
  free-text content, tags, timezone offsets and integers.
- `PageRequest`: 1-based pagination parameters with the skip/limit arithmetic
  every listing uses.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union

from core.logging_config import get_logger
from core.exceptions import ValidationError

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100


class InputValidator:
    """Input validation and normalisation"""

    OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")
    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
    USERNAME_PATTERN = re.compile(r"^[a-z0-9_.-]{3,30}$")

    @staticmethod
    def validate_object_id(value: Optional[str], field: str = "id") -> str:
        """Validate a store identifier"""
        if not isinstance(value, str) or not InputValidator.OBJECT_ID_PATTERN.match(
            value.strip().lower()
        ):
            raise ValidationError(f"Invalid {field}", field)
        return value.strip().lower()

    @staticmethod
    def sanitize_string(
        value: Optional[str], field: str = "input", max_length: int = 1000
    ) -> str:
        """Trim a required string and enforce its length"""
        if not isinstance(value, str):
            raise ValidationError(f"{field} is required", field)

        value = value.strip()
        if not value:
            raise ValidationError(f"{field} is required", field)

        if len(value) > max_length:
            raise ValidationError(
                f"{field} must be no more than {max_length} characters", field
            )
        return value

    @staticmethod
    def validate_content(value: Optional[str], field: str = "content") -> str:
        """Comment and post bodies"""
        return InputValidator.sanitize_string(value, field, max_length=5000)

    @staticmethod
    def validate_email(email: Optional[str]) -> str:
        email = InputValidator.sanitize_string(email, "email", max_length=254)

        if not InputValidator.EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format", "email")

        return email.lower()

    @staticmethod
    def normalize_handle(handle: Optional[str]) -> str:
        """Handles arrive URL-encoded with '+' for spaces and in any case"""
        if not isinstance(handle, str):
            raise ValidationError("username is missing", "username")
        handle = handle.replace("+", " ").strip().lower()
        if not handle:
            raise ValidationError("username is missing", "username")
        return handle

    @staticmethod
    def validate_username(username: Optional[str]) -> str:
        username = InputValidator.normalize_handle(username)

        if not InputValidator.USERNAME_PATTERN.match(username):
            raise ValidationError(
                "Username must be 3-30 characters and contain only letters, numbers, dots, hyphens, and underscores",
                "username",
            )
        return username

    @staticmethod
    def normalize_tags(tags: Union[None, str, Iterable[str]]) -> List[str]:
        """
        Accept a list of tags or a comma separated string and return an
        ordered list of unique, non-empty tags.
        """
        if tags is None:
            return []
        if isinstance(tags, str):
            candidates = tags.split(",")
        else:
            candidates = []
            for tag in tags:
                if not isinstance(tag, str):
                    raise ValidationError("Tags must be strings", "tags")
                # Form submissions may repeat the field or send one joined value
                candidates.extend(tag.split(","))

        normalized: List[str] = []
        for tag in candidates:
            tag = tag.strip()
            if tag and tag not in normalized:
                normalized.append(tag)
        return normalized

    @staticmethod
    def validate_integer(
        value: Any, field: str, min_val: Optional[int] = None, max_val: Optional[int] = None
    ) -> int:
        try:
            if isinstance(value, bool):
                raise ValueError("Not an integer")
            if isinstance(value, str):
                value = int(value.strip())
            elif not isinstance(value, int):
                raise ValueError("Not an integer")
        except (ValueError, TypeError):
            raise ValidationError(f"{field} must be an integer", field)

        if min_val is not None and value < min_val:
            raise ValidationError(f"{field} must be at least {min_val}", field)
        if max_val is not None and value > max_val:
            raise ValidationError(f"{field} must be at most {max_val}", field)
        return value

    @staticmethod
    def validate_timezone_offset(value: Any) -> int:
        """
        Minutes as reported by the browser's Date.getTimezoneOffset(), i.e.
        UTC minus local time. UTC+14 is -840 and UTC-12 is 720.
        """
        if value is None or value == "":
            raise ValidationError("User timezone offset is required", "timezoneOffset")
        return InputValidator.validate_integer(value, "timezoneOffset", -840, 840)

    @staticmethod
    def validate_video_type(content_type: Optional[str]) -> str:
        content_type = (content_type or "").lower()
        if content_type != "video/mp4":
            raise ValidationError("Video file must be an mp4 video", "videoFile")
        return content_type

    @staticmethod
    def validate_image_type(
        content_type: Optional[str], field: str, allow_gif: bool = True
    ) -> str:
        content_type = (content_type or "").lower()
        if not content_type.startswith("image/"):
            raise ValidationError(f"{field} must be an image", field)
        if not allow_gif and content_type == "image/gif":
            raise ValidationError(f"{field} cannot be a GIF", field)
        return content_type


@dataclass(frozen=True)
class PageRequest:
    """1-based page number and page size"""

    page: int = 1
    page_size: int = 10

    @classmethod
    def of(cls, page: Any = 1, page_size: Any = 10) -> "PageRequest":
        page = InputValidator.validate_integer(page, "page", min_val=1)
        page_size = InputValidator.validate_integer(page_size, "limit")
        return cls(page=page, page_size=min(max(page_size, 1), MAX_PAGE_SIZE))

    @property
    def limit(self) -> int:
        return self.page_size

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.page_size)
