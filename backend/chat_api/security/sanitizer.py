"""
Input sanitization for user supplied text.

Rejects:
- Null bytes
- Control characters (newlines/tabs only where text may span lines)
- Values over the field's max length
"""
import re
from typing import Optional


class InputSanitizer:
    """Validates and sanitizes user input."""

    NULL_BYTE_PATTERN = re.compile(r'\x00')
    CONTROL_CHAR_PATTERN = re.compile(r'[\x00-\x08\x0b-\x0c\x0e-\x1f\x7f]')  # Except \t=0x09, \n=0x0a, \r=0x0d
    LINE_BREAK_PATTERN = re.compile(r'[\t\n\r]')
    UUID_PATTERN = re.compile(r'^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$')

    @staticmethod
    def sanitize_string(value: str, max_length: Optional[int] = None, allow_newlines: bool = False) -> str:
        """
        Sanitize string input.

        Args:
            value: Input string
            max_length: Optional max length
            allow_newlines: Allow \\n, \\r and \\t (for message text)

        Returns:
            The unchanged value

        Raises:
            ValueError: If input contains forbidden characters or is too long
        """
        if not isinstance(value, str):
            raise ValueError("Input must be string")

        if InputSanitizer.NULL_BYTE_PATTERN.search(value):
            raise ValueError("Null bytes not allowed")

        if InputSanitizer.CONTROL_CHAR_PATTERN.search(value):
            raise ValueError("Control characters not allowed")

        if not allow_newlines and InputSanitizer.LINE_BREAK_PATTERN.search(value):
            raise ValueError("Line breaks not allowed")

        if max_length and len(value) > max_length:
            raise ValueError(f"Input exceeds max length of {max_length}")

        return value

    @staticmethod
    def sanitize_name(value: str, max_length: int = 255) -> str:
        """Single-line display name (user or group)."""
        sanitized = InputSanitizer.sanitize_string(value, max_length=max_length).strip()
        if not sanitized:
            raise ValueError("Name cannot be empty")
        return sanitized

    @staticmethod
    def sanitize_content(value: str, max_length: int = 5000) -> str:
        """Message content (allows newlines, must not be blank)."""
        sanitized = InputSanitizer.sanitize_string(value, max_length=max_length, allow_newlines=True)
        if not sanitized.strip():
            raise ValueError("Content cannot be empty")
        return sanitized

    @staticmethod
    def validate_uuid(value: str) -> str:
        if not InputSanitizer.UUID_PATTERN.match(value):
            raise ValueError("Must be a valid UUID")
        return value.lower()

    @staticmethod
    def validate_uuid_list(values: list[str]) -> list[str]:
        return [InputSanitizer.validate_uuid(v) for v in values]
