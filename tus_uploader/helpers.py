"""Helpers for parsing byte sizes and upload identifiers."""

import re

_UUID_PATTERN = re.compile(
    r"([A-F0-9]{8}-[A-F0-9]{4}-[A-F0-9]{4}-[A-F0-9]{4}-[A-F0-9]{12})",
    re.IGNORECASE,
)


def parse_bytes(value: int | str) -> int:
    """Parse a byte quantity from an integer or unit-suffixed string.

    Supported string units (case-insensitive):
        b, k, kb, m, mb, g, gb

    Args:
        value: Raw byte value as an ``int`` or string with an optional unit
            suffix.

    Returns:
        The parsed value in bytes.

    Raises:
        ValueError: If the input cannot be parsed or contains an unknown unit.
    """
    if isinstance(value, int):
        return value

    normalized_value = str(value).strip().lower()

    if normalized_value.isdigit():
        return int(normalized_value)

    numeric_part = ""
    unit_suffix = ""
    for character in normalized_value:
        if character.isdigit():
            numeric_part += character
        elif not character.isspace():
            unit_suffix += character

    if not numeric_part or not unit_suffix:
        raise ValueError(f"Invalid byte value: {value!r}")

    base_value = int(numeric_part)
    if unit_suffix == "b":
        multiplier = 1
    elif unit_suffix in {"k", "kb"}:
        multiplier = 1024
    elif unit_suffix in {"m", "mb"}:
        multiplier = 1024**2
    elif unit_suffix in {"g", "gb"}:
        multiplier = 1024**3
    else:
        raise ValueError(f"Unknown byte unit in value: {value!r}")

    return base_value * multiplier


def get_file_id_from_url(url: str) -> str:
    """Extract the upload identifier from an upload target URL.

    Prefers the first UUID found anywhere in the URL. Otherwise falls back to
    the last path segment with any extension removed.

    Args:
        url: Resumable upload target returned by session creation.

    Returns:
        The identifier portion of the URL.
    """
    match = _UUID_PATTERN.search(url)
    if match:
        return match.group(1)

    last_part = url.split("/")[-1]
    return last_part.split(".")[0]
