"""Key extraction from line-oriented DISM output.

DISM prints records as ``Key : Value`` lines. Nothing here validates the
full output schema; callers ask for a key and get the value after the
first colon of the first line that starts with it.
"""

from __future__ import annotations


def _split(line: str, key: str) -> str | None:
    stripped = line.strip()
    if not stripped.startswith(key):
        return None
    rest = stripped[len(key) :].lstrip()
    if not rest.startswith(":"):
        return None
    return rest[1:].strip()


def extract_field(output: str, key: str) -> str | None:
    """Return the value of the first ``key : value`` line.

    Args:
        output: Tool output text.
        key: Key prefix to look for, e.g. "Architecture".

    Returns:
        The stripped value, or None if no line matches.
    """
    for line in output.splitlines():
        value = _split(line, key)
        if value is not None:
            return value
    return None


def extract_all(output: str, key: str) -> list[str]:
    """Return the values of every ``key : value`` line, in order."""
    values = []
    for line in output.splitlines():
        value = _split(line, key)
        if value is not None:
            values.append(value)
    return values


def parse_size(value: str | None) -> int:
    """Parse a DISM size such as ``16,384,901,234 bytes`` into an int."""
    if not value:
        return 0
    digits = "".join(ch for ch in value.split("bytes")[0] if ch.isdigit())
    return int(digits) if digits else 0


__all__ = ["extract_all", "extract_field", "parse_size"]
