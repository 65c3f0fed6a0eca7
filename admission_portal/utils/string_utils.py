import re
from pathlib import PurePosixPath
from typing import Optional

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename_part(value: str) -> str:
    """Replace anything that is not safe inside an archive entry name with '_'."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value.strip())
    return cleaned.strip("._") or "document"


def file_extension(file_name: Optional[str]) -> str:
    """Lower-case extension without the dot, or '' when there is none."""
    if not file_name:
        return ""
    # strip query strings from URL-shaped names
    name = file_name.split("?", 1)[0]
    return PurePosixPath(name).suffix.lstrip(".").lower()


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def humanize_key(key: str) -> str:
    """'dateOfBirth' or 'date_of_birth' -> 'Date Of Birth'."""
    spaced = _CAMEL_BOUNDARY.sub(" ", key).replace("_", " ")
    return " ".join(word.capitalize() for word in spaced.split())
