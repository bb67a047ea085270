"""Bucket and object name checks, run before any request is built."""

from __future__ import annotations

import re

from s3core.storage.errors import InvalidBucketNameError, InvalidObjectNameError

MIN_BUCKET_NAME_LENGTH = 3
MAX_BUCKET_NAME_LENGTH = 63
MAX_OBJECT_NAME_BYTES = 1024

_BUCKET_CHARS = re.compile(r"[a-z0-9.\-]+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate_bucket_name(name: str) -> None:
    if not isinstance(name, str) or not name.strip():
        raise InvalidBucketNameError(name, "bucket name cannot be empty")
    if len(name) < MIN_BUCKET_NAME_LENGTH or len(name) > MAX_BUCKET_NAME_LENGTH:
        raise InvalidBucketNameError(
            name,
            f"bucket name must be {MIN_BUCKET_NAME_LENGTH}-{MAX_BUCKET_NAME_LENGTH} characters, got {len(name)}",
        )
    if not _BUCKET_CHARS.fullmatch(name):
        raise InvalidBucketNameError(name, "bucket name may only contain lowercase letters, digits, '.' and '-'")
    if not (name[0].isalnum() and name[-1].isalnum()):
        raise InvalidBucketNameError(name, "bucket name must start and end with a letter or digit")
    if ".." in name:
        raise InvalidBucketNameError(name, "bucket name cannot contain consecutive dots")


def validate_object_name(name: str) -> None:
    if not isinstance(name, str) or name == "":
        raise InvalidObjectNameError(name, "object name cannot be empty")
    if len(name.encode("utf-8", errors="surrogatepass")) > MAX_OBJECT_NAME_BYTES:
        raise InvalidObjectNameError(name, f"object name exceeds {MAX_OBJECT_NAME_BYTES} bytes")
    if _CONTROL_CHARS.search(name):
        raise InvalidObjectNameError(name, "object name cannot contain control characters")


def is_valid_bucket_name(name: str) -> bool:
    try:
        validate_bucket_name(name)
    except InvalidBucketNameError:
        return False
    return True


def is_valid_object_name(name: str) -> bool:
    try:
        validate_object_name(name)
    except InvalidObjectNameError:
        return False
    return True
