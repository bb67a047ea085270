"""AWS Signature Version 4 signing for S3-compatible services.

Header signing and query presigning are delegated to botocore's ``S3SigV4Auth`` and
``S3SigV4QueryAuth``. Request bodies are never hashed here: signed requests carry
``X-Amz-Content-SHA256: UNSIGNED-PAYLOAD`` so uploads can stream straight from the
caller's reader.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Mapping

from botocore.auth import S3SigV4Auth, S3SigV4QueryAuth
from botocore.awsrequest import AWSRequest
from botocore.config import Config
from botocore.credentials import Credentials as BotoCredentials

from s3core.config.client_config import Credentials
from s3core.storage.errors import InvalidExpiryError, InvalidRangeError, MissingCredentialsError

SERVICE_NAME = "s3"
MAX_EXPIRY_SECONDS = 7 * 24 * 60 * 60

_UNSIGNED_PAYLOAD_CONFIG = Config(s3={"payload_signing_enabled": False})


def _boto_credentials(credentials: Credentials) -> BotoCredentials:
    return BotoCredentials(credentials.access_key_id, credentials.secret_access_key)


def check_expiry(expires: int | timedelta) -> int:
    """Return ``expires`` as whole seconds, rejecting anything outside (0, 604800]."""
    if isinstance(expires, timedelta):
        seconds = expires.total_seconds()
    elif isinstance(expires, int) and not isinstance(expires, bool):
        seconds = expires
    else:
        raise InvalidExpiryError(f"Expiry must be an int number of seconds or a timedelta, got: {expires!r}")
    # Compared before truncation: 604800.5 seconds is out of range.
    if seconds < 1 or seconds > MAX_EXPIRY_SECONDS:
        raise InvalidExpiryError(
            f"Expiry must be between 1 and {MAX_EXPIRY_SECONDS} seconds (7 days), got: {seconds}"
        )
    return int(seconds)


def check_byte_range(start: int, end: int | None = None) -> None:
    if isinstance(start, bool) or not isinstance(start, int) or start < 0:
        raise InvalidRangeError(f"Range start must be an int >= 0, got: {start!r}")
    if end is None:
        return
    if isinstance(end, bool) or not isinstance(end, int) or end <= start:
        raise InvalidRangeError(f"Range end must be an int greater than start ({start}), got: {end!r}")


def format_range_header(start: int, end: int | None = None) -> str:
    check_byte_range(start, end)
    if end is None:
        return f"bytes={start}-"
    return f"bytes={start}-{end}"


def sign_request(
    method: str,
    url: str,
    headers: Mapping[str, str],
    credentials: Credentials | None,
    region: str,
) -> dict[str, str]:
    """Return ``headers`` plus ``Authorization``, ``X-Amz-Date`` and ``X-Amz-Content-SHA256``.

    Without credentials the request goes out anonymously and ``headers`` are returned as-is.
    """
    if credentials is None:
        return dict(headers)
    request = AWSRequest(method=method.upper(), url=url, headers=dict(headers))
    request.context["client_config"] = _UNSIGNED_PAYLOAD_CONFIG
    S3SigV4Auth(_boto_credentials(credentials), SERVICE_NAME, region).add_auth(request)
    return dict(request.headers.items())


def presign_url(
    method: str,
    url: str,
    credentials: Credentials | None,
    region: str,
    expires: int | timedelta,
    headers: Mapping[str, str] | None = None,
) -> str:
    """Build a self-authenticating URL valid for ``expires``.

    Any ``headers`` given (e.g. ``Range``) become signed headers the URL holder must send.
    """
    seconds = check_expiry(expires)
    if credentials is None:
        raise MissingCredentialsError("Presigned URLs require both an access key id and a secret access key.")
    request = AWSRequest(method=method.upper(), url=url, headers=dict(headers or {}))
    S3SigV4QueryAuth(_boto_credentials(credentials), SERVICE_NAME, region, expires=seconds).add_auth(request)
    return request.url
