"""Error taxonomy and S3 error-body translation.

Every failure raised by the client derives from :class:`S3CoreError`:

* validation errors (:class:`ValidationError`) are raised before any request is sent,
* :class:`MissingCredentialsError` when an operation needs keys the client does not have,
* :class:`ResponseError` for a non-success HTTP status; its ``str()`` is the server Message,
* :class:`TransportError` for connection failures, timeouts and cancellation.

Only :class:`ResponseError` carries an :class:`~s3core.storage.models.ErrorResponse`;
:func:`to_error_response` returns ``None`` for everything else.
"""

from __future__ import annotations

import json
from typing import IO, Any, Mapping, TypeVar
from xml.etree import ElementTree as ET

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from s3core.storage.models import ErrorResponse, local_name


UNKNOWN_ERROR_CODE = "UnknownError"

NO_SUCH_BUCKET_MESSAGE = "The specified bucket does not exist."
INVALID_BUCKET_NAME_MESSAGE = "The specified bucket is not valid."
NO_SUCH_KEY_MESSAGE = "The specified key does not exist."
ACCESS_DENIED_MESSAGE = "Access Denied"

_FIELD_TAGS = ("Code", "Message", "Resource", "RequestId", "HostId")


class S3CoreError(Exception):
    """Base class for every error raised by s3core."""


class ValidationError(S3CoreError, ValueError):
    """Bad input detected locally; no request was sent."""


class InvalidBucketNameError(ValidationError):
    def __init__(self, bucket: Any, reason: str) -> None:
        super().__init__(INVALID_BUCKET_NAME_MESSAGE)
        self.bucket = bucket
        self.reason = reason


class InvalidObjectNameError(ValidationError):
    def __init__(self, key: Any, reason: str) -> None:
        super().__init__(f"The specified key is not valid: {reason}")
        self.key = key
        self.reason = reason


class InvalidExpiryError(ValidationError):
    pass


class InvalidRangeError(ValidationError):
    pass


class InvalidACLError(ValidationError):
    pass


class ContentLengthMismatchError(ValidationError):
    """The upload reader did not deliver the declared number of bytes."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Declared size {expected} does not match bytes read from reader ({actual}).")
        self.expected = expected
        self.actual = actual


class MissingCredentialsError(S3CoreError):
    pass


class ResponseError(S3CoreError):
    """Non-success response from the storage service."""

    def __init__(self, response: ErrorResponse, status_code: int | None = None) -> None:
        super().__init__(response.message)
        self.response = response
        self.status_code = status_code

    @property
    def code(self) -> str:
        return self.response.code

    @property
    def is_access_denied(self) -> bool:
        return self.response.code == "AccessDenied" or self.status_code == 403

    @property
    def is_not_found(self) -> bool:
        return self.response.code in {"NoSuchBucket", "NoSuchKey", "NotFound"} or self.status_code == 404

    def __str__(self) -> str:
        return self.response.message

    def __repr__(self) -> str:
        return f"ResponseError(code={self.code!r}, message={self.response.message!r}, status_code={self.status_code!r})"


class IntegrityError(S3CoreError):
    """Server ETag does not match the MD5 of the bytes actually transferred."""

    def __init__(self, key: str, expected: str, actual: str) -> None:
        super().__init__(f"ETag mismatch for {key!r}: server={expected!r} transferred={actual!r}")
        self.key = key
        self.expected = expected
        self.actual = actual


class InvalidResponseError(S3CoreError):
    """A success response whose body could not be decoded."""


class TransportError(S3CoreError):
    """Connection-level failure; safe for callers to retry."""


class RequestTimeoutError(TransportError):
    pass


class TransferCancelledError(TransportError):
    pass


def to_error_response(err: BaseException | None) -> ErrorResponse | None:
    if isinstance(err, ResponseError):
        return err.response
    return None


def _read_body(body: bytes | str | IO[bytes] | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return body.read() or b""


def _decode_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").strip()


def _fields_from_xml(raw: bytes) -> dict[str, str]:
    root = ET.fromstring(raw)
    fields: dict[str, str] = {}
    for child in root:
        tag = local_name(child.tag)
        if tag in _FIELD_TAGS:
            fields[tag] = (child.text or "").strip()
    return fields


def _fields_from_json(raw: bytes) -> dict[str, str]:
    document = json.loads(raw)
    if isinstance(document, dict) and isinstance(document.get("Error"), dict):
        document = document["Error"]
    if not isinstance(document, dict):
        raise ValueError("JSON error body is not an object")
    return {tag: str(document[tag]) for tag in _FIELD_TAGS if document.get(tag) is not None}


def parse_error_body(
    body: bytes | str | IO[bytes] | None,
    content_type: str | None,
    status_code: int | None = None,
) -> ResponseError:
    """Decode an error response body into a :class:`ResponseError`.

    XML and JSON bodies populate all five fields; any other content type, or a body
    that does not decode, becomes ``UnknownError`` with the raw text as the Message.
    """
    raw = _read_body(body)
    media_type = (content_type or "").split(";")[0].strip().lower()

    fields: dict[str, str] | None = None
    try:
        if "xml" in media_type:
            fields = _fields_from_xml(raw)
        elif "json" in media_type:
            fields = _fields_from_json(raw)
    except (ET.ParseError, ValueError):
        fields = None

    if not fields:
        fields = {"Code": UNKNOWN_ERROR_CODE, "Message": _decode_text(raw)}
    if not fields.get("Code"):
        fields["Code"] = UNKNOWN_ERROR_CODE
    if not fields.get("Message"):
        fields["Message"] = fields["Code"]

    try:
        response = ErrorResponse.model_validate(fields)
    except PydanticValidationError:
        response = ErrorResponse(code=UNKNOWN_ERROR_CODE, message=_decode_text(raw))
    return ResponseError(response, status_code=status_code)


def error_for_status(
    status_code: int,
    reason: str | None,
    resource: str,
    headers: Mapping[str, str] | None = None,
    bucket: str | None = None,
    key: str | None = None,
) -> ResponseError:
    """Build the error for a response whose body is absent or carries no usable fields."""
    if status_code == 404 and key:
        code, message = "NoSuchKey", NO_SUCH_KEY_MESSAGE
    elif status_code == 404 and bucket:
        code, message = "NoSuchBucket", NO_SUCH_BUCKET_MESSAGE
    elif status_code == 400 and bucket and not key:
        code, message = "InvalidBucketName", INVALID_BUCKET_NAME_MESSAGE
    elif status_code == 403:
        code, message = "AccessDenied", ACCESS_DENIED_MESSAGE
    elif status_code == 409:
        code, message = "Conflict", "Bucket not empty."
    elif status_code in (405, 501):
        code, message = "MethodNotAllowed", "The specified method is not allowed against this resource."
    else:
        phrase = (reason or "").strip() or f"HTTP {status_code}"
        code = phrase.replace(" ", "") or UNKNOWN_ERROR_CODE
        message = phrase

    headers = headers or {}
    response = ErrorResponse(
        code=code,
        message=message,
        resource=resource,
        request_id=headers.get("x-amz-request-id", ""),
        host_id=headers.get("x-amz-id-2", ""),
    )
    return ResponseError(response, status_code=status_code)


ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_xml_body(model: type[ModelT], raw: bytes, resource: str) -> ModelT:
    """Parse a success body with ``model.from_xml``; undecodable bodies raise InvalidResponseError."""
    try:
        return model.from_xml(raw)
    except (ET.ParseError, PydanticValidationError) as exc:
        raise InvalidResponseError(f"Malformed {model.__name__} document for {resource}: {exc}") from exc
