from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import IO, Iterator
from urllib.parse import quote
from xml.etree import ElementTree as ET

import requests

from s3core.config.client_config import DEFAULT_REGION, ClientConfig
from s3core.logging_config import get_logger
from s3core.storage.errors import (
    UNKNOWN_ERROR_CODE,
    ContentLengthMismatchError,
    IntegrityError,
    InvalidRangeError,
    MissingCredentialsError,
    RequestTimeoutError,
    ResponseError,
    TransportError,
    ValidationError,
    decode_xml_body,
    error_for_status,
    parse_error_body,
)
from s3core.storage.listing import iter_buckets, iter_objects
from s3core.storage.models import AccessControlPolicy, BucketACL, ListEntry, ObjectMetadata
from s3core.storage.signer import check_byte_range, check_expiry, format_range_header, presign_url, sign_request
from s3core.storage.transfer import HashingReader, ObjectReader, is_md5_etag
from s3core.storage.transport import create_session, request_timeout
from s3core.storage.validation import validate_bucket_name, validate_object_name

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
S3_XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"


def _encode_query(query: dict[str, str]) -> str:
    parts = []
    for name, value in query.items():
        if value == "":
            parts.append(quote(name, safe="-_.~"))
        else:
            parts.append(f"{quote(name, safe='-_.~')}={quote(value, safe='-_.~')}")
    return "&".join(parts)


def _location_constraint_body(region: str) -> bytes:
    root = ET.Element("CreateBucketConfiguration", xmlns=S3_XMLNS)
    ET.SubElement(root, "LocationConstraint").text = region
    return ET.tostring(root)


class Client:
    """Client for one S3-compatible endpoint.

    The config is read-only and every call builds its own request, so one instance can
    serve several threads. The ``requests.Session`` is created here unless one is passed
    in; ``close()`` only closes a session the client created itself.
    """

    def __init__(
        self,
        config: ClientConfig,
        session: requests.Session | None = None,
        require_credentials: bool = False,
    ) -> None:
        if require_credentials and config.credentials is None:
            raise MissingCredentialsError("This client requires an access key id and a secret access key.")
        self.config = config
        self._owns_session = session is None
        self.session = session if session is not None else create_session(config)

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    # Request plumbing

    def _url(self, bucket: str | None = None, key: str | None = None, query: dict[str, str] | None = None) -> str:
        url = self.config.base_url + self._resource(bucket, key)
        if query:
            url = f"{url}?{_encode_query(query)}"
        return url

    @staticmethod
    def _resource(bucket: str | None = None, key: str | None = None) -> str:
        if not bucket:
            return "/"
        if key is None:
            return f"/{bucket}"
        return f"/{bucket}/{quote(key, safe='/~')}"

    def _execute(
        self,
        method: str,
        bucket: str | None = None,
        key: str | None = None,
        query: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        body: bytes | HashingReader | None = None,
        stream: bool = False,
        timeout: float | None = None,
    ) -> requests.Response:
        url = self._url(bucket, key, query)
        resource = self._resource(bucket, key)
        signed_headers = sign_request(method, url, headers or {}, self.config.credentials, self.config.region)

        started_at = time.perf_counter()
        try:
            response = self.session.request(
                method,
                url,
                headers=signed_headers,
                data=body,
                stream=stream,
                timeout=request_timeout(self.config, timeout),
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as exc:
            logger.warning("Request timed out: method=%s resource=%s", method, resource)
            raise RequestTimeoutError(f"{method} {resource} timed out") from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("Transport failure: method=%s resource=%s error=%s", method, resource, exc)
            raise TransportError(f"{method} {resource} failed: {exc}") from exc
        elapsed_seconds = time.perf_counter() - started_at

        logger.debug(
            "Request complete: method=%s resource=%s status=%s elapsed_seconds=%.3f",
            method,
            resource,
            response.status_code,
            elapsed_seconds,
        )
        if not 200 <= response.status_code < 300:
            error = self._response_error(response, method, resource, bucket, key)
            logger.warning(
                "Request rejected: method=%s resource=%s status=%s code=%s request_id=%s",
                method,
                resource,
                response.status_code,
                error.code,
                error.response.request_id,
            )
            raise error
        return response

    @staticmethod
    def _response_error(
        response: requests.Response,
        method: str,
        resource: str,
        bucket: str | None,
        key: str | None,
    ) -> ResponseError:
        try:
            raw = b"" if method == "HEAD" else response.content
        except requests.exceptions.RequestException:
            raw = b""
        finally:
            response.close()

        if not raw.strip():
            return error_for_status(response.status_code, response.reason, resource, response.headers, bucket, key)

        error = parse_error_body(raw, response.headers.get("Content-Type"), response.status_code)
        parsed = error.response
        # A body without a Message (or one that was not XML/JSON at all) reads no better
        # than the status line, so the status mapping supplies the message.
        if parsed.code != UNKNOWN_ERROR_CODE and parsed.message != parsed.code:
            fallback = None
        else:
            fallback = error_for_status(
                response.status_code, response.reason, resource, response.headers, bucket, key
            ).response
        update = {}
        if fallback is not None:
            update["message"] = fallback.message
            if parsed.code == UNKNOWN_ERROR_CODE:
                update["code"] = fallback.code
            if not parsed.resource:
                update["resource"] = fallback.resource
        if not parsed.request_id and response.headers.get("x-amz-request-id"):
            update["request_id"] = response.headers["x-amz-request-id"]
        if not parsed.host_id and response.headers.get("x-amz-id-2"):
            update["host_id"] = response.headers["x-amz-id-2"]
        if update:
            error = ResponseError(parsed.model_copy(update=update), status_code=error.status_code)
        return error

    # Buckets

    def make_bucket(self, bucket: str, acl: BucketACL | str = BucketACL.PRIVATE) -> None:
        validate_bucket_name(bucket)
        canned = BucketACL.parse(acl)
        headers = {"x-amz-acl": canned.value}
        body = None
        if self.config.region != DEFAULT_REGION:
            body = _location_constraint_body(self.config.region)
            headers["Content-Type"] = "application/xml"
        self._execute("PUT", bucket=bucket, headers=headers, body=body)
        logger.info("Created bucket: bucket=%s acl=%s region=%s", bucket, canned.value, self.config.region)

    def bucket_exists(self, bucket: str) -> None:
        """Return ``None`` if the bucket exists and is accessible, raise otherwise.

        A missing bucket and an inaccessible one raise ``ResponseError`` with
        ``is_not_found`` / ``is_access_denied`` set respectively.
        """
        validate_bucket_name(bucket)
        self._execute("HEAD", bucket=bucket)

    def remove_bucket(self, bucket: str) -> None:
        validate_bucket_name(bucket)
        self._execute("DELETE", bucket=bucket)
        logger.info("Removed bucket: bucket=%s", bucket)

    def set_bucket_acl(self, bucket: str, acl: BucketACL | str) -> None:
        validate_bucket_name(bucket)
        canned = BucketACL.parse(acl)
        self._execute("PUT", bucket=bucket, query={"acl": ""}, headers={"x-amz-acl": canned.value})

    def get_bucket_acl(self, bucket: str) -> BucketACL:
        validate_bucket_name(bucket)
        response = self._execute("GET", bucket=bucket, query={"acl": ""})
        policy = decode_xml_body(AccessControlPolicy, response.content, f"/{bucket}?acl")
        return policy.canned_acl()

    def list_buckets(self) -> Iterator[ListEntry]:
        return iter_buckets(self._execute)

    def list_objects(self, bucket: str, prefix: str = "", recursive: bool = False) -> Iterator[ListEntry]:
        return iter_objects(self._execute, bucket, prefix=prefix, recursive=recursive)

    # Objects

    def put_object(
        self,
        bucket: str,
        key: str,
        content_type: str | None,
        size: int,
        reader: IO[bytes],
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> ObjectMetadata:
        """Upload exactly ``size`` bytes from ``reader`` in a single request.

        The MD5 of the bytes sent must match the ETag the server returns; a short reader,
        a mismatch or a transport failure fails the whole call.
        """
        validate_bucket_name(bucket)
        validate_object_name(key)
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise ValidationError(f"Object size must be a non-negative int, got: {size!r}")
        content_type = content_type or DEFAULT_CONTENT_TYPE

        body = HashingReader(reader, size, cancel=cancel)
        headers = {"Content-Type": content_type, "Content-Length": str(size)}
        response = self._execute("PUT", bucket=bucket, key=key, headers=headers, body=body if size else b"", timeout=timeout)
        if body.bytes_read != size:
            raise ContentLengthMismatchError(size, body.bytes_read)

        metadata = ObjectMetadata.from_headers(key, response.headers).model_copy(
            update={"size": size, "content_type": content_type}
        )
        digest = body.hexdigest()
        if is_md5_etag(metadata.etag) and metadata.etag.lower() != digest:
            raise IntegrityError(key, metadata.etag, digest)
        logger.info("Uploaded object: bucket=%s key=%s size=%s etag=%s", bucket, key, size, metadata.etag)
        return metadata

    def get_object(
        self,
        bucket: str,
        key: str,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> tuple[ObjectReader, ObjectMetadata]:
        """Open a streaming download; the caller must drain or close the reader."""
        validate_bucket_name(bucket)
        validate_object_name(key)
        response = self._execute("GET", bucket=bucket, key=key, stream=True, timeout=timeout)
        metadata = ObjectMetadata.from_headers(key, response.headers)
        return ObjectReader(response, metadata, cancel=cancel), metadata

    def get_partial_object(
        self,
        bucket: str,
        key: str,
        offset: int,
        length: int | None = None,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> tuple[ObjectReader, ObjectMetadata]:
        validate_bucket_name(bucket)
        validate_object_name(key)
        check_byte_range(offset)
        if length is None:
            range_header = f"bytes={offset}-"
        elif isinstance(length, bool) or not isinstance(length, int) or length <= 0:
            raise InvalidRangeError(f"Range length must be a positive int, got: {length!r}")
        else:
            range_header = f"bytes={offset}-{offset + length - 1}"
        response = self._execute(
            "GET", bucket=bucket, key=key, headers={"Range": range_header}, stream=True, timeout=timeout
        )
        metadata = ObjectMetadata.from_headers(key, response.headers)
        return ObjectReader(response, metadata, cancel=cancel, verify_etag=False), metadata

    def stat_object(self, bucket: str, key: str) -> ObjectMetadata:
        validate_bucket_name(bucket)
        validate_object_name(key)
        response = self._execute("HEAD", bucket=bucket, key=key)
        return ObjectMetadata.from_headers(key, response.headers)

    def remove_object(self, bucket: str, key: str) -> None:
        validate_bucket_name(bucket)
        validate_object_name(key)
        self._execute("DELETE", bucket=bucket, key=key)
        logger.info("Removed object: bucket=%s key=%s", bucket, key)

    # Presigned URLs

    def _presign(
        self,
        method: str,
        bucket: str,
        key: str,
        expires: int | timedelta,
        headers: dict[str, str] | None = None,
    ) -> str:
        url = presign_url(method, self._url(bucket, key), self.config.credentials, self.config.region, expires, headers)
        logger.debug("Presigned URL generated: method=%s resource=%s", method, self._resource(bucket, key))
        return url

    def presigned_get_object(self, bucket: str, key: str, expires: int | timedelta) -> str:
        validate_bucket_name(bucket)
        validate_object_name(key)
        return self._presign("GET", bucket, key, expires)

    def presigned_get_partial_object(
        self,
        bucket: str,
        key: str,
        expires: int | timedelta,
        start: int,
        end: int | None = None,
    ) -> str:
        """Presign a ranged GET; the URL holder must send the returned range as a ``Range`` header."""
        validate_bucket_name(bucket)
        validate_object_name(key)
        check_expiry(expires)
        range_header = format_range_header(start, end)
        return self._presign("GET", bucket, key, expires, headers={"Range": range_header})

    def presigned_put_object(self, bucket: str, key: str, expires: int | timedelta) -> str:
        validate_bucket_name(bucket)
        validate_object_name(key)
        return self._presign("PUT", bucket, key, expires)
