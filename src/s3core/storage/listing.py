"""Lazy, paginated listing of buckets and objects.

Both listings are generators: a page is requested only when the consumer advances
past the previous one, so breaking out of the loop (or dropping the generator) stops
further requests. Failures are yielded as a single terminal :class:`ListEntry`
with ``err`` set; nothing is yielded after it.
"""

from __future__ import annotations

from typing import Callable, Iterator

import requests

from s3core.logging_config import get_logger, with_context
from s3core.storage.errors import InvalidResponseError, S3CoreError, decode_xml_body
from s3core.storage.models import ListAllMyBucketsResult, ListBucketResult, ListEntry, ObjectMetadata
from s3core.storage.validation import validate_bucket_name, validate_object_name

logger = get_logger(__name__)

MAX_KEYS_PER_PAGE = 1000
DELIMITER = "/"

Execute = Callable[..., requests.Response]


def iter_buckets(execute: Execute) -> Iterator[ListEntry]:
    try:
        response = execute("GET")
        result = decode_xml_body(ListAllMyBucketsResult, response.content, "/")
    except S3CoreError as exc:
        logger.warning("Bucket listing failed: error=%s", exc)
        yield ListEntry(err=exc)
        return
    for bucket in result.buckets:
        yield ListEntry(stat=bucket)


def _page_entries(result: ListBucketResult) -> list[ObjectMetadata]:
    entries = list(result.contents)
    entries.extend(ObjectMetadata(key=prefix, is_prefix=True) for prefix in result.common_prefixes)
    entries.sort(key=lambda entry: entry.key)
    return entries


def iter_objects(
    execute: Execute,
    bucket: str,
    prefix: str = "",
    recursive: bool = False,
    max_keys: int = MAX_KEYS_PER_PAGE,
) -> Iterator[ListEntry]:
    try:
        validate_bucket_name(bucket)
        if prefix:
            validate_object_name(prefix)
    except S3CoreError as exc:
        yield ListEntry(err=exc)
        return

    log = with_context(logger, bucket=bucket, prefix=prefix, recursive=recursive)
    marker = ""
    page = 0
    while True:
        query = {"max-keys": str(max_keys)}
        if prefix:
            query["prefix"] = prefix
        if marker:
            query["marker"] = marker
        if not recursive:
            query["delimiter"] = DELIMITER

        try:
            response = execute("GET", bucket=bucket, query=query)
            result = decode_xml_body(ListBucketResult, response.content, f"/{bucket}")
        except S3CoreError as exc:
            log.warning("Object listing failed: page=%s marker=%s error=%s", page, marker, exc)
            yield ListEntry(err=exc)
            return

        page += 1
        entries = _page_entries(result)
        log.debug("Fetched listing page: page=%s entries=%s truncated=%s", page, len(entries), result.is_truncated)
        for entry in entries:
            yield ListEntry(stat=entry)

        if not result.is_truncated:
            return
        next_marker = result.continuation_marker()
        if not next_marker or next_marker == marker:
            yield ListEntry(
                err=InvalidResponseError(f"Truncated listing of /{bucket} returned no new continuation marker")
            )
            return
        marker = next_marker
