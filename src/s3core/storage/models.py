from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Annotated, Any, Mapping, Optional, Union
from xml.etree import ElementTree as ET

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

ALL_USERS_URI = "http://acs.amazonaws.com/groups/global/AllUsers"
AUTHENTICATED_USERS_URI = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"


def local_name(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an ElementTree tag."""
    return tag.rsplit("}", 1)[-1]


def _flatten(element: ET.Element) -> dict[str, str]:
    return {local_name(child.tag): (child.text or "").strip() for child in element}


def _strip_quotes(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().strip('"')
    return value


class BucketACL(str, Enum):
    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"

    @classmethod
    def parse(cls, value: Union["BucketACL", str]) -> "BucketACL":
        from s3core.storage.errors import InvalidACLError

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(acl.value for acl in cls)
            raise InvalidACLError(f"Unrecognized ACL {value!r}, expected one of: {allowed}") from exc

    def __str__(self) -> str:
        return self.value


# Error document returned by the service on any non-success status.
class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)
    code: str = Field("", alias="Code", description="Machine-readable error category, e.g. 'AccessDenied'.")
    message: str = Field("", alias="Message", description="Human readable message shown to operators.")
    resource: str = Field("", alias="Resource", description="Bucket or object path that caused the error.")
    request_id: str = Field("", alias="RequestId", description="Server-assigned request id.")
    host_id: str = Field("", alias="HostId", description="Server-assigned host id.")

    def to_xml(self) -> str:
        root = ET.Element("Error")
        for tag, value in self.model_dump(by_alias=True).items():
            ET.SubElement(root, tag).text = value
        return '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ObjectMetadata(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True, frozen=True)
    key: str = Field(..., alias="Key", description="Object key, or the prefix for a common-prefix entry.")
    etag: Annotated[str, BeforeValidator(_strip_quotes)] = Field("", alias="ETag", description="Content hash reported by the server, quotes removed.")
    size: int = Field(0, alias="Size", description="Object size in bytes.")
    last_modified: Optional[datetime] = Field(None, alias="LastModified")
    content_type: str = Field("", alias="ContentType")
    is_prefix: bool = Field(False, description="True for a common prefix yielded by a non-recursive listing.")

    @classmethod
    def from_headers(cls, key: str, headers: Mapping[str, str]) -> "ObjectMetadata":
        last_modified = None
        raw_date = headers.get("Last-Modified")
        if raw_date:
            try:
                last_modified = parsedate_to_datetime(raw_date)
            except (TypeError, ValueError):
                last_modified = None
        raw_size = headers.get("Content-Length")
        return cls(
            key=key,
            etag=headers.get("ETag", ""),
            size=int(raw_size) if raw_size and raw_size.isdigit() else 0,
            last_modified=last_modified,
            content_type=headers.get("Content-Type", ""),
        )


class BucketMetadata(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True, frozen=True)
    name: str = Field(..., alias="Name")
    creation_date: Optional[datetime] = Field(None, alias="CreationDate")


# One page of GET /{bucket} (ListObjects, version 1).
class ListBucketResult(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)
    name: str = Field("", alias="Name")
    prefix: str = Field("", alias="Prefix")
    marker: str = Field("", alias="Marker")
    next_marker: str = Field("", alias="NextMarker")
    delimiter: str = Field("", alias="Delimiter")
    max_keys: int = Field(1000, alias="MaxKeys")
    is_truncated: bool = Field(False, alias="IsTruncated")
    contents: list[ObjectMetadata] = Field(default_factory=list, alias="Contents")
    common_prefixes: list[str] = Field(default_factory=list, alias="CommonPrefixes")

    @classmethod
    def from_xml(cls, raw: bytes) -> "ListBucketResult":
        root = ET.fromstring(raw)
        data: dict[str, Any] = {"Contents": [], "CommonPrefixes": []}
        for child in root:
            tag = local_name(child.tag)
            if tag == "Contents":
                data["Contents"].append(_flatten(child))
            elif tag == "CommonPrefixes":
                data["CommonPrefixes"].append(_flatten(child).get("Prefix", ""))
            elif (child.text or "").strip():
                data[tag] = child.text.strip()
        return cls.model_validate(data)

    def continuation_marker(self) -> str:
        if self.next_marker:
            return self.next_marker
        last_keys = [obj.key for obj in self.contents] + self.common_prefixes
        return max(last_keys) if last_keys else ""


class ListAllMyBucketsResult(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)
    owner_id: str = Field("", alias="OwnerID")
    buckets: list[BucketMetadata] = Field(default_factory=list, alias="Buckets")

    @classmethod
    def from_xml(cls, raw: bytes) -> "ListAllMyBucketsResult":
        root = ET.fromstring(raw)
        data: dict[str, Any] = {"Buckets": []}
        for child in root:
            tag = local_name(child.tag)
            if tag == "Owner":
                data["OwnerID"] = _flatten(child).get("ID", "")
            elif tag == "Buckets":
                data["Buckets"] = [_flatten(bucket) for bucket in child if local_name(bucket.tag) == "Bucket"]
        return cls.model_validate(data)


class Grant(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)
    grantee_id: str = Field("", alias="ID")
    grantee_uri: str = Field("", alias="URI")
    permission: str = Field("", alias="Permission")


class AccessControlPolicy(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)
    owner_id: str = Field("", alias="OwnerID")
    grants: list[Grant] = Field(default_factory=list, alias="Grants")

    @classmethod
    def from_xml(cls, raw: bytes) -> "AccessControlPolicy":
        root = ET.fromstring(raw)
        data: dict[str, Any] = {"Grants": []}
        for child in root:
            tag = local_name(child.tag)
            if tag == "Owner":
                data["OwnerID"] = _flatten(child).get("ID", "")
            elif tag == "AccessControlList":
                for grant in child:
                    if local_name(grant.tag) != "Grant":
                        continue
                    entry: dict[str, str] = {}
                    for part in grant:
                        if local_name(part.tag) == "Grantee":
                            entry.update(_flatten(part))
                        elif local_name(part.tag) == "Permission":
                            entry["Permission"] = (part.text or "").strip()
                    data["Grants"].append(entry)
        return cls.model_validate(data)

    def canned_acl(self) -> BucketACL:
        all_users = {g.permission for g in self.grants if g.grantee_uri == ALL_USERS_URI}
        authenticated = {g.permission for g in self.grants if g.grantee_uri == AUTHENTICATED_USERS_URI}
        if {"READ", "WRITE"} <= all_users:
            return BucketACL.PUBLIC_READ_WRITE
        if "READ" in all_users:
            return BucketACL.PUBLIC_READ
        if "READ" in authenticated:
            return BucketACL.AUTHENTICATED_READ
        return BucketACL.PRIVATE


@dataclass(frozen=True)
class ListEntry:
    """A listing result: exactly one of ``stat`` or ``err`` is set."""

    stat: Union[ObjectMetadata, BucketMetadata, None] = None
    err: Optional[BaseException] = None

    def __post_init__(self) -> None:
        if (self.stat is None) == (self.err is None):
            raise ValueError("ListEntry needs exactly one of stat or err.")

    @property
    def ok(self) -> bool:
        return self.err is None
