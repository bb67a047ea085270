from __future__ import annotations

from xml.etree import ElementTree as ET

import pytest
import requests
from requests.adapters import BaseAdapter

from s3core.config.client_config import ClientConfig
from s3core.storage.client import Client
from s3core.storage.errors import (
    InvalidACLError,
    InvalidBucketNameError,
    MissingCredentialsError,
    RequestTimeoutError,
    ResponseError,
    TransportError,
)
from s3core.storage.models import BucketACL


class TestBucketLifecycle:
    def test_make_exists_acl_list_remove(self, client, fake_s3):
        client.make_bucket("bucket", "private")
        assert client.bucket_exists("bucket") is None

        fake_s3.put("bucket", "object", b"Hello, World")
        client.set_bucket_acl("bucket", "public-read-write")
        assert client.get_bucket_acl("bucket") is BucketACL.PUBLIC_READ_WRITE

        names = [entry.stat.name for entry in client.list_buckets()]
        assert names == ["bucket"]

        keys = [entry.stat.key for entry in client.list_objects("bucket", recursive=True)]
        assert keys == ["object"]

        fake_s3.buckets["bucket"].objects.clear()
        client.remove_bucket("bucket")
        assert "bucket" not in fake_s3.buckets

    def test_acl_reported_by_server_wins(self, client, fake_s3):
        fake_s3.ignore_acl_updates = True
        client.make_bucket("bucket")
        client.set_bucket_acl("bucket", "public-read-write")
        assert client.get_bucket_acl("bucket") is BucketACL.PRIVATE

    @pytest.mark.parametrize("acl", list(BucketACL))
    def test_canned_acls_round_trip(self, client, acl):
        client.make_bucket("bucket", acl)
        assert client.get_bucket_acl("bucket") is acl

    def test_make_bucket_sends_canned_acl(self, client, fake_s3):
        client.make_bucket("bucket", BucketACL.AUTHENTICATED_READ)
        request = fake_s3.requests[-1]
        assert request.method == "PUT"
        assert request.headers["x-amz-acl"] == "authenticated-read"
        assert fake_s3.request_bodies[-1] == b""

    def test_make_bucket_outside_default_region_sends_location(self, session, fake_s3):
        config = ClientConfig(
            endpoint="http://s3.test:9000", access_key_id="accessKey", secret_access_key="secretKey", region="eu-west-1"
        )
        with Client(config, session=session) as client:
            client.make_bucket("bucket")
        root = ET.fromstring(fake_s3.request_bodies[-1])
        assert root.tag.endswith("CreateBucketConfiguration")
        assert [child.text for child in root] == ["eu-west-1"]
        assert fake_s3.buckets["bucket"].location == "eu-west-1"

    def test_requests_are_signed(self, client, fake_s3):
        client.make_bucket("bucket")
        headers = fake_s3.requests[-1].headers
        assert headers["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=accessKey/")
        assert headers["x-amz-content-sha256"] == "UNSIGNED-PAYLOAD"

    def test_anonymous_requests_are_unsigned(self, anonymous_client, fake_s3):
        anonymous_client.make_bucket("bucket")
        assert "Authorization" not in fake_s3.requests[-1].headers


class TestBucketFailures:
    def test_inaccessible_bucket(self, client, fake_s3):
        fake_s3.foreign_buckets.add("bucket1")
        with pytest.raises(ResponseError) as excinfo:
            client.bucket_exists("bucket1")
        assert str(excinfo.value) == "Access Denied"
        assert excinfo.value.is_access_denied
        assert excinfo.value.response.request_id == "FAKE0000REQUEST"

    def test_missing_bucket_head(self, client):
        with pytest.raises(ResponseError) as excinfo:
            client.bucket_exists("bucket2")
        assert excinfo.value.is_not_found
        assert str(excinfo.value) == "The specified bucket does not exist."

    def test_remove_missing_bucket(self, client):
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket1")
        assert str(excinfo.value) == "The specified bucket does not exist."
        assert excinfo.value.code == "NoSuchBucket"
        assert excinfo.value.response.resource == "/bucket1"

    def test_remove_non_empty_bucket(self, client, fake_s3):
        fake_s3.put("bucket", "object", b"data")
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket")
        assert excinfo.value.code == "BucketNotEmpty"
        assert excinfo.value.status_code == 409

    def test_make_existing_bucket(self, client):
        client.make_bucket("bucket")
        with pytest.raises(ResponseError) as excinfo:
            client.make_bucket("bucket")
        assert excinfo.value.code == "BucketAlreadyOwnedByYou"

    @pytest.mark.parametrize(
        "operation",
        [
            lambda c: c.make_bucket("bucket$$$", "private"),
            lambda c: c.bucket_exists("bucket."),
            lambda c: c.set_bucket_acl("bucket-.", "public-read-write"),
            lambda c: c.get_bucket_acl("bucket??"),
            lambda c: c.remove_bucket("bucket??"),
        ],
    )
    def test_invalid_names_fail_before_any_request(self, client, fake_s3, operation):
        with pytest.raises(InvalidBucketNameError) as excinfo:
            operation(client)
        assert str(excinfo.value) == "The specified bucket is not valid."
        assert fake_s3.requests == []

    def test_invalid_name_in_listing_is_yielded(self, client, fake_s3):
        entries = list(client.list_objects("bucket??", recursive=True))
        assert len(entries) == 1
        assert isinstance(entries[0].err, InvalidBucketNameError)
        assert fake_s3.requests == []

    def test_unknown_acl(self, client, fake_s3):
        with pytest.raises(InvalidACLError):
            client.make_bucket("bucket", "world-writable")
        assert fake_s3.requests == []

    def test_error_without_body_maps_status(self, client, fake_s3):
        fake_s3.queue_response(400)
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket")
        assert str(excinfo.value) == "The specified bucket is not valid."

    def test_plain_text_error_body(self, client, fake_s3):
        fake_s3.queue_response(502, b"Bad gateway from proxy", {"Content-Type": "text/plain"})
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket")
        assert excinfo.value.status_code == 502
        assert excinfo.value.code == "Error"
        assert excinfo.value.response.resource == "/bucket"
        assert excinfo.value.response.request_id == "FAKE0000REQUEST"

    def test_error_body_with_code_only(self, client, fake_s3):
        fake_s3.queue_response(
            404,
            b"<Error><Code>NoSuchBucket</Code><HostId>host-7</HostId></Error>",
            {"Content-Type": "application/xml"},
        )
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket")
        assert str(excinfo.value) == "The specified bucket does not exist."
        assert excinfo.value.code == "NoSuchBucket"
        assert excinfo.value.response.host_id == "host-7"
        assert excinfo.value.response.request_id == "FAKE0000REQUEST"

    def test_html_error_body(self, client, fake_s3):
        fake_s3.queue_response(403, b"<html><body>Forbidden</body></html>", {"Content-Type": "text/html"})
        with pytest.raises(ResponseError) as excinfo:
            client.get_bucket_acl("bucket")
        assert str(excinfo.value) == "Access Denied"
        assert excinfo.value.code == "AccessDenied"
        assert excinfo.value.is_access_denied

    def test_redirects_are_not_followed(self, client, fake_s3):
        fake_s3.queue_response(301, b"", {"Location": "http://elsewhere.test/bucket"})
        with pytest.raises(ResponseError) as excinfo:
            client.remove_bucket("bucket")
        assert excinfo.value.status_code == 301
        assert len(fake_s3.requests) == 1

    def test_required_credentials(self):
        with pytest.raises(MissingCredentialsError):
            Client(ClientConfig(endpoint="s3.test"), require_credentials=True)


class _FailingAdapter(BaseAdapter):
    def __init__(self, exc: Exception) -> None:
        super().__init__()
        self.exc = exc

    def send(self, request, **kwargs):
        raise self.exc

    def close(self) -> None:
        pass


class TestTransportFailures:
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (requests.exceptions.ConnectTimeout("connect timed out"), RequestTimeoutError),
            (requests.exceptions.ReadTimeout("read timed out"), RequestTimeoutError),
            (requests.exceptions.ConnectionError("connection refused"), TransportError),
        ],
    )
    def test_transport_errors_are_translated(self, config, exc, expected):
        session = requests.Session()
        session.mount("http://", _FailingAdapter(exc))
        with Client(config, session=session) as client:
            with pytest.raises(expected):
                client.bucket_exists("bucket")

    def test_client_closes_only_its_own_session(self, config, session, monkeypatch):
        closed = []
        monkeypatch.setattr(session, "close", lambda: closed.append(True))
        Client(config, session=session).close()
        assert closed == []

        monkeypatch.setattr("s3core.storage.client.create_session", lambda cfg: session)
        with Client(config):
            pass
        assert closed == [True]
