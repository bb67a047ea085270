from __future__ import annotations

import pytest
import requests

from fake_s3 import FakeS3Adapter
from s3core.config.client_config import ClientConfig
from s3core.storage.client import Client

ENDPOINT = "http://s3.test:9000"
ACCESS_KEY = "accessKey"
SECRET_KEY = "secretKey"


@pytest.fixture
def fake_s3() -> FakeS3Adapter:
    """Fresh in-memory S3 service per test."""
    return FakeS3Adapter()


@pytest.fixture
def session(fake_s3):
    """requests.Session that routes every request to the fake service."""
    session = requests.Session()
    session.mount("http://", fake_s3)
    session.mount("https://", fake_s3)
    yield session
    session.close()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(endpoint=ENDPOINT, access_key_id=ACCESS_KEY, secret_access_key=SECRET_KEY)


@pytest.fixture
def client(config, session):
    """Signed client bound to the fake service."""
    with Client(config, session=session) as client:
        yield client


@pytest.fixture
def anonymous_client(session):
    """Client without credentials; requests go out unsigned."""
    with Client(ClientConfig(endpoint=ENDPOINT), session=session) as client:
        yield client
