from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlsplit

DEFAULT_REGION = "us-east-1"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_USER_AGENT = "s3core/0.1"


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str

    def __repr__(self) -> str:
        return f"Credentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


@dataclass(frozen=True)
class ClientConfig:
    endpoint: str
    access_key_id: str | None = None
    secret_access_key: str | None = None
    secure: bool = True
    region: str = DEFAULT_REGION
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
    connect_retries: int = 0
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self):
        if not self.endpoint or not self.endpoint.strip():
            raise ValueError("ClientConfig.endpoint must be a non-empty string.")
        parts = urlsplit(self._endpoint_with_scheme())
        if parts.scheme not in {"http", "https"}:
            raise ValueError(f"ClientConfig.endpoint must use http or https, got: {self.endpoint!r}")
        if not parts.hostname:
            raise ValueError(f"ClientConfig.endpoint has no host: {self.endpoint!r}")
        if parts.path not in {"", "/"} or parts.query or parts.fragment:
            raise ValueError(f"ClientConfig.endpoint must be host[:port] only, got: {self.endpoint!r}")
        try:
            parts.port
        except ValueError as exc:
            raise ValueError(f"ClientConfig.endpoint has an invalid port: {self.endpoint!r}") from exc

        has_access = bool(self.access_key_id and self.access_key_id.strip())
        has_secret = bool(self.secret_access_key and self.secret_access_key.strip())
        if has_access != has_secret:
            raise ValueError(
                "ClientConfig requires all-or-nothing credentials: "
                "set both access_key_id and secret_access_key, or neither for anonymous access."
            )
        if not self.region or not self.region.strip():
            raise ValueError("ClientConfig.region must be a non-empty string.")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"ClientConfig.timeout must be > 0, got: {self.timeout}")
        if self.connect_retries < 0:
            raise ValueError(f"ClientConfig.connect_retries must be >= 0, got: {self.connect_retries}")

    def _endpoint_with_scheme(self) -> str:
        endpoint = self.endpoint.strip()
        if "://" in endpoint:
            return endpoint
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{endpoint}"

    @property
    def base_url(self) -> str:
        """``scheme://host[:port]`` without a trailing slash."""
        parts = urlsplit(self._endpoint_with_scheme())
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def is_secure(self) -> bool:
        return self.base_url.startswith("https://")

    @property
    def credentials(self) -> Credentials | None:
        if self.access_key_id and self.secret_access_key:
            return Credentials(self.access_key_id.strip(), self.secret_access_key.strip())
        return None

    @property
    def is_anonymous(self) -> bool:
        return self.credentials is None

    def __repr__(self) -> str:
        secret = "'***'" if self.secret_access_key else "None"
        return (
            f"ClientConfig(endpoint={self.endpoint!r}, access_key_id={self.access_key_id!r}, "
            f"secret_access_key={secret}, region={self.region!r}, timeout={self.timeout!r})"
        )


def require_env(var_name: str) -> str:
    value = os.getenv(var_name)
    if value is None or not value.strip():
        raise ValueError(f"Environment variable '{var_name}' is required but not set.")
    return value


def _env_bool(var_name: str, default: bool) -> bool:
    raw = os.getenv(var_name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_client_config() -> ClientConfig:
    """Build a ClientConfig from ``S3_*`` / ``AWS_*`` environment variables."""
    endpoint = require_env("S3_ENDPOINT")
    access_key = os.getenv("S3_ACCESS_KEY") or None
    secret_key = os.getenv("S3_SECRET_KEY") or None
    region = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or DEFAULT_REGION
    raw_timeout = os.getenv("S3_TIMEOUT")
    timeout = DEFAULT_TIMEOUT_SECONDS
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise ValueError(f"S3_TIMEOUT must be a number of seconds, got: {raw_timeout!r}") from exc
    return ClientConfig(
        endpoint=endpoint,
        access_key_id=access_key,
        secret_access_key=secret_key,
        secure=_env_bool("S3_SECURE", True),
        region=region,
        timeout=timeout,
    )
