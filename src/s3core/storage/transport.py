import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from s3core.config.client_config import ClientConfig

POOL_CONNECTIONS = 10
POOL_MAXSIZE = 32


def create_session(config: ClientConfig) -> requests.Session:
    # Only connection setup is retried; a request that reached the server is never replayed.
    retries = Retry(
        total=config.connect_retries,
        connect=config.connect_retries,
        read=0,
        redirect=0,
        status=0,
        other=0,
        backoff_factor=0.5,
        raise_on_status=False,
        raise_on_redirect=False,
    )
    adapter = HTTPAdapter(pool_connections=POOL_CONNECTIONS, pool_maxsize=POOL_MAXSIZE, max_retries=retries)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": config.user_agent})
    return session


def request_timeout(config: ClientConfig, override: float | None = None) -> float | None:
    return override if override is not None else config.timeout
