"""Module proxy client configuration."""

from modgraph.shared.config import BaseAppSettings


class GoProxySettings(BaseAppSettings):
    """Settings for the proxy client and its retry policy."""

    app_name: str = "goproxy"
    proxy_url: str = "https://proxy.golang.org"
    index_url: str = "https://index.golang.org"
    request_timeout: float = 3.0
    cache_size: int = 1000
    max_tries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 5.0
    index_page_limit: int = 2000

    class Config:
        env_prefix = "GOPROXY_"
