"""Crawler configuration."""

import os

from modgraph.shared.config import BaseAppSettings


class CrawlerSettings(BaseAppSettings):
    """Settings for the frontier engine and the graph workflows."""

    app_name: str = "crawler"
    parallel: int = os.cpu_count() or 4
    queue_size: int = 1000
    seed_file: str = "./data/seed-modules.txt"
    normalize_paths: bool = True
    fetch_version_info: bool = False
    write_timeout: float = 30.0
    enrich_batch_size: int = 1000
    progress_every: int = 100

    class Config:
        env_prefix = "CRAWLER_"
