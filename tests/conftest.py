"""Pytest configuration and fixtures."""

import pytest

from repocdn.backends.remote.memory import MemoryRemoteStore
from repocdn.caching import FileIndex
from repocdn.config import Config
from repocdn.service import RepoCDN

CDN_DOMAIN = "https://cdn.example.com"


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "store": {
            "backend": "memory",
            "owner": "octo",
            "repo": "cdn-test",
            "branch": "main",
        },
        "cdn": {
            "domain": CDN_DOMAIN,
            "default_directory": "media",
            "refresh_interval_seconds": 3600,
        },
        "server": {"port": 3001},
    }


@pytest.fixture
def store() -> MemoryRemoteStore:
    """Create an empty memory remote store."""
    return MemoryRemoteStore(chunk_size=4)


@pytest.fixture
def index() -> FileIndex:
    """Create an empty file index."""
    return FileIndex(cdn_domain=CDN_DOMAIN)


@pytest.fixture
def cdn(sample_config_dict, store: MemoryRemoteStore) -> RepoCDN:
    """Create a service wired to the memory store."""
    return RepoCDN(Config.from_dict(sample_config_dict), store=store)
