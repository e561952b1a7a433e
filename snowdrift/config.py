"""Manages configuration variables.

This module provides:
- Config: a base class for pulling environment variables
- DevelopmentConfig: a dev config class that needs no ZooKeeper
- ProductionConfig: a config class for production
- TestingConfig: a config class for the test suite
- config: a dict for getting configuration depending on environment
"""

import os

from dotenv import load_dotenv

from .constants import DEFAULT_EPOCH, DEFAULT_NODE_PREFIX, DEFAULT_ROOT_PATH

load_dotenv()


class Config:
    """Base class for pulling environment variables."""

    COORDINATOR = os.getenv("COORDINATOR", "zookeeper")

    ZK_HOSTS = os.getenv("ZK_HOSTS", "zookeeper:2181")
    ZK_ROOT_PATH = os.getenv("ZK_ROOT_PATH", DEFAULT_ROOT_PATH)
    ZK_NODE_PREFIX = os.getenv("ZK_NODE_PREFIX", DEFAULT_NODE_PREFIX)
    ZK_SESSION_TIMEOUT = float(os.getenv("ZK_SESSION_TIMEOUT", 10.0))
    ZK_CONNECT_TIMEOUT = float(os.getenv("ZK_CONNECT_TIMEOUT", 15.0))
    ZK_RETRIES = int(os.getenv("ZK_RETRIES", 3))
    ZK_BACKOFF_BASE = float(os.getenv("ZK_BACKOFF_BASE", 1.0))
    ZK_BACKOFF_MAX = float(os.getenv("ZK_BACKOFF_MAX", 8.0))

    SNOWFLAKE_EPOCH = int(os.getenv("SNOWFLAKE_EPOCH", DEFAULT_EPOCH))
    REGRESSION_THRESHOLD_MS = int(os.getenv("REGRESSION_THRESHOLD_MS", 5))
    REGRESSION_CHECKS = int(os.getenv("REGRESSION_CHECKS", 3))
    SPIN_LIMIT = float(os.getenv("SPIN_LIMIT", 1.0))

    LOG_PATH = os.getenv("LOG_PATH", "logs/app.log")
    LOG_REQUESTS = os.getenv("LOG_REQUESTS", "False").lower() == "true"


class DevelopmentConfig(Config):
    """Config class with DEBUG on."""

    DEBUG = True
    COORDINATOR = os.getenv("COORDINATOR", "memory")


class ProductionConfig(Config):
    """Config class with DEBUG off."""

    DEBUG = False


class TestingConfig(Config):
    """Config class with an in-memory coordinator and no retry waits."""

    DEBUG = False
    TESTING = True
    COORDINATOR = "memory"
    ZK_RETRIES = 0
    ZK_BACKOFF_BASE = 0.0
    LOG_PATH = os.getenv("TEST_LOG_PATH", "logs/test.log")


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
