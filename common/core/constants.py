from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class StorageBackend(str, Enum):
    """Key-value storage backends."""

    MEMORY = "memory"  # Volatile, per-process
    REDIS = "redis"  # Durable
