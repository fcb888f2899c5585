"""Settings and logging shared by the storage subsystem."""

from .logging_config import get_log_directory, setup_production_logging
from .settings import StorageSettings

__all__ = ["StorageSettings", "setup_production_logging", "get_log_directory"]
