"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Database operations (SQLite, PostgreSQL)
- Logging (Loguru)

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    Config,
    load_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
    ensure_directories,
)

# Database
from .database import (
    get_database_path,
    get_db_connection,
    init_database,
    get_setting,
    get_setting_int,
)
from .db_adapter import (
    begin_transaction,
    connect,
    get_station_db_connection,
    init_schema,
    is_postgres,
    ping,
)

# Logging
from .output import setup_loguru

__all__ = [
    # Config
    "Config",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "ensure_directories",
    # Database
    "get_database_path",
    "get_db_connection",
    "init_database",
    "get_setting",
    "get_setting_int",
    "begin_transaction",
    "connect",
    "get_station_db_connection",
    "init_schema",
    "is_postgres",
    "ping",
    # Logging
    "setup_loguru",
]
