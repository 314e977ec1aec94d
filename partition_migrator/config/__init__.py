"""
Configuration
"""
from .manager import (
    ConfigManager,
    DatabaseSettings,
    Environment,
    MigrationSettings,
    MigratorConfig,
)
from .profiles import PROFILES, DEFAULT_PROFILE, get_profile, list_profiles
