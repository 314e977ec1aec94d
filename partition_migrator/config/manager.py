"""
Configuration Management
Immutable run configuration from profiles, config files and environment variables
"""
import os
import logging
from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Optional, Any, Tuple, Callable
from enum import Enum
from pathlib import Path
import json
import yaml
from dotenv import load_dotenv

from .profiles import DEFAULT_PROFILE, get_profile_settings
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings for one store"""
    connection_string: str = ""
    database_name: str = ""
    collection_name: str = ""
    max_pool_size: int = 100
    min_pool_size: int = 10
    max_idle_time_ms: int = 300000
    socket_timeout_ms: int = 30000
    connect_timeout_ms: int = 20000
    server_selection_timeout_ms: int = 30000
    warmup_connections: int = 0

    @property
    def namespace(self) -> str:
        return f"{self.database_name}.{self.collection_name}"


@dataclass(frozen=True)
class MigrationSettings:
    """Per-run migration settings"""
    partition_key_field: str = "partitionKey"
    id_field: str = "_id"
    max_item_count: int = 1000
    max_buffered_item_count: int = 1000
    degree_of_parallelism: int = 4
    partition_list_page_size: int = 1000
    partitions: Tuple[str, ...] = ()
    failure_log_dir: str = "."
    failure_log_prefix: str = "Partition"
    default_retry_after_ms: int = 1000
    # 0 retries throttled writes until they succeed
    throttle_max_attempts: int = 0


@dataclass(frozen=True)
class MigratorConfig:
    """Main migrator configuration"""
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    log_file: Optional[str] = None
    profile: str = DEFAULT_PROFILE
    source_database: DatabaseSettings = field(default_factory=DatabaseSettings)
    destination_database: DatabaseSettings = field(default_factory=DatabaseSettings)
    migration: MigrationSettings = field(default_factory=MigrationSettings)

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Plain dictionary view, connection strings masked by default"""
        data = asdict(self)
        data["environment"] = self.environment.value
        data["migration"]["partitions"] = list(self.migration.partitions)
        if mask_secrets:
            for section in ("source_database", "destination_database"):
                if data[section]["connection_string"]:
                    data[section]["connection_string"] = "***"
        return data


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_partitions(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(item).strip() for item in value if str(item).strip())


# (field, environment suffix, caster)
_DATABASE_FIELDS = [
    ("connection_string", "CONNECTION_STRING", str),
    ("database_name", "NAME", str),
    ("collection_name", "COLLECTION", str),
    ("max_pool_size", "MAX_POOL_SIZE", int),
    ("min_pool_size", "MIN_POOL_SIZE", int),
    ("max_idle_time_ms", "MAX_IDLE_TIME_MS", int),
    ("socket_timeout_ms", "SOCKET_TIMEOUT_MS", int),
    ("connect_timeout_ms", "CONNECT_TIMEOUT_MS", int),
    ("server_selection_timeout_ms", "SERVER_SELECTION_TIMEOUT_MS", int),
    ("warmup_connections", "WARMUP_CONNECTIONS", int),
]

_MIGRATION_FIELDS = [
    ("partition_key_field", "PARTITION_KEY_FIELD", str),
    ("id_field", "ID_FIELD", str),
    ("max_item_count", "MAX_ITEM_COUNT", int),
    ("max_buffered_item_count", "MAX_BUFFERED_ITEM_COUNT", int),
    ("degree_of_parallelism", "DEGREE_OF_PARALLELISM", int),
    ("partition_list_page_size", "PARTITION_LIST_PAGE_SIZE", int),
    ("partitions", "PARTITIONS", _as_partitions),
    ("failure_log_dir", "FAILURE_LOG_DIR", str),
    ("failure_log_prefix", "FAILURE_LOG_PREFIX", str),
    ("default_retry_after_ms", "DEFAULT_RETRY_AFTER_MS", int),
    ("throttle_max_attempts", "THROTTLE_MAX_ATTEMPTS", int),
]


class ConfigManager:
    """
    Configuration manager with support for:
    - Named profiles
    - Configuration files (JSON/YAML/dotenv)
    - Environment variables
    - Validation
    """

    def __init__(self, config_prefix: str = "MIGRATOR", load_env_files: bool = True):
        self.config_prefix = config_prefix
        self.config: Optional[MigratorConfig] = None
        if load_env_files:
            self._load_environment_variables()

    def _load_environment_variables(self):
        """Load environment variables from .env files"""
        env_files = ['.env_local', '.env', 'config.env']
        for env_file in env_files:
            if Path(env_file).exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment variables from {env_file}")
                break

    def load_config(self,
                    config_file: Optional[str] = None,
                    profile: Optional[str] = None,
                    overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> MigratorConfig:
        """Load configuration: defaults < profile < file < environment < overrides"""
        config_data: Dict[str, Any] = {"source_database": {}, "destination_database": {}, "migration": {}}

        file_data: Dict[str, Any] = {}
        if config_file:
            file_data = self._load_config_file(config_file)

        profile_name = (profile
                        or os.getenv(f"{self.config_prefix}_PROFILE")
                        or file_data.get("profile")
                        or DEFAULT_PROFILE)
        config_data["profile"] = profile_name
        config_data["migration"].update(get_profile_settings(profile_name))

        self._merge(config_data, file_data)
        self._merge(config_data, self._load_from_environment())
        if overrides:
            self._merge(config_data, overrides)
        config_data["profile"] = profile_name

        self.config = self._create_config_object(config_data)
        self._validate_config(self.config)

        logger.info(f"Configuration loaded for {self.config.environment.value} environment "
                    f"(profile: {self.config.profile})")
        return self.config

    def _load_config_file(self, config_file: str) -> Dict[str, Any]:
        """Load configuration from JSON, YAML, or dotenv file"""
        file_path = Path(config_file)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        if (file_path.suffix.lower() == '.env' or
                file_path.name.startswith('.env') or
                file_path.name.endswith('.env')):
            # Values land in the environment and are picked up below
            load_dotenv(file_path, override=True)
            return {}

        with open(file_path, 'r') as f:
            if file_path.suffix.lower() == '.json':
                data = json.load(f)
            elif file_path.suffix.lower() in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {file_path.suffix}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {config_file} must contain a mapping")
        return data

    def _env(self, name: str) -> Optional[str]:
        value = os.getenv(f"{self.config_prefix}_{name}")
        if value is None or value == "":
            return None
        return value

    def _read_fields(self, prefix: str, field_specs) -> Dict[str, Any]:
        section: Dict[str, Any] = {}
        for field_name, suffix, caster in field_specs:
            raw = self._env(f"{prefix}{suffix}")
            if raw is None:
                continue
            try:
                section[field_name] = caster(raw)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid value for {self.config_prefix}_{prefix}{suffix}: {raw!r}"
                )
        return section

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration from environment variables that are set"""
        config: Dict[str, Any] = {}

        if self._env("ENVIRONMENT"):
            config["environment"] = self._env("ENVIRONMENT")
        if self._env("LOG_LEVEL"):
            config["log_level"] = self._env("LOG_LEVEL")
        if self._env("LOG_FILE"):
            config["log_file"] = self._env("LOG_FILE")

        config["source_database"] = self._read_fields("SOURCE_DB_", _DATABASE_FIELDS)
        config["destination_database"] = self._read_fields("DESTINATION_DB_", _DATABASE_FIELDS)
        config["migration"] = self._read_fields("", _MIGRATION_FIELDS)

        return config

    @staticmethod
    def _merge(base: Dict[str, Any], update: Dict[str, Any]):
        for key, value in update.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key].update(value)
            else:
                base[key] = value

    @staticmethod
    def _known(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        allowed = {f.name for f in fields(cls)}
        unknown = set(values) - allowed
        if unknown:
            raise ConfigurationError(f"Unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
        return values

    def _create_config_object(self, config_data: Dict[str, Any]) -> MigratorConfig:
        """Create MigratorConfig object from dictionary"""
        try:
            environment = Environment(config_data.get("environment", Environment.DEVELOPMENT.value))
        except ValueError:
            raise ConfigurationError(f"Unknown environment: {config_data.get('environment')}")

        migration = dict(config_data.get("migration", {}))
        if "partitions" in migration:
            migration["partitions"] = _as_partitions(migration["partitions"] or ())

        return MigratorConfig(
            environment=environment,
            log_level=str(config_data.get("log_level", "INFO")).upper(),
            log_file=config_data.get("log_file"),
            profile=config_data.get("profile", DEFAULT_PROFILE),
            source_database=DatabaseSettings(**self._known(DatabaseSettings, config_data.get("source_database", {}))),
            destination_database=DatabaseSettings(
                **self._known(DatabaseSettings, config_data.get("destination_database", {}))),
            migration=MigrationSettings(**self._known(MigrationSettings, migration)),
        )

    def _validate_config(self, config: MigratorConfig):
        """Validate configuration"""
        errors = []

        for label, settings in (("Source", config.source_database), ("Destination", config.destination_database)):
            if not settings.connection_string:
                errors.append(f"{label} database connection string is required")
            if not settings.database_name or not settings.collection_name:
                errors.append(f"{label} database and collection names are required")
            if settings.max_pool_size < settings.min_pool_size:
                errors.append(f"{label} max pool size must be >= min pool size")

        migration = config.migration
        if not migration.partition_key_field:
            errors.append("Partition key field name is required")
        if not migration.id_field:
            errors.append("Id field name is required")
        if migration.max_item_count <= 0:
            errors.append("Max item count must be > 0")
        if migration.max_buffered_item_count <= 0:
            errors.append("Max buffered item count must be > 0")
        if migration.degree_of_parallelism <= 0:
            errors.append("Degree of parallelism must be > 0")
        if migration.partition_list_page_size <= 0:
            errors.append("Partition list page size must be > 0")
        if migration.default_retry_after_ms < 0:
            errors.append("Default retry-after must be >= 0")
        if migration.throttle_max_attempts < 0:
            errors.append("Throttle max attempts must be >= 0 (0 retries until success)")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_config(self) -> MigratorConfig:
        """Get current configuration"""
        if self.config is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self.config
