"""
Profile-based Configuration System

Pre-configured migration profiles for different use cases:
- dev: small pages and low parallelism for local testing
- default: balanced settings for a typical provisioned destination
- throttle-friendly: gentle load for destinations that rate limit heavily
- bulk: large pages and high parallelism for well provisioned destinations
"""

from typing import Dict, Any, List
import logging

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"

# Profile settings map onto MigrationSettings fields
PROFILES: Dict[str, Dict[str, Any]] = {
    "dev": {
        "description": "Development and testing with minimal load",
        "settings": {
            "max_item_count": 100,
            "max_buffered_item_count": 100,
            "degree_of_parallelism": 2,
            "partition_list_page_size": 100,
        },
    },
    "default": {
        "description": "Balanced page size and parallelism",
        "settings": {
            "max_item_count": 1000,
            "max_buffered_item_count": 1000,
            "degree_of_parallelism": 4,
            "partition_list_page_size": 1000,
        },
    },
    "throttle-friendly": {
        "description": "Low write pressure for heavily rate limited destinations",
        "settings": {
            "max_item_count": 200,
            "max_buffered_item_count": 200,
            "degree_of_parallelism": 2,
            "default_retry_after_ms": 2000,
        },
    },
    "bulk": {
        "description": "Large pages and wide fan-out for well provisioned destinations",
        "settings": {
            "max_item_count": 5000,
            "max_buffered_item_count": 10000,
            "degree_of_parallelism": 16,
            "partition_list_page_size": 5000,
        },
    },
}


def get_profile(name: str) -> Dict[str, Any]:
    """Get a profile by name"""
    if name not in PROFILES:
        raise ConfigurationError(
            f"Unknown profile '{name}'. Available profiles: {', '.join(list_profiles())}"
        )
    return PROFILES[name]


def list_profiles() -> List[str]:
    """List available profile names"""
    return list(PROFILES.keys())


def get_profile_settings(name: str) -> Dict[str, Any]:
    """Copy of a profile's migration settings"""
    settings = dict(get_profile(name)["settings"])
    logger.debug(f"Using profile '{name}': {settings}")
    return settings
