"""
Settings for the scam analyzer.

Values come from environment variables (optionally loaded from a .env file
via python-dotenv) and are collected into a plain AnalysisSettings object
that the orchestrator consumes at construction.

File: scam_analyzer/settings.py
"""

import logging
import logging.config
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .shared.constants import (
    ANALYSIS_TIMEOUT_SECONDS,
    ANALYSIS_VERSION,
    BATCH_CONCURRENCY,
    BYTECODE_CACHE_MAX_ENTRIES,
    BYTECODE_CACHE_TTL_SECONDS,
)
from .shared.exceptions import ValidationError
from .shared.validation import is_http_url, is_safe_url, is_valid_address

logger = logging.getLogger(__name__)

ENV_PREFIX = 'SCAM_ANALYZER_'


# =============================================================================
# HELPER FUNCTIONS FOR ENVIRONMENT VARIABLES
# =============================================================================

def get_env_str(key: str, default: str = '') -> str:
    """Read a prefixed environment variable, falling back to the bare name."""
    return os.getenv(f'{ENV_PREFIX}{key}', os.getenv(key, default))


def get_env_int(key: str, default: str) -> int:
    """Safely convert environment variable to integer, handling float strings."""
    return int(float(get_env_str(key, default)))


def get_env_float(key: str, default: str) -> float:
    return float(get_env_str(key, default))


def get_env_bool(key: str, default: str) -> bool:
    """Convert environment variable to boolean."""
    value = get_env_str(key, default).lower()
    return value in ('true', '1', 'yes', 'on')


def get_env_list(key: str, default: str = '') -> list:
    """Convert environment variable to list, filtering empty values."""
    value = get_env_str(key, default)
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


# =============================================================================
# SETTINGS OBJECT
# =============================================================================

@dataclass
class AnalysisSettings:
    """Runtime configuration consumed by the analysis orchestrator."""
    app_name: str = 'scam-analyzer'
    app_version: str = ANALYSIS_VERSION
    environment: str = 'development'
    log_level: str = 'INFO'

    enable_security_warnings: bool = True
    require_explicit_consent: bool = True

    rpc_url: Optional[str] = None
    # Local development nodes (localhost, private ranges) are accepted unless disabled
    allow_local_rpc: bool = True
    analysis_timeout: float = ANALYSIS_TIMEOUT_SECONDS

    cache_ttl_seconds: float = BYTECODE_CACHE_TTL_SECONDS
    cache_max_entries: int = BYTECODE_CACHE_MAX_ENTRIES
    batch_concurrency: int = BATCH_CONCURRENCY

    extra_malicious_addresses: List[str] = field(default_factory=list)

    def validate(self) -> 'AnalysisSettings':
        """
        Check value ranges.

        Raises:
            ValidationError: On the first invalid setting
        """
        if self.analysis_timeout <= 0:
            raise ValidationError("analysis_timeout must be positive", field="analysis_timeout")
        if self.cache_ttl_seconds <= 0:
            raise ValidationError("cache_ttl_seconds must be positive", field="cache_ttl_seconds")
        if self.cache_max_entries < 1:
            raise ValidationError("cache_max_entries must be at least 1", field="cache_max_entries")
        if self.batch_concurrency < 1:
            raise ValidationError("batch_concurrency must be at least 1", field="batch_concurrency")
        if self.rpc_url is not None:
            if not is_http_url(self.rpc_url):
                raise ValidationError(f"Unsupported RPC URL: {self.rpc_url}", field="rpc_url")
            if not self.allow_local_rpc and not is_safe_url(self.rpc_url):
                raise ValidationError(
                    f"RPC URL points at a loopback or private host: {self.rpc_url}", field="rpc_url"
                )
        for address in self.extra_malicious_addresses:
            if not is_valid_address(address):
                raise ValidationError(
                    f"Invalid malicious address in configuration: {address}",
                    field="extra_malicious_addresses",
                    value=address,
                )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'app_name': self.app_name,
            'app_version': self.app_version,
            'environment': self.environment,
            'log_level': self.log_level,
            'enable_security_warnings': self.enable_security_warnings,
            'require_explicit_consent': self.require_explicit_consent,
            'rpc_configured': bool(self.rpc_url),
            'allow_local_rpc': self.allow_local_rpc,
            'analysis_timeout': self.analysis_timeout,
            'cache_ttl_seconds': self.cache_ttl_seconds,
            'cache_max_entries': self.cache_max_entries,
            'batch_concurrency': self.batch_concurrency,
            'extra_malicious_addresses': len(self.extra_malicious_addresses),
        }


def load_settings(env_file: Optional[Path] = None) -> AnalysisSettings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional .env path; defaults to python-dotenv's lookup

    Returns:
        Validated AnalysisSettings
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    settings = AnalysisSettings(
        app_name=get_env_str('APP_NAME', 'scam-analyzer'),
        app_version=get_env_str('APP_VERSION', ANALYSIS_VERSION),
        environment=get_env_str('ENVIRONMENT', 'development'),
        log_level=get_env_str('LOG_LEVEL', 'INFO').upper(),
        enable_security_warnings=get_env_bool('ENABLE_SECURITY_WARNINGS', 'True'),
        require_explicit_consent=get_env_bool('REQUIRE_EXPLICIT_CONSENT', 'True'),
        rpc_url=get_env_str('RPC_URL') or None,
        allow_local_rpc=get_env_bool('ALLOW_LOCAL_RPC', 'True'),
        analysis_timeout=get_env_float('ANALYSIS_TIMEOUT', str(ANALYSIS_TIMEOUT_SECONDS)),
        cache_ttl_seconds=get_env_float('CACHE_TTL_SECONDS', str(BYTECODE_CACHE_TTL_SECONDS)),
        cache_max_entries=get_env_int('CACHE_MAX_ENTRIES', str(BYTECODE_CACHE_MAX_ENTRIES)),
        batch_concurrency=get_env_int('BATCH_CONCURRENCY', str(BATCH_CONCURRENCY)),
        extra_malicious_addresses=get_env_list('EXTRA_MALICIOUS_ADDRESSES'),
    )
    logger.debug(f"Loaded settings: {settings.to_dict()}")
    return settings.validate()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '[{levelname}] {asctime} {name} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '[{levelname}] {asctime} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'scam_analyzer': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}


def configure_logging(level: str = 'INFO', verbose: bool = False) -> None:
    """Apply the package logging configuration. Never called on import."""
    config = {
        **LOGGING,
        'handlers': {
            'console': {**LOGGING['handlers']['console'], 'formatter': 'verbose' if verbose else 'simple'},
        },
        'loggers': {
            'scam_analyzer': {**LOGGING['loggers']['scam_analyzer'], 'level': level.upper()},
        },
    }
    logging.config.dictConfig(config)
