"""
azchroot Utils Module

- logger: Logging setup and configuration
- secrets: Process-wide secret redaction filter

Usage:
    from azchroot.utils import setup_logger, LOG_SECRET_FILTER
"""

from .logger import setup_logger, parse_module_levels, install_secret_filter
from .secrets import LOG_SECRET_FILTER, SecretFilter, REDACTED

__all__ = [
    'setup_logger',
    'parse_module_levels',
    'install_secret_filter',
    'LOG_SECRET_FILTER',
    'SecretFilter',
    'REDACTED',
]
