"""
Core utilities and shared components for the Hot or Slop deck services.
"""

from .logging_config import (
    setup_logger,
    get_test_logger,
    get_api_logger,
    get_cli_logger
)

__all__ = [
    'setup_logger',
    'get_test_logger',
    'get_api_logger',
    'get_cli_logger'
]
