"""
Utility functions and logging for Demotape
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    OperationLogger,
    create_operation_logger,
    get_current_log_file
)
from .helpers import (
    encode_header_value,
    check_timeout,
    parse_timestamp,
    format_relative_time,
    format_file_size,
    format_timestamp
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'OperationLogger',
    'create_operation_logger',
    'get_current_log_file',

    # Helper exports
    'encode_header_value',
    'check_timeout',
    'parse_timestamp',
    'format_relative_time',
    'format_file_size',
    'format_timestamp'
]
