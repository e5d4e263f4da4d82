"""Logging utilities package with factory, CSV management, and service."""
from logging_utils.logger_factory import LoggerFactory
from logging_utils.csv_header_manager import CSVHeaders, CSVHeaderManager
from logging_utils.csv_logger import CSVLogger

__all__ = [
    'LoggerFactory',
    'CSVHeaders',
    'CSVHeaderManager',
    'CSVLogger',
]
