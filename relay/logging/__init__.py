"""Logging helpers for the relay dispatcher."""

from .logger import get_log_dir, get_logger, is_verbose_logging, setup_logging

__all__ = ['get_logger', 'setup_logging', 'get_log_dir', 'is_verbose_logging']
