"""Logging"""
from .logger import DeduplicationFilter, get_logger, setup_logging, short_address

__all__ = ["get_logger", "setup_logging", "short_address", "DeduplicationFilter"]
