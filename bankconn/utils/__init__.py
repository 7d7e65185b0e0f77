"""
Utilities package initialization.
"""
from .logger import get_logger, log_business_event, log_performance, setup_logging
from .fingerprint import content_fingerprint

__all__ = ["get_logger", "log_business_event", "log_performance", "setup_logging", "content_fingerprint"]
