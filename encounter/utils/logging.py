"""
Logging utilities for the Trait Encounter backend.

Provides standardized logger configuration following privacy rules.

PRIVACY RULES:
- NEVER log trait descriptions (they are derived from personal interviews)
- NEVER log full LLM prompts or raw LLM replies (log a short preview at most)
- NEVER log Supabase Auth tokens, Rakuten/TMDb/Gemini keys or secrets

Acceptable logging:
- Pipeline flow (e.g., "intent derived", "aggregation finished")
- Counters (e.g., "cache_hits=3 source_calls=2")
- Search keywords and catalog source names
- Sanitized error messages
"""

import logging
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get a configured logger for the specified module.

    Args:
        name: Module name (typically __name__)
        level: Optional logging level (defaults to INFO)

    Returns:
        Configured logger instance

    Usage:
        >>> from encounter.utils.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("High-level event occurred")
    """
    logger = logging.getLogger(name)

    if level is None:
        level = logging.INFO

    logger.setLevel(level)

    # Add handler if not already configured (avoid duplicate handlers)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt=LOG_FORMAT,
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def preview(text: Optional[str], limit: int = 200) -> str:
    """Short, single-line preview of an upstream payload for log messages."""
    if not text:
        return ""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."
