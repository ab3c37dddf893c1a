"""
Caching utilities for the MicroLend marketplace.

Only read-mostly listings are cached. Anything the accept path depends on is
read straight from the database.
"""

import logging
from django.core.cache import cache
from typing import Any

logger = logging.getLogger('apps.common')


class CacheKeys:
    """Cache key constants for the platform."""

    OPEN_LOANS = "loans:open"
    FUNDRAISERS = "fundraisers:all"

    # Cache timeouts (in seconds)
    DEFAULT_TIMEOUT = 300  # 5 minutes
    LOAN_TIMEOUT = 600     # 10 minutes


class CacheManager:
    """Centralized cache management for the marketplace."""

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        """Get value from cache."""
        try:
            return cache.get(key, default)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return default

    @staticmethod
    def set(key: str, value: Any, timeout: int = CacheKeys.DEFAULT_TIMEOUT) -> bool:
        """Set value in cache."""
        try:
            cache.set(key, value, timeout)
            logger.debug(f"Cache set for key: {key}")
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")
            return False

    @staticmethod
    def delete(key: str) -> bool:
        """Delete key from cache."""
        try:
            cache.delete(key)
            logger.debug(f"Cache deleted for key: {key}")
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")
            return False


class LoanCache:
    """Cache management for the open loan listing donors browse."""

    @staticmethod
    def get_open_loans():
        return CacheManager.get(CacheKeys.OPEN_LOANS)

    @staticmethod
    def set_open_loans(loans):
        return CacheManager.set(CacheKeys.OPEN_LOANS, loans, CacheKeys.LOAN_TIMEOUT)

    @staticmethod
    def invalidate_open_loans():
        return CacheManager.delete(CacheKeys.OPEN_LOANS)


class FundraiserCache:
    """Cache management for the public campaign listing."""

    @staticmethod
    def get_fundraisers():
        return CacheManager.get(CacheKeys.FUNDRAISERS)

    @staticmethod
    def set_fundraisers(fundraisers):
        return CacheManager.set(CacheKeys.FUNDRAISERS, fundraisers)

    @staticmethod
    def invalidate_fundraisers():
        return CacheManager.delete(CacheKeys.FUNDRAISERS)
