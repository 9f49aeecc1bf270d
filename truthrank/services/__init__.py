"""
Services package for the TruthRank engine.

Services own store access, caching and scheduling; the rank logic itself lives
in truthrank.operations and truthrank.utils.score_calculator.
"""

from .base import BaseService
from .rate_limiter import RateLimiter

__all__ = ['BaseService', 'RateLimiter']
