"""
Custom exceptions for the TruthRank engine with user-friendly error messages.
"""

from datetime import datetime

class TruthRankException(Exception):
    """Base exception for rank engine errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ValidationError(TruthRankException):
    """Raised when a stats document or input is malformed."""
    def __init__(self, reason: str):
        super().__init__(
            f"Validation failed: {reason}",
            "❌ Rank data is invalid and was not updated."
        )
        self.reason = reason

class CatalogError(ValidationError):
    """Raised when the rank ladder configuration is inconsistent."""
    def __init__(self, reason: str):
        super().__init__(f"rank catalog: {reason}")

class RateLimitedError(TruthRankException):
    """Raised when an interactive recalculation is requested during the cooldown."""
    def __init__(self, user_id: str, next_allowed_at: datetime, reason: str = None):
        super().__init__(
            f"Recalculation rate limited for user {user_id} until {next_allowed_at.isoformat()}",
            f"⏰ {reason or 'Please wait before refreshing your rank again.'}"
        )
        self.user_id = user_id
        self.next_allowed_at = next_allowed_at

class UserNotFoundError(TruthRankException):
    """Raised when a user has no stats document."""
    def __init__(self, user_id: str):
        super().__init__(
            f"User '{user_id}' not found",
            "❌ User not found!"
        )
        self.user_id = user_id

class StoreConflict(TruthRankException):
    """Raised when an optimistic concurrency check fails on write."""
    def __init__(self, user_id: str, expected_version: int):
        super().__init__(
            f"Version conflict for user {user_id} (expected version {expected_version})",
            "❌ Your rank was updated elsewhere. Please try again."
        )
        self.user_id = user_id
        self.expected_version = expected_version

class PartialBatchFailure(TruthRankException):
    """Raised when one user's pipeline fails during a batch job."""
    def __init__(self, user_id: str, cause: BaseException):
        super().__init__(
            f"Batch processing failed for user {user_id}: {cause}",
            "❌ Rank processing failed for this user."
        )
        self.user_id = user_id
        self.cause = cause
