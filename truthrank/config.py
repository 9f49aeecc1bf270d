import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """TruthRank engine configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///truthrank.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')  # Empty string disables file logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', '')  # Overrides the DEBUG toggle, e.g. WARNING
    REDIS_URL = os.getenv('REDIS_URL', '')

    # Interactive recalculation
    RECALCULATION_COOLDOWN_SECONDS = int(os.getenv('RECALCULATION_COOLDOWN_SECONDS', 3600))
    STORE_CONFLICT_MAX_RETRIES = int(os.getenv('STORE_CONFLICT_MAX_RETRIES', 3))

    # Inactivity detection
    DORMANCY_THRESHOLD_DAYS = int(os.getenv('DORMANCY_THRESHOLD_DAYS', 30))

    # Leaderboard cache
    LEADERBOARD_TTL_SECONDS = int(os.getenv('LEADERBOARD_TTL_SECONDS', 3600))
    LEADERBOARD_TOP_N = int(os.getenv('LEADERBOARD_TOP_N', 10))

    # Batch jobs
    BATCH_PAGE_SIZE = int(os.getenv('BATCH_PAGE_SIZE', 100))
    BATCH_MAX_WORKERS = int(os.getenv('BATCH_MAX_WORKERS', 10))
    BATCH_PAGE_TIMEOUT_SECONDS = float(os.getenv('BATCH_PAGE_TIMEOUT_SECONDS', 60))
    JOB_LOCK_TTL_SECONDS = int(os.getenv('JOB_LOCK_TTL_SECONDS', 540))

    # Schedules (wall-clock time in SCHEDULE_TIMEZONE)
    SCHEDULE_TIMEZONE = os.getenv('SCHEDULE_TIMEZONE', 'UTC')
    DAILY_RECALCULATION_HOUR = int(os.getenv('DAILY_RECALCULATION_HOUR', 2))
    INACTIVITY_DETECTION_HOUR = int(os.getenv('INACTIVITY_DETECTION_HOUR', 3))
    INACTIVITY_DETECTION_WEEKDAY = int(os.getenv('INACTIVITY_DETECTION_WEEKDAY', 6))  # Monday=0, Sunday=6

    @classmethod
    def get_async_database_url(cls) -> str:
        """Get the database URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.RECALCULATION_COOLDOWN_SECONDS < 0:
            raise ValueError("RECALCULATION_COOLDOWN_SECONDS must not be negative")
        if cls.DORMANCY_THRESHOLD_DAYS <= 0:
            raise ValueError("DORMANCY_THRESHOLD_DAYS must be positive")
        if cls.LEADERBOARD_TTL_SECONDS <= 0 or cls.LEADERBOARD_TOP_N <= 0:
            raise ValueError("LEADERBOARD_TTL_SECONDS and LEADERBOARD_TOP_N must be positive")
        if cls.BATCH_PAGE_SIZE <= 0 or cls.BATCH_MAX_WORKERS <= 0:
            raise ValueError("BATCH_PAGE_SIZE and BATCH_MAX_WORKERS must be positive")
        if cls.BATCH_PAGE_TIMEOUT_SECONDS <= 0:
            raise ValueError("BATCH_PAGE_TIMEOUT_SECONDS must be positive")
        if not 0 <= cls.DAILY_RECALCULATION_HOUR <= 23 or not 0 <= cls.INACTIVITY_DETECTION_HOUR <= 23:
            raise ValueError("Schedule hours must be between 0 and 23")
        if not 0 <= cls.INACTIVITY_DETECTION_WEEKDAY <= 6:
            raise ValueError("INACTIVITY_DETECTION_WEEKDAY must be between 0 (Monday) and 6 (Sunday)")
