"""
Result records for the unattended batch jobs.

Both records are returned to the scheduler or CLI for observability.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class RankRecalculationJobResult:
    started_at: datetime
    completed_at: Optional[datetime] = None
    users_processed: int = 0
    upgrades_triggered: int = 0
    errors: int = 0
    error_details: List[Dict[str, str]] = field(default_factory=list)
    skipped: bool = False  # Another run held the job lock

    def record_error(self, user_id: str, error: str):
        self.errors += 1
        self.error_details.append({'user_id': user_id, 'error': error})


@dataclass
class InactivityDetectionJobResult:
    started_at: datetime
    completed_at: Optional[datetime] = None
    inactive_users_found: int = 0
    penalties_applied: int = 0
    notifications_sent: int = 0
    errors: int = 0
    error_details: List[Dict[str, str]] = field(default_factory=list)
    skipped: bool = False  # Another run held the job lock

    def record_error(self, user_id: str, error: str):
        self.errors += 1
        self.error_details.append({'user_id': user_id, 'error': error})
