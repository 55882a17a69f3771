from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class LoanFailure(BaseModel):
    loan_id: int
    error: str


class ReconciliationReport(BaseModel):
    now: datetime
    finished_at: Optional[datetime] = None
    # loans examined across the overdue and due-soon passes
    scanned: int = 0
    marked_overdue: int = 0
    fines_updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[LoanFailure] = []
    reminders_sent: int = 0
    reservations_expired: int = 0
    sweep_error: Optional[str] = None
