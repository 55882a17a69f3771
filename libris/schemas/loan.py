from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from libris.core.models import LoanStatus


class Loan(BaseModel):
    id: int
    patron_id: str
    item_id: int
    book_id: int
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus
    fine: float
    renew_count: int
    days_overdue: int = 0
    issued_by: Optional[str] = None

    class Config:
        from_attributes = True
