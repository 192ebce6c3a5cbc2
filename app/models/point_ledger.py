from datetime import datetime

from pydantic import BaseModel, Field


class PointLedgerEntry(BaseModel):
    """Append-only record of one balance change. Never updated or deleted."""
    user_id: str
    amount: int  # positive = credit, negative = reversal
    type: str  # adgem_conversion, adgem_reversal, cpx_conversion, ...
    source: str
    transaction_id: str
    description: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
