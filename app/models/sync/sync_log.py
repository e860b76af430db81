from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum
from app.db.base import BaseModel
from app.models.shared.enums import SyncJobStatus, SyncTrigger

class SyncLog(BaseModel):
    __tablename__ = 'sync_logs'

    job_name = Column(String(50), nullable=False, default="inventory")
    trigger = Column(SQLEnum(SyncTrigger), nullable=False)
    status = Column(SQLEnum(SyncJobStatus), nullable=False, default=SyncJobStatus.RUNNING)
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True))
    attempts = Column(Integer, default=1)
    item_count = Column(Integer)
    invoice_count = Column(Integer)
    message = Column(Text)
