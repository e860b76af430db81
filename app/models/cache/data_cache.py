from sqlalchemy import Column, String, DateTime, JSON
from app.db.base import BaseModel

class DataCache(BaseModel):
    """One committed cache snapshot per key (sales, warehouse stock, PO, SO)"""
    __tablename__ = 'data_cache'

    key = Column(String(150), nullable=False, unique=True, index=True)
    data = Column(JSON, nullable=False)
    cached_at = Column(DateTime(timezone=True), nullable=False)
