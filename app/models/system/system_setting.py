from sqlalchemy import Column, String, Text
from app.db.base import BaseModel

class SystemSetting(BaseModel):
    __tablename__ = 'system_settings'

    category = Column(String(50), nullable=False, default="GENERAL")  # GENERAL, SCHEDULER
    setting_key = Column(String(100), nullable=False, unique=True)
    setting_value = Column(Text)
    data_type = Column(String(20), default="JSON")  # STRING, INTEGER, BOOLEAN, JSON
    description = Column(Text)
