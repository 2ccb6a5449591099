"""SQLAlchemy models for durable gatekeeper state."""

from sqlalchemy import JSON, Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from groupgate.infra.database import Base

# The configuration document lives in a single row
CONFIG_ROW_ID = 1


class GroupConfig(Base):
    __tablename__ = "group_config"

    id = Column(Integer, primary_key=True, default=CONFIG_ROW_ID)
    greeting_text = Column(Text, nullable=False)
    greeting_entities = Column(JSON, default=list)  # list of MessageEntity dicts
    pending_user_ids = Column(JSON, default=list)  # sorted list of Telegram user ids
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
