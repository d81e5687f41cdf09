from datetime import datetime

from sqlalchemy import Column, DateTime


class TimestampMixin:
    """Row bookkeeping timestamps, naive UTC like every stored moment."""

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow,
                        onupdate=datetime.utcnow, nullable=False)
