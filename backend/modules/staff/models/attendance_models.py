from sqlalchemy import Column, Integer, DateTime, ForeignKey, Boolean, Index
from sqlalchemy.orm import relationship
from core.database import Base


class WorkSession(Base):
    """A clock-in session. Timestamps are naive UTC."""
    __tablename__ = "work_sessions"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, index=True)
    ended_at = Column(DateTime, nullable=True, index=True)

    staff_member = relationship("StaffMember", back_populates="work_sessions")
    minute_stats = relationship("MinuteStat", back_populates="session")


class MinuteStat(Base):
    """One per-minute activity sample recorded by the desktop client."""
    __tablename__ = "minute_stats"
    __table_args__ = (
        Index("ix_minute_stats_session_minute", "session_id", "minute_start"),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("work_sessions.id"), nullable=False, index=True)
    minute_start = Column(DateTime, nullable=False, index=True)
    active = Column(Boolean, default=False, nullable=False)
    idle = Column(Boolean, default=False, nullable=False)

    session = relationship("WorkSession", back_populates="minute_stats")
