from sqlalchemy import Column, Integer, Date, ForeignKey, Enum, Numeric, Text, Index
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin
from ..enums.attendance_enums import TimeRequestType, TimeRequestStatus


class TimeRequest(Base, TimestampMixin):
    """PTO, UTO and make-up requests. Dates are local calendar dates."""
    __tablename__ = "time_requests"
    __table_args__ = (
        Index("ix_time_requests_staff_status", "staff_id", "status"),
        Index("ix_time_requests_range", "start_date", "end_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=False, index=True)
    request_type = Column(
        Enum(
            TimeRequestType,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        nullable=False,
    )
    status = Column(
        Enum(
            TimeRequestStatus,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        default=TimeRequestStatus.PENDING,
        nullable=False,
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    hours = Column(Numeric(7, 2), nullable=False)
    reason = Column(Text, nullable=True)

    staff_member = relationship("StaffMember", back_populates="time_requests")
