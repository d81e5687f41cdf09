from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin


class StaffMember(Base, TimestampMixin):
    __tablename__ = "staff_members"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    work_sessions = relationship("WorkSession", back_populates="staff_member")
    time_requests = relationship("TimeRequest", back_populates="staff_member")
    comp_configs = relationship(
        "EmployeeCompConfig",
        back_populates="staff_member",
        foreign_keys="EmployeeCompConfig.staff_id",
        order_by="EmployeeCompConfig.effective_on",
    )


# For compatibility, create aliases
Staff = StaffMember
