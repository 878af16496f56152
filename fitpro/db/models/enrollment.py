from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fitpro.db.base import Base


class Enrollment(Base):
    """
    Per-program access record.

    Created by one-time program purchases. Grants access to a single program
    independently of the user's subscription status.
    """
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    program_id = Column(String, nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("user_id", "program_id", name="uq_enrollment_user_program"),
    )
