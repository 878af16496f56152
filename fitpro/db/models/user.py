from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fitpro.db.base import Base

ROLE_MEMBER = "MEMBER"
ROLE_TRAINER = "TRAINER"
ROLE_ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_MEMBER)  # MEMBER | TRAINER | ADMIN
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Subscriber record, kept in step with Stripe
    subscription_id = Column(String, nullable=True, index=True)
    subscription_price_id = Column(String, nullable=True)
    subscription_status = Column(String, nullable=True)  # active | past_due | canceled | trialing | incomplete | inactive | ...
    subscription_start_date = Column(DateTime, nullable=True)  # naive UTC
    subscription_end_date = Column(DateTime, nullable=True)  # naive UTC, display only

    enrollments = relationship("Enrollment", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
