"""
Pydantic schemas for checkout, subscription and admin endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateCheckoutSessionRequest(BaseModel):
    """Request schema for creating a subscription checkout session."""
    success_url: Optional[str] = Field(None, description="URL to redirect after successful payment")
    cancel_url: Optional[str] = Field(None, description="URL to redirect if payment is canceled")


class CreateCheckoutSessionResponse(BaseModel):
    """Response schema for checkout session creation."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId", description="Stripe checkout session ID")
    session_url: Optional[str] = Field(None, alias="sessionUrl", description="Hosted checkout URL")


class ConfirmSubscriptionRequest(BaseModel):
    """Request schema for confirming a subscription after checkout redirect."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {"sessionId": "cs_test_..."}},
    )

    session_id: str = Field(..., alias="sessionId", min_length=1, description="Stripe checkout session ID")


class ConfirmSubscriptionResponse(BaseModel):
    """Response schema for subscription confirmation."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    status: Optional[str] = None


class GrantSubscriptionRequest(BaseModel):
    """Request schema for an admin subscription grant."""
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: Optional[str] = Field(
        None, alias="subscriptionId", description="Custom subscription id; synthesized when omitted"
    )


class SubscriberResponse(BaseModel):
    """Subscriber record of one user."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    email: str
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    subscription_price_id: Optional[str] = Field(None, alias="subscriptionPriceId")
    subscription_status: Optional[str] = Field(None, alias="subscriptionStatus")
    subscription_start_date: Optional[datetime] = Field(None, alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")


class MySubscriptionResponse(SubscriberResponse):
    has_active_subscription: bool = Field(..., alias="hasActiveSubscription")


class AdminSubscriptionResponse(BaseModel):
    success: bool = True
    user: SubscriberResponse


class AdminUserSummary(SubscriberResponse):
    full_name: str = Field(..., alias="fullName")
    role: str
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    enrollment_count: int = Field(0, alias="enrollmentCount")


class ProgramStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enrolled_program_ids: List[str] = Field(default_factory=list, alias="enrolledProgramIds")
    has_active_subscription: bool = Field(..., alias="hasActiveSubscription")


class SubscriptionPriceResponse(BaseModel):
    price: Optional[str] = Field(None, description="Formatted monthly membership price, e.g. '$29.00'")


class TopProgram(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    program_id: str = Field(..., alias="programId")
    enrollments: int


class RevenueReportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_users: int = Field(..., alias="totalUsers")
    total_enrollments: int = Field(..., alias="totalEnrollments")
    total_revenue: float = Field(..., alias="totalRevenue")
    active_subscriptions: int = Field(..., alias="activeSubscriptions")
    subscriptions_by_status: Dict[str, int] = Field(default_factory=dict, alias="subscriptionsByStatus")
    top_programs: List[TopProgram] = Field(default_factory=list, alias="topPrograms")


class WebhookAck(BaseModel):
    received: bool = True
    action: str
