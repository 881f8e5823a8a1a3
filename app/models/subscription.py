from datetime import datetime
from typing import Literal, Optional

from app.models.base import CamelModel

SubscriptionStatus = Literal["active", "inactive", "trial", "cancelled", "expired"]
PlanInterval = Literal["monthly", "yearly"]


class PaymentPlan(CamelModel):
    id: str
    name: str
    description: str
    amount: float
    currency: str
    interval: PlanInterval
    features: list[str]
    trial_days: int


class Subscription(CamelModel):
    id: str
    user_id: str
    status: SubscriptionStatus
    plan_id: str
    plan_name: str
    amount: float
    currency: str
    start_date: datetime
    end_date: datetime
    paypal_subscription_id: Optional[str] = None
    trial_end_date: Optional[datetime] = None
    auto_renew: bool = True


class SubscriptionPointer(CamelModel):
    """user id -> current subscription id"""

    subscription_id: str


class SubscribeRequest(CamelModel):
    user_id: str
    plan_id: str
    paypal_order_id: str


class ReactivateRequest(CamelModel):
    paypal_order_id: str


class UsageStats(CamelModel):
    questions_attempted: int
    practice_tests_taken: int
    study_time_minutes: float
    current_streak: int
    monthly_limit: int
    remaining_questions: int
