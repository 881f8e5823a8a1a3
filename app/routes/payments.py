"""Plans, subscriptions and the PayPal webhook."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from app.config import settings
from app.db.database import Database, get_db
from app.models.base import utc_now
from app.models.subscription import ReactivateRequest, SubscribeRequest
from app.routes.auth import require_user_owner
from app.services import subscriptions
from app.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


@router.get("/plans")
async def list_plans():
    return {"plans": subscriptions.PLANS}


@router.post("/subscribe")
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    db: Database = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    require_user_owner(request, body.user_id)
    subscription = await subscriptions.subscribe(db, gateway, body.user_id, body.plan_id, body.paypal_order_id)
    return {"success": True, "subscription": subscription, "message": "Subscription created successfully"}


@router.get("/subscription/{user_id}")
async def get_subscription(user_id: str, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, user_id)
    now = utc_now()
    subscription = await subscriptions.get_subscription(db, user_id, now)
    if subscription is None:
        return {"subscription": None, "status": "no_subscription", "isActive": False}
    return {
        "subscription": subscription,
        "status": subscription.status,
        "isActive": subscriptions.is_active(subscription, now),
    }


@router.post("/subscription/{user_id}/cancel")
async def cancel_subscription(
    user_id: str,
    request: Request,
    db: Database = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    require_user_owner(request, user_id)
    subscription = await subscriptions.cancel(db, gateway, user_id)
    return {"success": True, "subscription": subscription, "message": "Subscription cancelled successfully"}


@router.post("/subscription/{user_id}/reactivate")
async def reactivate_subscription(
    user_id: str,
    body: ReactivateRequest,
    request: Request,
    db: Database = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    require_user_owner(request, user_id)
    subscription = await subscriptions.reactivate(db, gateway, user_id, body.paypal_order_id)
    return {"success": True, "subscription": subscription, "message": "Subscription reactivated successfully"}


@router.get("/subscription/{user_id}/usage")
async def get_usage(user_id: str, request: Request, db: Database = Depends(get_db)):
    require_user_owner(request, user_id)
    usage = await subscriptions.get_usage(db, user_id, settings.usage_monthly_limit)
    return {"usage": usage}


@router.post("/webhook/paypal")
async def paypal_webhook(payload: dict[str, Any], db: Database = Depends(get_db)):
    # Signature verification is not implemented; payloads are trusted.
    await subscriptions.handle_webhook(db, payload)
    return {"success": True}
