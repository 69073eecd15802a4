"""API routes for plan purchase, verification and payment history."""
from __future__ import annotations

import os
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, Request

from ... import app_context
from ..payments import EmployerAccount, PaymentError
from ..schemas.payments import (
    CreateOrderRequest,
    CreateOrderResponse,
    PaymentHistoryResponse,
    PaymentOut,
    PaymentStatsResponse,
    PlanListResponse,
    PlanOut,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from ..services.payments import get_payment_service

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_employer(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> EmployerAccount:
    return app_context.get_current_employer(session_token=session_token)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("/plans", response_model=PlanListResponse)
def list_plans() -> PlanListResponse:
    service = get_payment_service()
    return PlanListResponse(plans=[PlanOut.from_plan(plan) for plan in service.plans.list_active_plans()])


@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    payload: CreateOrderRequest,
    request: Request,
    *,
    current_employer=Depends(_get_current_employer),
) -> CreateOrderResponse:
    service = get_payment_service()
    try:
        created = service.create_order(
            current_employer.employer_id,
            payload.plan_id or "",
            user_agent=request.headers.get("user-agent"),
            ip_address=_client_ip(request),
        )
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return CreateOrderResponse.from_order(created)


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    *,
    current_employer=Depends(_get_current_employer),
) -> VerifyPaymentResponse:
    service = get_payment_service()
    try:
        verified = service.verify_payment(
            current_employer.employer_id,
            gateway_order_id=payload.gateway_order_id,
            gateway_payment_id=payload.gateway_payment_id,
            gateway_signature=payload.gateway_signature,
            plan_id=payload.plan_id,
        )
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return VerifyPaymentResponse.from_verification(verified)


@router.get("/history", response_model=PaymentHistoryResponse)
def payment_history(
    page: int = Query(1),
    limit: int = Query(10),
    status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    *,
    current_employer=Depends(_get_current_employer),
) -> PaymentHistoryResponse:
    service = get_payment_service()
    try:
        result = service.get_payment_history(
            current_employer.employer_id,
            page=page,
            limit=limit,
            status=status,
            start_date=start_date,
            end_date=end_date,
        )
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return PaymentHistoryResponse.from_page(result)


@router.get("/stats", response_model=PaymentStatsResponse)
def payment_stats(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    *,
    current_employer=Depends(_get_current_employer),
) -> PaymentStatsResponse:
    service = get_payment_service()
    stats = service.get_payment_stats(
        current_employer.employer_id,
        start_date=start_date,
        end_date=end_date,
    )
    return PaymentStatsResponse.from_stats(stats)


@router.get("/{payment_id}", response_model=PaymentOut)
def payment_details(
    payment_id: str,
    *,
    current_employer=Depends(_get_current_employer),
) -> PaymentOut:
    service = get_payment_service()
    try:
        payment = service.get_payment(payment_id, current_employer.employer_id)
    except PaymentError as exc:
        raise exc.to_http_exception() from exc
    return PaymentOut.from_record(payment)
