from fastapi import APIRouter, Depends

from brontie.api.deps import get_voucher_service, http_error
from brontie.core.auth import Principal, require_admin
from brontie.core.exceptions import BrontieError
from brontie.schemas.voucher import (
    ExpireDueResponse,
    PayoutItemResponse,
    RedemptionResponse,
    VoucherDispute,
    VoucherIssue,
    VoucherRedeem,
    VoucherRefund,
    VoucherResponse,
)
from brontie.services.voucher_service import VoucherService

router = APIRouter()


@router.post("/", response_model=VoucherResponse)
async def issue_voucher(
    voucher_in: VoucherIssue,
    service: VoucherService = Depends(get_voucher_service),
    principal: Principal = Depends(require_admin)
):
    """Create (or confirm) the voucher for a completed checkout"""
    try:
        voucher = await service.issue(**voucher_in.model_dump())
    except BrontieError as exc:
        raise http_error(exc)
    return VoucherResponse.from_model(voucher)


@router.post("/{redemption_link}/redeem", response_model=RedemptionResponse)
async def redeem_voucher(
    redemption_link: str,
    redeem_in: VoucherRedeem,
    service: VoucherService = Depends(get_voucher_service)
):
    """Redeem a voucher at a merchant location"""
    try:
        result = await service.redeem(redemption_link, redeem_in.merchant_location_id)
    except BrontieError as exc:
        raise http_error(exc)
    return RedemptionResponse(
        voucher=VoucherResponse.from_model(result.voucher),
        payout_item=PayoutItemResponse.from_model(result.payout_item),
    )


@router.post("/refund", response_model=VoucherResponse)
async def refund_voucher(
    refund_in: VoucherRefund,
    service: VoucherService = Depends(get_voucher_service),
    principal: Principal = Depends(require_admin)
):
    try:
        voucher = await service.refund(
            payment_intent_id=refund_in.payment_intent_id,
            redemption_link=refund_in.redemption_link,
            full_refund=refund_in.full_refund
        )
    except BrontieError as exc:
        raise http_error(exc)
    return VoucherResponse.from_model(voucher)


@router.post("/dispute", response_model=VoucherResponse)
async def dispute_voucher(
    dispute_in: VoucherDispute,
    service: VoucherService = Depends(get_voucher_service),
    principal: Principal = Depends(require_admin)
):
    try:
        voucher = await service.dispute(dispute_in.payment_intent_id, dispute_in.dispute_id, dispute_in.reason)
    except BrontieError as exc:
        raise http_error(exc)
    return VoucherResponse.from_model(voucher)


@router.post("/expire-due", response_model=ExpireDueResponse)
async def expire_due_vouchers(
    service: VoucherService = Depends(get_voucher_service),
    principal: Principal = Depends(require_admin)
):
    """Expire every voucher past its expiry date"""
    return ExpireDueResponse(expired=await service.expire_due())


@router.post("/{redemption_link}/expire", response_model=VoucherResponse)
async def expire_voucher(
    redemption_link: str,
    service: VoucherService = Depends(get_voucher_service),
    principal: Principal = Depends(require_admin)
):
    try:
        voucher = await service.expire(redemption_link)
    except BrontieError as exc:
        raise http_error(exc)
    return VoucherResponse.from_model(voucher)
