from fastapi import APIRouter, Depends

from brontie.api.deps import get_payout_admin_service, http_error
from brontie.core.auth import Principal, require_admin
from brontie.core.exceptions import BrontieError
from brontie.schemas.payout import MarkPaidRequest
from brontie.services.payout_admin_service import MarkPaidResult, PayoutAdminService, PayoutSummary

router = APIRouter()


@router.post("/merchants/{merchant_id}/mark-paid", response_model=MarkPaidResult)
async def mark_paid_manually(
    merchant_id: str,
    mark_in: MarkPaidRequest,
    service: PayoutAdminService = Depends(get_payout_admin_service),
    principal: Principal = Depends(require_admin)
):
    """Record a bank transfer covering pending items up to a date"""
    try:
        return await service.mark_paid_manually(merchant_id, mark_in.paid_up_to)
    except BrontieError as exc:
        raise http_error(exc)


@router.get("/merchants/{merchant_id}/summary", response_model=PayoutSummary)
async def payout_summary(
    merchant_id: str,
    service: PayoutAdminService = Depends(get_payout_admin_service),
    principal: Principal = Depends(require_admin)
):
    try:
        return await service.summary(merchant_id)
    except BrontieError as exc:
        raise http_error(exc)
