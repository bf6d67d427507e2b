from fastapi import APIRouter, Depends

from brontie.api.deps import get_commission_service, get_connect_service, http_error
from brontie.core.auth import Principal, require_admin
from brontie.core.exceptions import BrontieError
from brontie.schemas.merchant import BrontieFeeUpdate, MerchantResponse
from brontie.services.commission_service import CommissionService, CommissionStatus
from brontie.services.connect_service import ConnectService

router = APIRouter()


@router.post("/{merchant_id}/connect/sync", response_model=MerchantResponse)
async def sync_connect_account(
    merchant_id: str,
    service: ConnectService = Depends(get_connect_service),
    principal: Principal = Depends(require_admin)
):
    """Refresh the merchant's Stripe Connect flags"""
    try:
        merchant = await service.sync_account_status(merchant_id)
    except BrontieError as exc:
        raise http_error(exc)
    return MerchantResponse.from_model(merchant)


@router.get("/{merchant_id}/brontie-fee", response_model=CommissionStatus)
async def get_brontie_fee(
    merchant_id: str,
    service: CommissionService = Depends(get_commission_service),
    principal: Principal = Depends(require_admin)
):
    try:
        return await service.status(merchant_id)
    except BrontieError as exc:
        raise http_error(exc)


@router.put("/{merchant_id}/brontie-fee", response_model=MerchantResponse)
async def update_brontie_fee(
    merchant_id: str,
    fee_in: BrontieFeeUpdate,
    service: CommissionService = Depends(get_commission_service),
    principal: Principal = Depends(require_admin)
):
    """Activate or deactivate the platform commission"""
    try:
        if fee_in.is_active:
            merchant = await service.activate(merchant_id)
        else:
            merchant = await service.deactivate(merchant_id, principal.subject, fee_in.reason)
    except BrontieError as exc:
        raise http_error(exc)
    return MerchantResponse.from_model(merchant)
