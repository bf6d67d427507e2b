from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends

from brontie.api.deps import (
    get_batch_service,
    get_reconciliation_service,
    get_transfer_service,
    http_error,
)
from brontie.core.auth import Principal, require_admin
from brontie.core.exceptions import BrontieError
from brontie.services.batch_settlement_service import BatchSettlementResult, BatchSettlementService
from brontie.services.reconciliation_service import ReconciliationResult, ReconciliationService
from brontie.services.transfer_service import TransferResult, TransferService

router = APIRouter()


@router.post("/vouchers/{voucher_id}/transfer", response_model=TransferResult)
async def transfer_voucher(
    voucher_id: str,
    service: TransferService = Depends(get_transfer_service),
    principal: Principal = Depends(require_admin)
):
    """Pay one voucher out to its merchant"""
    try:
        return await service.transfer_voucher(voucher_id)
    except BrontieError as exc:
        raise http_error(exc)


@router.post("/batch", response_model=BatchSettlementResult)
async def run_batch_settlement(
    service: BatchSettlementService = Depends(get_batch_service),
    principal: Principal = Depends(require_admin)
):
    """Settle all pending payout items, one transfer per merchant"""
    return await service.run()


@router.post("/reconcile", response_model=ReconciliationResult)
async def reconcile_claims(
    older_than_minutes: Optional[int] = None,
    service: ReconciliationService = Depends(get_reconciliation_service),
    principal: Principal = Depends(require_admin)
):
    """Resolve payout items left claimed by an unknown transfer outcome"""
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes is not None else None
    return await service.reconcile(older_than)
