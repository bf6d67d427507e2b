from fastapi import Depends, HTTPException, Request, status

from brontie.core.exceptions import (
    BelowMinimumTransferError,
    BrontieError,
    ExternalTransferError,
    FeeLookupUnavailable,
    InvalidStateError,
    MerchantNotPayableError,
    NotFoundError,
)
from brontie.db.mongo import get_db
from brontie.services.batch_settlement_service import BatchSettlementService
from brontie.services.commission_service import CommissionService
from brontie.services.connect_service import ConnectService
from brontie.services.merchant_directory import MerchantDirectory
from brontie.services.payout_admin_service import PayoutAdminService
from brontie.services.reconciliation_service import ReconciliationService
from brontie.services.stripe_gateway import StripeGateway
from brontie.services.transfer_service import TransferService
from brontie.services.voucher_service import VoucherService
from brontie.utils.clock import Clock


def get_gateway(request: Request) -> StripeGateway:
    return request.app.state.gateway


def get_directory(request: Request) -> MerchantDirectory:
    return request.app.state.directory


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_voucher_service(
    db=Depends(get_db),
    gateway=Depends(get_gateway),
    directory=Depends(get_directory),
    clock=Depends(get_clock)
) -> VoucherService:
    return VoucherService(db, gateway, directory, clock)


def get_transfer_service(
    db=Depends(get_db),
    gateway=Depends(get_gateway),
    clock=Depends(get_clock)
) -> TransferService:
    return TransferService(db, gateway, clock)


def get_batch_service(
    db=Depends(get_db),
    gateway=Depends(get_gateway),
    clock=Depends(get_clock)
) -> BatchSettlementService:
    return BatchSettlementService(db, gateway, clock)


def get_reconciliation_service(
    db=Depends(get_db),
    gateway=Depends(get_gateway),
    clock=Depends(get_clock)
) -> ReconciliationService:
    return ReconciliationService(db, gateway, clock)


def get_connect_service(
    db=Depends(get_db),
    gateway=Depends(get_gateway),
    directory=Depends(get_directory)
) -> ConnectService:
    return ConnectService(db, gateway, directory)


def get_commission_service(
    db=Depends(get_db),
    directory=Depends(get_directory),
    clock=Depends(get_clock)
) -> CommissionService:
    return CommissionService(db, directory, clock)


def get_payout_admin_service(
    db=Depends(get_db),
    clock=Depends(get_clock)
) -> PayoutAdminService:
    return PayoutAdminService(db, clock)


def http_error(exc: BrontieError) -> HTTPException:
    """Translate a domain error into the response the route returns."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, MerchantNotPayableError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.reason)
    if isinstance(exc, BelowMinimumTransferError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, ExternalTransferError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(exc), "outcome_unknown": exc.outcome_unknown}
        )
    if isinstance(exc, FeeLookupUnavailable):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
