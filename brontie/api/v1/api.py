from fastapi import APIRouter
from brontie.api.v1.endpoints import vouchers, settlements, merchants, payouts

api_router = APIRouter()

api_router.include_router(vouchers.router, prefix="/vouchers", tags=["vouchers"])
api_router.include_router(settlements.router, prefix="/settlements", tags=["settlements"])
api_router.include_router(merchants.router, prefix="/merchants", tags=["merchants"])
api_router.include_router(payouts.router, prefix="/payouts", tags=["payouts"])
