from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brontie.api.v1.api import api_router
from brontie.core.config import settings
from brontie.core.logging import configure_logging
from brontie.db.mongo import close_mongo_connection, connect_to_mongo
from brontie.services.merchant_directory import MerchantDirectory
from brontie.services.stripe_gateway import StripeGateway
from brontie.utils.clock import Clock

configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-wide collaborators, shared by every request
app.state.clock = Clock()
app.state.gateway = StripeGateway()
app.state.directory = MerchantDirectory(app.state.clock, settings.MERCHANT_CACHE_TTL_SECONDS)

app.add_event_handler("startup", connect_to_mongo)
app.add_event_handler("shutdown", close_mongo_connection)

@app.get("/")
async def root():
    return {"message": "Welcome to Brontie Settlement API"}

@app.get("/health")
async def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}

app.include_router(api_router, prefix=settings.API_V1_STR)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
