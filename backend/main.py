import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from novaera.api.endpoints import admin, finance, payments, store
from novaera.core.database import Base, SessionLocal, engine
from novaera.core.settings import settings
from novaera.models import coupon, finance as finance_models, order, payment_transaction, product, profile, team  # noqa: F401
from novaera.services.payment_watcher import WatcherRegistry


logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("novaera")

app = FastAPI(title="Nova Era API")
app.state.payment_watchers = WatcherRegistry()
app.state.session_factory = SessionLocal

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    if not settings.misticpay_configured:
        logger.warning("startup.misticpay.not_configured")
    logger.info("startup.ready environment=%s", settings.environment)


@app.on_event("shutdown")
async def shutdown() -> None:
    await app.state.payment_watchers.shutdown()
    client = getattr(app.state, "misticpay_client", None)
    if client is not None:
        await client.aclose()


# API Routes
app.include_router(store.router, prefix="/api", tags=["store"])
app.include_router(payments.router, prefix="/api", tags=["payments"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(finance.router, prefix="/api", tags=["finance"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
