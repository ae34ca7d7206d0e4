import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.routers import ludo
from app.services.ludo.service import get_ludo_service

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Ludo API")
    logger.debug("Debug mode: %s", settings.DEBUG)

    # Start the watchdog poll loop
    ludo_service = get_ludo_service()
    await ludo_service.start()
    logger.info("Ludo watchdog started")

    yield

    # Shutdown: cancel turn timers, stop the watchdog
    logger.info("Shutting down Ludo API")
    await ludo_service.stop()
    logger.info("Timers and watchdog stopped")


app = FastAPI(
    title="Ludo API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.debug("CORS configured with origins: %s", settings.CORS_ORIGINS)

app.include_router(ludo.router, prefix="/api/v1")
logger.debug("Routers registered: /api/v1/ludo")


@app.get("/")
def root():
    return {"message": "Ludo API"}


@app.get("/health")
def health():
    return {"status": "healthy"}
