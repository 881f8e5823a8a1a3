import logging
import random
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.database import close_db, init_db
from app.errors import register_error_handlers
from app.middleware.auth import AuthMiddleware
from app.services.grader import Grader
from app.services.payment_gateway import gateway_from_settings

logger = logging.getLogger(__name__)

# CORS: use CORS_ORIGINS (comma-separated) or allow any origin.
_allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.db = await init_db()
    app.state.grader = Grader(random.Random(settings.grading_seed))
    app.state.payment_gateway = gateway_from_settings()
    logger.info("TOEFL prep backend started (env=%s, storage=%s)", settings.env, settings.storage_backend)
    yield
    await close_db(app.state.db)


app = FastAPI(title="TOEFL Prep", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins or ["*"],
    allow_credentials=bool(_allowed_origins),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(AuthMiddleware)

register_error_handlers(app)

# Import and register routes
from app.routes.questions import router as questions_router
from app.routes.grading import router as grading_router
from app.routes.sessions import router as sessions_router
from app.routes.progress import router as progress_router
from app.routes.analytics import router as analytics_router
from app.routes.payments import router as payments_router

app.include_router(questions_router)
app.include_router(grading_router)
app.include_router(sessions_router)
app.include_router(progress_router)
app.include_router(analytics_router)
app.include_router(payments_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
