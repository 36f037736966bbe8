from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
# quiet HTTP client debug logs
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


# ✅ middlewares
from middlewares.timing import TimingMiddleware
from middlewares.error_handler import add_error_handlers

# ✅ routers
from routers import (
    gradebook_schemes,
    gradebook_weight_profiles,
    gradebook_transmutation,
    gradebook_items,
    gradebook_compute_runs,
    gradebook_phase4_links,
)

# ✅ collaborator models, registered on Base.metadata
from models import sections, students, subjects, student_grades  # noqa: F401
from database.db import Base, engine

app = FastAPI(
    title=settings.APP_TITLE,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
)

# ✅ CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ✅ latency header (X-Latency-Ms)
app.add_middleware(TimingMiddleware)

# ✅ global error handlers (consistent JSON error format)
add_error_handlers(app)

# ✅ /v1 prefix
app.include_router(gradebook_schemes.router,         prefix="/v1")
app.include_router(gradebook_weight_profiles.router, prefix="/v1")
app.include_router(gradebook_transmutation.router,   prefix="/v1")
app.include_router(gradebook_items.router,           prefix="/v1")
app.include_router(gradebook_compute_runs.router,    prefix="/v1")
app.include_router(gradebook_phase4_links.router,    prefix="/v1")

# ✅ health check
@app.get("/health")
def health_check():
    return {"status": "ok", "message": "API is running"}

@app.on_event("startup")
def _create_tables():
    if settings.DB_AUTO_CREATE:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")

# ✅ root
@app.get("/")
def root():
    return {"message": f"{settings.APP_TITLE} {settings.APP_VERSION}"}
