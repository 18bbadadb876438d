# teamroster/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from teamroster.api import routes_roster, routes_teams
from teamroster.core.config import settings
from teamroster.db.engine import engine
from teamroster.db.models import Base
from teamroster.middleware.request_log import RequestLogMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

settings.validate_at_startup()

# local dev has no migration step; create tables on boot
if settings.IS_LOCAL:
    Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.APP_NAME)
app.add_middleware(RequestLogMiddleware)

ALLOWED_ORIGINS = settings.CORS_ORIGINS if isinstance(settings.CORS_ORIGINS, list) else []
logger.info("CORS allow_origins = %s", ALLOWED_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1):5173$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

# Routers
app.include_router(routes_teams.router)
app.include_router(routes_teams.coaches_router)
app.include_router(routes_roster.router)
app.include_router(routes_roster.players_router)
app.include_router(routes_roster.events_router)


@app.get("/health")
def health():
    return {"ok": True, "env": settings.APP_ENV}
