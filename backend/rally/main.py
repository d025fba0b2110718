import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rally import __version__
from rally.database import init_db
from rally.routes import enrollments, matches, players, tournament_matches, tournaments

logging.basicConfig(
    level=os.getenv("RALLY_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Rally Tournament API", version=__version__)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(enrollments.router, prefix="/api", tags=["enrollments"])
app.include_router(tournament_matches.router, prefix="/api", tags=["tournament-matches"])
app.include_router(players.router, prefix="/api", tags=["players"])
app.include_router(matches.router, prefix="/api", tags=["matches"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info(f"Rally API {__version__} started; {len(app.routes)} routes registered")


@app.get("/api/health")
def health_check():
    """Liveness check reporting the running API version."""
    return {"app_name": "Rally Tournament API", "version": __version__, "status": "healthy"}
