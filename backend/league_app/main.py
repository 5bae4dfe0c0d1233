import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from league_app.config import get_settings
from league_app.database import init_db
from league_app.routes import cup, matches, suspensions, teams

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="League Competition API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(get_settings().cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(teams.router, prefix="/api", tags=["teams"])

# Result entry, shootouts and locking
app.include_router(matches.router, prefix="/api", tags=["matches"])

# Cup bracket
app.include_router(cup.router, prefix="/api", tags=["cup"])

# Cards, suspensions and eligibility
app.include_router(suspensions.router, prefix="/api", tags=["suspensions"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    settings = get_settings()
    logger.info(
        "League API started (auto-lock delay %d min, red card = %d match(es), yellow thresholds %s)",
        settings.auto_lock_delay_minutes,
        settings.red_card_suspension_matches,
        settings.yellow_card_thresholds,
    )


@app.get("/api/health")
def health_check():
    return {"app_name": "League Competition API", "status": "healthy"}
