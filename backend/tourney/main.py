import logging
import os
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tourney.database import init_db
from tourney.errors import TourneyError
from tourney.routes import brackets, matches

logger = logging.getLogger(__name__)

APP_NAME = "Tourney Bracket API"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def cors_origins() -> List[str]:
    """Default dev origins plus any comma-separated CORS_ORIGINS."""
    extra = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    return DEFAULT_CORS_ORIGINS + extra


app = FastAPI(title=APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(brackets.router, prefix="/api", tags=["brackets"])
app.include_router(matches.router, prefix="/api", tags=["matches"])


@app.exception_handler(TourneyError)
async def tourney_error_handler(request: Request, exc: TourneyError) -> JSONResponse:
    """Render domain validation failures as {detail, code, params}."""
    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    logger.info("%s started", APP_NAME)


@app.get("/api/health")
def health_check():
    return {"app_name": APP_NAME, "status": "healthy"}
