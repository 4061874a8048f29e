"""
Menu Nutrition FastAPI application.

Endpoints:
    GET  /                   Health check
    POST /nutrition/resolve  One menu-item name -> nutrition ranges + confidence
    POST /nutrition/batch    Several menu-item names, resolved in order
    GET  /nutrition/stats    Tier usage and cache statistics
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List
import logging
from dotenv import load_dotenv
from pathlib import Path

# Load env vars
load_dotenv(Path(__file__).parent / ".env")

# Initialize App
app = FastAPI(title="Menu Nutrition Resolution API")

from menu_nutrition.config import log_config
log_config()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from menu_nutrition.factory import build_resolver

MAX_BATCH_ITEMS = 100

resolver = build_resolver()


# --- Startup ---
@app.on_event("startup")
def _purge_expired_cache():
    """Drop expired cache records left from previous runs."""
    if resolver.cache is None:
        return
    try:
        removed = resolver.cache.clear_expired()
        logger.info("STARTUP cache purge removed=%s", removed)
    except OSError as exc:
        logger.warning("STARTUP cache purge failed (non-fatal): %s", exc)


# --- Request Models ---
class ResolveRequest(BaseModel):
    query: str


class BatchRequest(BaseModel):
    queries: List[str]


# --- Endpoints ---
@app.get("/")
def health_check():
    return {"status": "ok", "service": "menu-nutrition"}


@app.post("/nutrition/resolve")
def resolve_item(request: ResolveRequest):
    if not request.query or not request.query.strip():
        raise HTTPException(status_code=422, detail="query must be a non-empty string")
    result = resolver.resolve(request.query)
    logger.info(
        "API resolve query=%s available=%s tier=%s",
        request.query[:80], result.is_available, result.tier.value,
    )
    return result.to_dict()


@app.post("/nutrition/batch")
def resolve_batch(request: BatchRequest):
    if len(request.queries) > MAX_BATCH_ITEMS:
        raise HTTPException(status_code=422, detail=f"at most {MAX_BATCH_ITEMS} queries per batch")
    results = resolver.resolve_batch(request.queries)
    return {"results": [r.to_dict() for r in results]}


@app.get("/nutrition/stats")
def nutrition_stats():
    return resolver.statistics()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
