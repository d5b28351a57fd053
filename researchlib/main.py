"""
Main FastAPI application for the research library core.

Exposes paper resolution, citation networks and federated search over
external bibliographic sources.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from researchlib.api.papers import router as papers_router
from researchlib.config.system_settings import system_settings
from researchlib.fetching.service import get_paper_service, reset_paper_service

logging.basicConfig(level=getattr(logging, system_settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = get_paper_service()
    service.start_sweeper()
    logger.info("Research library core started")
    try:
        yield
    finally:
        await service.aclose()
        reset_paper_service()


app = FastAPI(
    title="Research Library Core",
    description="Paper aggregation and citation enrichment API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(papers_router)


@app.get("/health")
def health():
    return {"status": "ok"}


def run():
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("researchlib.main:app", host="0.0.0.0", port=8000)
