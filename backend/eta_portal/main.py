import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import get_settings
from .db.schema import init_db
from .routers import applications, health, submissions

logger = logging.getLogger(__name__)

app = FastAPI(title="ETA Portal API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:8080", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    init_db(settings.db_path)
    settings.applications_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Applications stored in %s", settings.applications_dir)


app.include_router(health.router)
app.include_router(submissions.router)
app.include_router(applications.router)


@app.get("/")
def root():
    return {"message": "ETA Portal API", "docs": "/docs"}
