import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .calculations.sqlite_reader import get_engine
from .core import config
from .routers import files

# [structure:root] : Application entry point. Uploaded databases stay in memory only.

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="SQLite to Excel Export API", version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(files.router)


@app.get("/")
def read_root():
    engine = get_engine()
    return {"status": "Online", "version": config.APP_VERSION, "sqlite_version": engine.sqlite_version}
