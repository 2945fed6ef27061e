"""FastAPI application bootstrap for the anchoring status API."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .infra.db import default_engine, init_db
from .routers import ratings


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(default_engine())
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="SkillAnchor API", version="0.1.0", lifespan=lifespan)

    app.include_router(ratings.router, prefix="/ratings", tags=["ratings"])

    return app


app = create_app()
