"""HTTP entrypoint for the pose analysis service.

Run with `python -m posetrace.api.main [--host H] [--port P]` or point uvicorn
at `posetrace.api.main:app`.
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from posetrace.api.routes import config, health, pose, stats
from posetrace.api.services import state

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    # The engine starts lazily on the first pose/stats request.
    yield
    logger.info("Shutting down pose engine")
    state.stop_engine()


def create_app() -> FastAPI:
    app = FastAPI(title="posetrace API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for module in (health, config, pose, stats):
        app.include_router(module.router)
    return app


app = create_app()


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve pose analysis over HTTP")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("posetrace.api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
