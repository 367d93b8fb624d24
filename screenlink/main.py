import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from screenlink.persistence.room_repository import InMemoryRoomRepository
from screenlink.routes.rooms import router as rooms_router
from screenlink.routes.ws import router as ws_router
from screenlink.service.relay import SignalingRelay
from screenlink.service.room_registry import RoomRegistry
from screenlink.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Initialize shared resources
    registry = RoomRegistry(InMemoryRoomRepository())
    relay = SignalingRelay(registry)

    # Expose via app.state for dependency access
    app.state.registry = registry
    app.state.relay = relay

    try:
        yield # App runs here
    finally:
        # Graceful shutdown
        await relay.shutdown()


def create_app() -> FastAPI:
    app = FastAPI(title="Screenlink Relay",
                  version="0.1.0",
                  lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(ws_router)
    return app


app = create_app()
