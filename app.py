from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from backend import RedisBackend, redis_backend
from broadcast import Broadcaster
from connections import Connection, ConnectionRegistry
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from coordinator import RoomCoordinator
from logging_config import get_logger, setup_logging
from persistence import SnapshotWriter
from presence import PresenceTracker
from routers.rooms import rooms_router
from store import RoomStore

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def build_coordinator(backend: RedisBackend) -> RoomCoordinator:
    registry = ConnectionRegistry()
    return RoomCoordinator(
        store=RoomStore(),
        registry=registry,
        presence=PresenceTracker(),
        broadcaster=Broadcaster(registry),
        persistence=SnapshotWriter(backend),
    )


def create_app(backend: Optional[RedisBackend] = None) -> FastAPI:
    """Build the FastAPI app with its own coordinator, backed by ``backend`` (Redis by default)."""
    coordinator = build_coordinator(backend if backend is not None else redis_backend)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Restore whatever the last run saved; members stay unbound until they rejoin
        records = await coordinator.persistence.load()
        restored = coordinator.restore(records)
        logger.info(f"Coordinator ready with {restored} restored rooms")
        coordinator.persistence.start()
        yield
        await coordinator.persistence.stop()
        logger.info("Coordinator stopped")

    app = FastAPI(title="CodeBattle Rooms", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.coordinator = coordinator
    app.include_router(rooms_router)

    @app.get("/", response_class=PlainTextResponse)
    async def health_check():
        return "CodeBattle WebSocket Server"

    async def websocket_endpoint(websocket: WebSocket):
        """One party's connection: welcome, then one inbound message at a time until close.

        Closing the socket counts as leaving whatever room the party was in.
        """
        await websocket.accept()
        connection = Connection(websocket)
        connection.start()
        coordinator.connect(connection)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                # Binary frames are parsed like text
                data = message.get("text")
                if data is None:
                    data = message.get("bytes") or b""
                coordinator.handle_message(connection.connection_id, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
        except Exception as e:
            logger.error(f"Error receiving message from connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            coordinator.disconnect(connection.connection_id)
            await connection.close()

    app.add_api_websocket_route("/", websocket_endpoint)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
