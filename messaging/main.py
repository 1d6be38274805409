import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from messaging.config import get_settings
from messaging.database.connection import close_mongo_connection, connect_to_mongo
from messaging.errors import MessagingError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.device_repository import DeviceRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.reaction_repository import ReactionRepository
from messaging.repositories.suggestion_repository import SuggestionRepository
from messaging.repositories.vault_repository import VaultRepository
from messaging.routers.conversations import router as conversations_router
from messaging.routers.devices import router as devices_router
from messaging.routers.messages import router as messages_router
from messaging.routers.presence import router as presence_router
from messaging.routers.realtime import router as realtime_router
from messaging.routers.vault import router as vault_router

logger = logging.getLogger(__name__)


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    for repo in (
        ConversationRepository(db),
        MessageRepository(db),
        ReactionRepository(db),
        SuggestionRepository(db),
        VaultRepository(db),
        DeviceRepository(db),
    ):
        await repo.ensure_indexes()


def _error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return f"{location}: {message}" if location else message


def create_app(database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_connection = app.state.database is None
        if owns_connection:
            app.state.database = await connect_to_mongo()
        await ensure_indexes(app.state.database)
        try:
            yield
        finally:
            if owns_connection:
                await close_mongo_connection()
                app.state.database = None

    app = FastAPI(title="Messaging Service", lifespan=lifespan)
    app.state.database = database

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(request: Request, exc: MessagingError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content={"error": _error_message(exc)})

    for router in (
        conversations_router,
        messages_router,
        vault_router,
        presence_router,
        devices_router,
        realtime_router,
    ):
        app.include_router(router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"service": "messaging", "status": "ok"}

    return app


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
