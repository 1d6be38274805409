from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from messaging.database.connection import mongo_db_dependency
from messaging.errors import AuthenticationError
from messaging.repositories.conversation_repository import ConversationRepository
from messaging.repositories.device_repository import DeviceRepository
from messaging.repositories.message_repository import MessageRepository
from messaging.repositories.reaction_repository import ReactionRepository
from messaging.repositories.suggestion_repository import SuggestionRepository
from messaging.repositories.user_repository import UserRepository
from messaging.repositories.vault_repository import VaultRepository
from messaging.services.conversation_service import ConversationService
from messaging.services.detector import RuleBasedGenerator, SuggestionGenerator
from messaging.services.events import EventPublisher, PushNotifier
from messaging.services.message_service import MessageService
from messaging.services.reaction_service import ReactionService
from messaging.services.sensitive import SensitiveContentGate
from messaging.services.suggestion_service import SuggestionService
from messaging.services.vault_service import VaultService
from messaging.utils.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)


async def resolve_user(db, token: Optional[str]) -> dict:
    if not token:
        raise AuthenticationError()
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise AuthenticationError("Invalid or expired token")
    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise AuthenticationError()
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db=Depends(mongo_db_dependency),
) -> dict:
    token = credentials.credentials if credentials else None
    return await resolve_user(db, token)


def get_suggestion_generator() -> SuggestionGenerator:
    return RuleBasedGenerator()


def get_event_publisher(db=Depends(mongo_db_dependency)) -> EventPublisher:
    return EventPublisher(ConversationRepository(db))


def get_conversation_service(
    db=Depends(mongo_db_dependency),
    events: EventPublisher = Depends(get_event_publisher),
) -> ConversationService:
    return ConversationService(ConversationRepository(db), MessageRepository(db), UserRepository(db), events)


def get_message_service(
    db=Depends(mongo_db_dependency),
    generator: SuggestionGenerator = Depends(get_suggestion_generator),
    events: EventPublisher = Depends(get_event_publisher),
) -> MessageService:
    conversation_repo = ConversationRepository(db)
    return MessageService(
        MessageRepository(db),
        conversation_repo,
        ReactionRepository(db),
        SuggestionRepository(db),
        UserRepository(db),
        generator,
        events,
        PushNotifier(conversation_repo, DeviceRepository(db)),
    )


def get_reaction_service(
    db=Depends(mongo_db_dependency),
    events: EventPublisher = Depends(get_event_publisher),
) -> ReactionService:
    return ReactionService(ReactionRepository(db), MessageRepository(db), ConversationRepository(db), events)


def get_vault_service(
    db=Depends(mongo_db_dependency),
    events: EventPublisher = Depends(get_event_publisher),
) -> VaultService:
    return VaultService(VaultRepository(db), ConversationRepository(db), MessageRepository(db), events)


def get_suggestion_service(
    db=Depends(mongo_db_dependency),
    vault_service: VaultService = Depends(get_vault_service),
    events: EventPublisher = Depends(get_event_publisher),
) -> SuggestionService:
    return SuggestionService(
        SuggestionRepository(db), MessageRepository(db), ConversationRepository(db), vault_service, events
    )


def get_sensitive_gate(db=Depends(mongo_db_dependency)) -> SensitiveContentGate:
    return SensitiveContentGate(MessageRepository(db), ConversationRepository(db))
