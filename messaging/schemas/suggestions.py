from typing import Annotated, Any, Dict, Literal, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter


class CreateTaskSuggestion(BaseModel):

    type: Literal["create_task"] = "create_task"
    title: str
    from_text: str = ""


class CreateEventSuggestion(BaseModel):

    type: Literal["create_event"] = "create_event"
    title: str
    from_text: str = ""


class SaveBookmarkSuggestion(BaseModel):

    type: Literal["save_bookmark"] = "save_bookmark"
    url: str
    title: str = ""


class SaveYoutubeSuggestion(BaseModel):

    type: Literal["save_youtube"] = "save_youtube"
    url: str
    title: str = ""


class LinkGithubSuggestion(BaseModel):

    type: Literal["link_github"] = "link_github"
    url: str
    title: str = ""


class SaveSearchSuggestion(BaseModel):

    type: Literal["save_search"] = "save_search"
    query: str


class PasswordWarningSuggestion(BaseModel):

    type: Literal["password_warning"] = "password_warning"
    message: str


class MoveToPasswordVaultSuggestion(BaseModel):

    type: Literal["move_to_password_vault"] = "move_to_password_vault"
    message: str


SuggestionPayload = Annotated[
    Union[
        CreateTaskSuggestion,
        CreateEventSuggestion,
        SaveBookmarkSuggestion,
        SaveYoutubeSuggestion,
        LinkGithubSuggestion,
        SaveSearchSuggestion,
        PasswordWarningSuggestion,
        MoveToPasswordVaultSuggestion,
    ],
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter = TypeAdapter(SuggestionPayload)


def decode_suggestion_payload(suggestion_type: str, payload: Dict[str, Any] | None) -> SuggestionPayload:
    """Turn the stored ``(type, payload)`` pair into its typed variant."""
    data = dict(payload or {})
    data["type"] = suggestion_type
    return _payload_adapter.validate_python(data)


def encode_suggestion_payload(payload: SuggestionPayload) -> Tuple[str, Dict[str, Any]]:
    return payload.type, payload.model_dump(mode="json", exclude={"type"})
