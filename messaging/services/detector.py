import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol
from urllib.parse import urlparse

from messaging.schemas.suggestions import (
    CreateEventSuggestion,
    CreateTaskSuggestion,
    LinkGithubSuggestion,
    MoveToPasswordVaultSuggestion,
    PasswordWarningSuggestion,
    SaveBookmarkSuggestion,
    SaveSearchSuggestion,
    SaveYoutubeSuggestion,
    SuggestionPayload,
)

SENSITIVE_WARNING = "Sensitive data detected. We recommend a dedicated password manager."
VAULT_MOVE_PROMPT = "Move this message to your encrypted password vault."

URL_RE = re.compile(r"https?://[^\s]+")
SECRET_RE = re.compile(r"(password|pass:|pwd|api[_-]?key|access[_-]?token|secret|bearer\s+[a-z0-9\-_.]+)", re.IGNORECASE)
TASK_RE = re.compile(r"(todo|to do|task|need to|should|must|remember to|follow up)", re.IGNORECASE)
EVENT_RE = re.compile(
    r"(meeting|calendar|event|schedule|tomorrow|next week|deadline|at [0-9]{1,2}(:[0-9]{2})?\s?(am|pm)?)",
    re.IGNORECASE,
)
SEARCH_RE = re.compile(r"(search for|track query|alert me for|watch for|monitor query)", re.IGNORECASE)


@dataclass
class Detection:

    suggestions: List[SuggestionPayload] = field(default_factory=list)
    attachments: List[Dict[str, Any]] = field(default_factory=list)
    is_sensitive: bool = False


class SuggestionGenerator(Protocol):
    """Anything that can look at a message body and propose follow-ups."""

    def analyze(self, body: str) -> Detection:
        ...


def compact_title(text: str, limit: int = 80) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].strip() + "..."


class RuleBasedGenerator:
    """Keyword and link heuristics; good enough until a smarter generator is plugged in."""

    def analyze(self, body: str) -> Detection:
        text = (body or "").strip()
        result = Detection()
        if not text:
            return result

        seen = set()
        for url in URL_RE.findall(text):
            host = urlparse(url).netloc.lower()
            if "youtube.com" in host or "youtu.be" in host:
                kind, suggestion = "youtube", SaveYoutubeSuggestion(url=url, title=url)
            elif "github.com" in host:
                kind, suggestion = "github", LinkGithubSuggestion(url=url, title=url)
            else:
                kind, suggestion = "website", SaveBookmarkSuggestion(url=url, title=url)
            result.attachments.append({"kind": kind, "url": url, "title": url, "preview": {"host": host}})
            key = (suggestion.type, url)
            if key not in seen:
                seen.add(key)
                result.suggestions.append(suggestion)

        if TASK_RE.search(text):
            result.suggestions.append(CreateTaskSuggestion(title=compact_title(text), from_text=text))
        if EVENT_RE.search(text):
            result.suggestions.append(CreateEventSuggestion(title=compact_title(text), from_text=text))
        if SEARCH_RE.search(text):
            result.suggestions.append(SaveSearchSuggestion(query=text))

        if SECRET_RE.search(text):
            result.is_sensitive = True
            result.suggestions.append(PasswordWarningSuggestion(message=SENSITIVE_WARNING))
            result.suggestions.append(MoveToPasswordVaultSuggestion(message=VAULT_MOVE_PROMPT))
        return result
