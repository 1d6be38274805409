from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Mongo hands back naive UTC datetimes unless the client is tz-aware
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def conversation_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["_id"],
        "type": doc["type"],
        "name": doc.get("name", ""),
        "topic": doc.get("topic"),
        "team_id": doc.get("team_id"),
        "created_by": doc.get("created_by"),
        "is_default": bool(doc.get("is_default")),
        "is_archived": bool(doc.get("is_archived")),
        "last_message_at": as_utc(doc.get("last_message_at")),
        "created_at": as_utc(doc.get("created_at")),
        "updated_at": as_utc(doc.get("updated_at")),
    }


def member_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "conversation_id": doc["conversation_id"],
        "user_id": doc["user_id"],
        "role": doc.get("role", "member"),
        "joined_at": as_utc(doc.get("joined_at")),
        "last_read_message_id": doc.get("last_read_message_id"),
        "last_read_at": as_utc(doc.get("last_read_at")),
        "muted_until": as_utc(doc.get("muted_until")),
        "is_hidden": bool(doc.get("is_hidden")),
    }


def attachment_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["id"],
        "message_id": doc["message_id"],
        "kind": doc.get("kind", "website"),
        "file_id": doc.get("file_id"),
        "url": doc.get("url", ""),
        "title": doc.get("title", ""),
        "preview": doc.get("preview") or {},
    }


def reference_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["id"],
        "message_id": doc["message_id"],
        "entity_type": doc["entity_type"],
        "entity_id": doc["entity_id"],
        "deep_link": doc.get("deep_link", ""),
    }


def suggestion_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["_id"],
        "message_id": doc["message_id"],
        "type": doc["type"],
        "payload": doc.get("payload") or {},
        "status": doc["status"],
        "created_at": as_utc(doc.get("created_at")),
        "updated_at": as_utc(doc.get("updated_at")),
    }


def reaction_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["_id"],
        "message_id": doc["message_id"],
        "user_id": doc["user_id"],
        "emoji": doc["emoji"],
    }


def message_out(
    doc: Dict[str, Any],
    reactions: Iterable[Dict[str, Any]] = (),
    suggestions: Iterable[Dict[str, Any]] = (),
    privileged: bool = False,
) -> Dict[str, Any]:
    """Public view of a message. Deleted messages become tombstones unless ``privileged``."""
    tombstone = doc.get("deleted_at") is not None and not privileged
    metadata = {k: v for k, v in (doc.get("metadata") or {}).items() if k != "sensitive_payload"}
    return {
        "id": doc["_id"],
        "conversation_id": doc["conversation_id"],
        "sender_id": doc["sender_id"],
        "body": "" if tombstone else doc.get("body", ""),
        "is_sensitive": bool(doc.get("is_sensitive")),
        "edited_at": as_utc(doc.get("edited_at")),
        "deleted_at": as_utc(doc.get("deleted_at")),
        "metadata": {} if tombstone else metadata,
        "created_at": as_utc(doc.get("created_at")),
        "updated_at": as_utc(doc.get("updated_at")),
        "attachments": [] if tombstone else [attachment_out(a) for a in doc.get("attachments") or []],
        "references": [reference_out(r) for r in doc.get("references") or []],
        "suggestions": [] if tombstone else [suggestion_out(s) for s in suggestions],
        "reactions": [reaction_out(r) for r in reactions],
    }


def vault_item_out(doc: Dict[str, Any]) -> Dict[str, Any]:
    targets = doc.get("share_targets") or []
    return {
        "id": doc["_id"],
        "label": doc["label"],
        "owner_user_id": doc["owner_user_id"],
        "source_message_id": doc.get("source_message_id"),
        "last_accessed_at": as_utc(doc.get("last_accessed_at")),
        "shared": bool(targets),
        "allow_reveal": bool(doc.get("allow_reveal", True)),
        "expires_at": as_utc(doc.get("expires_at")),
        "target_conversation_id": targets[-1] if targets else None,
    }
