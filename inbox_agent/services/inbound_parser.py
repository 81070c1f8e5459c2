"""
Inbound Parser
Normalizes provider webhook payloads into InboundMessage
"""
import logging
from typing import Optional, Dict, Any, List

from inbox_agent.models import InboundMessage, MEDIA_KINDS

logger = logging.getLogger(__name__)

# Evolution message keys for media without text, in priority order
_EVOLUTION_MEDIA_KEYS = (
    ("audioMessage", "audio"),
    ("imageMessage", "image"),
    ("videoMessage", "video"),
    ("documentMessage", "document"),
)


def parse_evolution_payload(payload: Any) -> Optional[InboundMessage]:
    """
    Parse an Evolution API `messages.upsert` event.

    Returns None for payloads that carry no chat id and for events echoed
    back from our own number (`key.fromMe`).
    """
    if not isinstance(payload, dict):
        return None

    event = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    key = event.get("key") if isinstance(event.get("key"), dict) else {}

    if key.get("fromMe") is True:
        logger.info("♻️ Ignoring message from self (fromMe=True)")
        return None

    remote_jid = key.get("remoteJid") or event.get("remoteJid")
    if not remote_jid or not isinstance(remote_jid, str):
        return None

    message = event.get("message") if isinstance(event.get("message"), dict) else event
    text: Optional[str] = None
    media_kinds: List[str] = []

    extended = message.get("extendedTextMessage")
    if isinstance(message.get("conversation"), str) and message["conversation"]:
        text = message["conversation"]
    elif isinstance(extended, dict) and isinstance(extended.get("text"), str):
        text = extended["text"]
    else:
        for field, kind in _EVOLUTION_MEDIA_KEYS:
            # Presence marks the kind, an empty object included
            if message.get(field) is not None:
                media_kinds = [kind]
                break

    push_name = event.get("pushName")
    return InboundMessage(
        external_chat_id=remote_jid,
        display_name=push_name if isinstance(push_name, str) else None,
        text=text,
        media_kinds=media_kinds,
    )


def parse_mock_payload(payload: Any) -> Optional[InboundMessage]:
    """Parse the mock provider body: {wa_id, name?, text?, media?: [{type}]}"""
    if not isinstance(payload, dict):
        return None

    wa_id = payload.get("wa_id")
    if not wa_id or not isinstance(wa_id, str):
        return None

    media_kinds = []
    for item in payload.get("media") or []:
        kind = item.get("type") if isinstance(item, dict) else None
        if isinstance(kind, str) and kind in MEDIA_KINDS:
            media_kinds.append(kind)

    name = payload.get("name")
    text = payload.get("text")
    return InboundMessage(
        external_chat_id=wa_id,
        display_name=name if isinstance(name, str) else None,
        text=text if isinstance(text, str) else None,
        media_kinds=media_kinds,
    )


_PARSERS = {
    "evolution": parse_evolution_payload,
    "mock": parse_mock_payload,
}


def parse_inbound_payload(provider: str, payload: Any) -> Optional[InboundMessage]:
    """Dispatch to the parser for a connection provider (evolution by default)."""
    parser = _PARSERS.get(provider or "evolution", parse_evolution_payload)
    try:
        return parser(payload)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"⚠️ Unparsable {provider} payload: {e}")
        return None


def verify_subscription(params: Dict[str, Optional[str]], expected_token: Optional[str]) -> Optional[str]:
    """
    Answer a webhook subscription check.

    Returns the challenge when `hub.verify_token` matches, else None.
    """
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")
    if not expected_token or token != expected_token or not challenge:
        return None
    return challenge
