"""
Agent Engine
Eligibility gate and bounded prompt assembly for the automated inbox agent
"""
import logging
from typing import List, Dict, Optional
from pydantic import BaseModel, Field

from inbox_agent.models import (
    AgentConfiguration,
    AgentBehaviorSettings,
    KnowledgeItem,
    Message,
    ChannelType,
    ThreadStatus,
    SenderType,
)
from inbox_agent.services.ai_provider import AIProvider, ProviderInput

logger = logging.getLogger(__name__)

MAX_KNOWLEDGE_ITEMS = 12
MAX_KNOWLEDGE_CHARS = 2000
MIN_TRUNCATED_KNOWLEDGE_CHARS = 20
MAX_HISTORY_TURNS = 20

KNOWLEDGE_HEADER = "--- Knowledge Base ---"
KNOWLEDGE_FOOTER = "---"


def should_agent_respond(
    thread_status: str,
    channel_type: str,
    agent_active: bool,
    internal_enabled: bool,
    whatsapp_enabled: bool,
    is_handed_off: bool,
    last_message_from_agent: bool,
) -> bool:
    """
    Decide whether the automated agent may act on a thread.

    Pure predicate; every check must pass. The external channel only
    counts as allowed through `whatsapp_enabled`, the internal one only
    through `internal_enabled`.
    """
    if thread_status != ThreadStatus.OPEN.value:
        return False
    if not agent_active:
        return False
    if is_handed_off:
        return False
    if last_message_from_agent:
        return False

    return (
        (channel_type == ChannelType.INTERNAL.value and internal_enabled)
        or (channel_type == ChannelType.WHATSAPP.value and whatsapp_enabled)
    )


class AgentContext(BaseModel):
    """Everything the prompt builder needs for one run"""
    agent: AgentConfiguration
    settings: Optional[AgentBehaviorSettings] = None
    knowledge: List[KnowledgeItem] = Field(default_factory=list)
    messages: List[Message] = Field(default_factory=list)


class BuiltPrompt(BaseModel):
    system_prompt: str
    supplemental: Optional[str] = None
    turns: List[Dict[str, str]] = Field(default_factory=list)


def _render_knowledge_item(item: KnowledgeItem) -> str:
    if item.content:
        return f"## {item.title}\n{item.content}"
    if item.source_url:
        return f"## {item.title}\nURL: {item.source_url}"
    if item.file_path:
        return f"## {item.title}\nFile: {item.file_path}"
    return f"## {item.title}"


def render_knowledge(
    knowledge: List[KnowledgeItem],
    max_items: int = MAX_KNOWLEDGE_ITEMS,
    max_chars: int = MAX_KNOWLEDGE_CHARS,
) -> List[str]:
    """
    Render knowledge items within an item and character budget.

    Items are kept whole while they fit. The first item that overflows is
    cut to the remaining budget with a trailing ellipsis (or dropped when
    too little budget remains) and everything after it is omitted.
    """
    parts: List[str] = []
    used = 0
    for item in knowledge[:max_items]:
        part = _render_knowledge_item(item)
        if used + len(part) > max_chars:
            remaining = max_chars - used
            if remaining > MIN_TRUNCATED_KNOWLEDGE_CHARS:
                parts.append(part[:remaining] + "…")
            break
        parts.append(part)
        used += len(part)
    return parts


def chunking_directive(max_chunks: int) -> str:
    return (
        "\n\nReply in short, separate messages when it makes sense, "
        f"using at most {max_chunks} text fragments. Avoid single very long blocks."
    )


def build_history(messages: List[Message], max_turns: int = MAX_HISTORY_TURNS) -> List[Dict[str, str]]:
    """Map the most recent non-blank messages to role-tagged turns."""
    non_blank = [m for m in messages if m.content and m.content.strip()]
    return [
        {
            "role": "assistant" if m.sender_type == SenderType.AI.value else "user",
            "content": m.content.strip(),
        }
        for m in non_blank[-max_turns:]
    ]


def build_prompt(context: AgentContext) -> BuiltPrompt:
    """
    Assemble system instructions, supplemental instruction and turns.

    The chunking directive is always appended, whether or not chunked
    delivery is enabled.
    """
    max_chunks = context.settings.max_chunks if context.settings else 6
    system_prompt = context.agent.system_prompt

    knowledge_parts = render_knowledge(context.knowledge)
    if knowledge_parts:
        knowledge_block = "\n\n".join(knowledge_parts)
        system_prompt += f"\n\n{KNOWLEDGE_HEADER}\n{knowledge_block}\n{KNOWLEDGE_FOOTER}"

    system_prompt += chunking_directive(max_chunks)

    supplemental = (context.agent.user_prompt or "").strip() or None
    turns = build_history(context.messages)

    logger.debug(
        f"🧩 Prompt built: {len(knowledge_parts)} knowledge parts, {len(turns)} turns, "
        f"{len(system_prompt)} chars"
    )
    return BuiltPrompt(system_prompt=system_prompt, supplemental=supplemental, turns=turns)


async def generate_agent_reply(context: AgentContext, provider: AIProvider) -> str:
    """
    Build the prompt for a thread and make exactly one provider call.

    Raises:
        MissingCredentialError: Provider has no API key
        UpstreamError: Provider rejected the request
    """
    prompt = build_prompt(context)
    return await provider.generate_response(
        ProviderInput(
            system_prompt=prompt.system_prompt,
            supplemental=prompt.supplemental,
            turns=prompt.turns,
        )
    )
