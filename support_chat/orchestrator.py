"""
Support Chat — chat orchestration.

handle_message() runs one strictly sequential chain per request:
validate, resolve the session, store the user message, read the transcript,
ask the provider for a reply, store the reply. Validation and session lookup
happen before any write. A provider failure leaves the user message in place.

Requests for the same session are not serialized; two overlapping requests
may see each other's user message in their transcript.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from .database import TranscriptStore
from .exceptions import MissingCredential, ProviderError, ProviderUnavailable, SessionNotFound, ValidationError
from .models import Message, Sender
from .providers import ReplyProvider

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000
# Largest value a SQLite INTEGER column can hold.
MAX_SESSION_ID = 2**63 - 1


@dataclass(frozen=True)
class ChatOutcome:
    reply: str
    session_id: str


def parse_session_id(session_id: str) -> int:
    value = session_id.strip() if isinstance(session_id, str) else ""
    if not (value.isascii() and value.isdecimal()):
        raise ValidationError("Invalid session ID")
    conversation_id = int(value)
    if conversation_id > MAX_SESSION_ID:
        raise ValidationError("Invalid session ID")
    return conversation_id


class ChatOrchestrator:
    def __init__(
        self,
        store: TranscriptStore,
        provider: ReplyProvider,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.store = store
        self.provider = provider
        self.max_message_length = max_message_length

    def validate_message(self, raw_message: str) -> None:
        if not isinstance(raw_message, str) or len(raw_message) == 0:
            raise ValidationError("Message cannot be empty")
        if len(raw_message) > self.max_message_length:
            raise ValidationError("Message is too long")

    def resolve_existing(self, session_id: str) -> int:
        conversation_id = parse_session_id(session_id)
        if not self.store.conversation_exists(conversation_id):
            raise SessionNotFound()
        return conversation_id

    async def handle_message(self, raw_message: str, session_id: Optional[str] = None) -> ChatOutcome:
        self.validate_message(raw_message)

        if session_id:
            conversation_id = self.resolve_existing(session_id)
        else:
            conversation_id = self.store.create_conversation()
            logger.info("Created conversation %s", conversation_id)

        self.store.append_message(conversation_id, Sender.USER, raw_message)
        history = self.store.list_messages(conversation_id)

        try:
            reply = await self.provider.generate_reply(history, raw_message)
        except MissingCredential as e:
            logger.error("Provider %s is misconfigured: %s", self.provider.name, e)
            raise
        except ProviderError as e:
            logger.warning(
                "Provider %s failed for conversation %s (%s): %s",
                self.provider.name, conversation_id, e.kind, e,
            )
            raise ProviderUnavailable(e.kind) from e
        except Exception as e:
            logger.exception("Provider %s raised an unclassified error", self.provider.name)
            raise ProviderUnavailable("unclassified") from e

        self.store.append_message(conversation_id, Sender.ASSISTANT, reply)
        return ChatOutcome(reply=reply, session_id=str(conversation_id))

    async def get_history(self, session_id: str) -> List[Message]:
        conversation_id = self.resolve_existing(session_id)
        return self.store.list_messages(conversation_id)
