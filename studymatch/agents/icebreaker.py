"""Icebreaker Generator - opening message for a newly created pairing

Text comes from an ``OpeningTextStrategy``. ``ExternalGeneration`` calls
the configured LLM providers under a hard timeout; ``DeterministicTemplate``
needs nothing and never fails. The generator always holds the template as
its fallback, so both paths go through the same call site.
"""

import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from studymatch.agents.llm_router import LLMRouter
from studymatch.config import Settings, settings as default_settings
from studymatch.data.schema import Channel, Member, OpeningMessage, Pairing
from studymatch.errors import OpenerGenerationError, StudyMatchError
from studymatch.matching.compatibility_scorer import shared_topics
from studymatch.storage.base import MessageStore, PairingStore


@dataclass
class OpenerRequest:
    """Everything a strategy may use to write an opener"""
    sender: Member
    recipient: Member
    shared_topics: list[str] = field(default_factory=list)

    @classmethod
    def for_members(cls, sender: Member, recipient: Member) -> "OpenerRequest":
        return cls(sender=sender, recipient=recipient, shared_topics=shared_topics(sender, recipient))


class OpeningTextStrategy(ABC):
    """Produces opener text for a pairing"""

    name: str = "strategy"

    @abstractmethod
    def compose(self, request: OpenerRequest) -> str:
        """Return opener text, or raise OpenerGenerationError"""


class DeterministicTemplate(OpeningTextStrategy):
    """Brief first-text style opener built from the first shared topic"""

    name = "template"
    GENERIC_OPENER = "Want to study together sometime?"

    def compose(self, request: OpenerRequest) -> str:
        if request.shared_topics:
            return f"Study {request.shared_topics[0]} together?"
        return self.GENERIC_OPENER


def clean_generated_text(text: Optional[str]) -> str:
    """Trim, drop surrounding quotes, collapse newlines: '"a\\n\\nb"' -> 'a b'"""
    cleaned = (text or "").strip()
    cleaned = re.sub(r'^["\']|["\']$', "", cleaned)
    cleaned = re.sub(r"\n+", " ", cleaned)
    return cleaned.strip()


def _year_label(value) -> str:
    if value is None or str(value).strip() == "":
        return "Unknown year"
    labels = {"1": "Freshman", "2": "Sophomore", "3": "Junior", "4": "Senior"}
    text = str(value).strip()
    if text.isdigit():
        return labels.get(text, "Graduate Student")
    return text.title()


def build_opener_prompt(request: OpenerRequest) -> str:
    """Prompt for a short, casual first text between two study partners"""
    sender, recipient = request.sender, request.recipient
    sender_name = sender.full_name or "Student 1"
    recipient_name = recipient.full_name or "Student 2"
    shared = ", ".join(request.shared_topics) if request.shared_topics else "None"

    return f"""Generate a brief first text message for a study buddy app.

**USER 1 (SENDER):**
- Name: {sender_name}
- Major: {sender.major or 'Undeclared'}, {_year_label(sender.seniority)}
- Courses: {', '.join(t for t in sender.topics or [] if t)}

**USER 2 (RECIPIENT):**
- Name: {recipient_name}
- Major: {recipient.major or 'Undeclared'}, {_year_label(recipient.seniority)}
- Courses: {', '.join(t for t in recipient.topics or [] if t)}

**SHARED COURSES:** {shared}

**TASK:**
Create a brief first message FROM {sender_name} TO {recipient_name}.

**REQUIREMENTS:**
1. Maximum 10 words total
2. Reference a shared course if available
3. Casual, friendly tone (like texting)
4. NO greetings like "Hey" or "Hi"
5. NO sender's name
6. Just the message text, nothing else

**EXAMPLES:**
- "Study Algorithms together?"
- "Data Structures study partner?"
- "Want to prep for the exam?"

Generate ONLY the message (under 10 words):"""


# Shared by every ExternalGeneration; a timed-out call finishes in the background
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="opener")


class ExternalGeneration(OpeningTextStrategy):
    """Opener written by an external LLM provider, bounded by a timeout"""

    name = "external"

    def __init__(self, router: Optional[LLMRouter] = None, timeout: float = 8.0):
        self.router = router or LLMRouter(timeout=timeout)
        self.timeout = timeout

    def compose(self, request: OpenerRequest) -> str:
        prompt = build_opener_prompt(request)
        future = _executor.submit(self.router.generate, prompt)
        try:
            raw = future.result(timeout=self.timeout)
        except FutureTimeout as e:
            future.cancel()
            raise OpenerGenerationError(f"Opener generation timed out after {self.timeout}s") from e
        except Exception as e:
            raise OpenerGenerationError(f"Opener generation failed: {e}") from e

        text = clean_generated_text(raw if isinstance(raw, str) else None)
        if not text:
            raise OpenerGenerationError("Opener generation returned malformed text")
        return text


def select_opening_strategy(settings: Optional[Settings] = None) -> OpeningTextStrategy:
    """External generation when a provider key is configured, otherwise the template"""
    settings = settings or default_settings
    if settings.has_opener_credentials:
        return ExternalGeneration(
            router=LLMRouter(settings=settings, timeout=settings.opener_timeout_seconds),
            timeout=settings.opener_timeout_seconds,
        )
    logger.info("No opener-generation credentials configured, using template openers")
    return DeterministicTemplate()


class IcebreakerGenerator:
    """
    Insert the opening message for a new pairing and mark it opened

    Never raises: any failure is logged and ``None`` is returned so the
    enclosing cycle carries on.
    """

    def __init__(
        self,
        pairings: PairingStore,
        messages: MessageStore,
        strategy: Optional[OpeningTextStrategy] = None,
    ):
        self.pairings = pairings
        self.messages = messages
        self.strategy = strategy or DeterministicTemplate()
        self.fallback = DeterministicTemplate()

    def generate(
        self,
        pairing: Pairing,
        member_a: Member,
        member_b: Member,
        channel: Channel,
    ) -> Optional[OpeningMessage]:
        """
        Write the opener for ``pairing`` into ``channel``

        Args:
            pairing: Stored pairing; skipped if its opener was already sent
            member_a: Pairing side the message is attributed to
            member_b: Recipient side
            channel: Conversation the message goes into

        Returns:
            The stored OpeningMessage, or None if skipped or the insert failed
        """
        if pairing.opening_message_sent:
            logger.debug(f"Opener already sent for match {pairing.id}, skipping")
            return None

        try:
            request = OpenerRequest.for_members(member_a, member_b)
            text, strategy_name = self._compose(request)

            suggestion_id = self._record_suggestion(member_a.id, member_b.id, text, strategy_name)

            message = self.messages.create(
                channel_id=channel.id,
                author_id=member_a.id,
                content=text,
                is_generated=True,
                source_suggestion_id=suggestion_id,
            )
        except Exception as e:
            logger.error(f"Opening message step failed for match {pairing.id}: {e}")
            return None

        # Message is stored from here on; a flag write failure only logs
        pairing.opening_message_sent = True
        try:
            self.pairings.mark_opening_sent(pairing.id)
        except Exception as e:
            logger.warning(f"Opener sent for match {pairing.id} but flag not stored: {e}")

        logger.info(f"Opening message sent for match {pairing.id} ({strategy_name})")
        return message

    def _compose(self, request: OpenerRequest) -> tuple[str, str]:
        try:
            return self.strategy.compose(request), self.strategy.name
        except OpenerGenerationError as e:
            logger.warning(f"{e}; falling back to template opener")
        except Exception as e:
            logger.warning(f"Opener strategy {self.strategy.name} raised {type(e).__name__}: {e}; using template")
        return self.fallback.compose(request), self.fallback.name

    def _record_suggestion(self, sender_id: str, recipient_id: str, text: str, strategy: str) -> Optional[str]:
        """Best-effort suggestion row; its id links the message back to it"""
        try:
            return self.messages.create_suggestion(sender_id, recipient_id, text, strategy)
        except StudyMatchError as e:
            logger.warning(f"Suggested message not stored: {e}")
            return None
