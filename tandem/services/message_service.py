"""
Tandem — Message Store

Per-match, append-only chat log with read tracking.

Ordering: every accepted message gets ``sequence = last + 1`` and
``sent_at = max(now, last.sent_at)`` while the match row is locked
(``SELECT … FOR UPDATE``), so timestamps never decrease in acceptance order
and readers can always render by ``sequence``.

Read state: ``is_read`` only ever moves false -> true, and only for the
recipient's own messages.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.config import get_settings
from tandem.errors import InvalidOperation, NotFound, Unauthenticated, Unauthorized
from tandem.models.match import Match
from tandem.models.message import Message
from tandem.utils.clock import as_utc, utcnow
from tandem.utils.encryption import decrypt_message_content, encrypt_message_content
from tandem.utils.storage import resolve_media_url

logger = structlog.get_logger("tandem.message_service")

MESSAGE_KINDS: frozenset[str] = frozenset({"text", "image", "emoji"})


class MessageService:
    """Send, fetch and mark-read operations over the message log."""

    def __init__(self) -> None:
        settings = get_settings()
        self.page_default: int = settings.MESSAGE_PAGE_DEFAULT
        self.page_max: int = settings.MESSAGE_PAGE_MAX
        self.max_length: int = settings.MESSAGE_MAX_LENGTH

    # ── Public API ────────────────────────────────────────────────────────

    async def send_message(
        self,
        match_id: uuid.UUID,
        sender_id: uuid.UUID | None,
        content: str,
        db_session: AsyncSession,
        kind: str = "text",
        attachment_ref: str | None = None,
    ) -> dict:
        """Append a message to an active match.

        Parameters
        ----------
        match_id:
            Match the message belongs to.
        sender_id:
            Authenticated sender, or ``None`` for an anonymous request.
        content:
            Message body.  May be empty only when an attachment is given.
        db_session:
            Active SQLAlchemy async session.
        kind:
            One of ``text``, ``image``, ``emoji``.
        attachment_ref:
            Optional storage ref of an already uploaded attachment.

        Returns
        -------
        dict
            The stored message as a view (plaintext content).

        Raises
        ------
        Unauthenticated, InvalidOperation, NotFound, Unauthorized
        """
        if sender_id is None:
            raise Unauthenticated("Not authenticated.")

        log = logger.bind(match_id=str(match_id), sender=str(sender_id))

        content = content or ""
        self._validate_content(content, kind, attachment_ref)

        # Lock the match row: concurrent senders to one match serialise here.
        stmt = select(Match).where(Match.id == match_id).with_for_update()
        match = (await db_session.execute(stmt)).scalar_one_or_none()
        if match is None:
            raise NotFound(f"Match {match_id} not found.")
        if not match.has_participant(sender_id):
            log.warning("send_message_not_participant")
            raise Unauthorized("Not authorized to send messages in this match.")
        if not match.is_active:
            log.warning("send_message_inactive_match")
            raise Unauthorized("This match is no longer active.")

        last = await self._last_message(match_id, db_session)
        now = utcnow()
        if last is None:
            sequence, sent_at = 1, now
        else:
            sequence = last.sequence + 1
            sent_at = max(now, as_utc(last.sent_at))

        message = Message(
            match_id=match_id,
            sender_id=sender_id,
            recipient_id=match.counterpart(sender_id),
            content=encrypt_message_content(content),
            kind=kind,
            attachment_ref=attachment_ref,
            sequence=sequence,
            sent_at=sent_at,
            is_read=False,
        )
        db_session.add(message)
        await db_session.flush()

        log.info(
            "message_sent",
            message_id=str(message.id),
            sequence=sequence,
            kind=kind,
        )
        return self.to_view(message, content=content)

    async def get_messages(
        self,
        match_id: uuid.UUID,
        requester_id: uuid.UUID | None,
        db_session: AsyncSession,
        limit: int | None = None,
    ) -> list[dict]:
        """Return the newest ``limit`` messages in chronological order.

        Anonymous callers, unknown matches and non-participants all get an
        empty list so that match existence is never revealed.
        """
        if requester_id is None:
            return []

        log = logger.bind(match_id=str(match_id), requester=str(requester_id))

        match = await db_session.get(Match, match_id)
        if match is None or not match.has_participant(requester_id):
            log.info("get_messages_hidden")
            return []

        page = self._clamp_limit(limit)
        stmt = (
            select(Message)
            .where(Message.match_id == match_id)
            .order_by(Message.sequence.desc())
            .limit(page)
        )
        result = await db_session.execute(stmt)
        messages = sorted(result.scalars().all(), key=lambda m: m.sequence)

        log.debug("get_messages_complete", count=len(messages), limit=page)
        return [self.to_view(m) for m in messages]

    async def mark_read(
        self,
        match_id: uuid.UUID,
        recipient_id: uuid.UUID | None,
        db_session: AsyncSession,
    ) -> int:
        """Mark every unread message addressed to ``recipient_id`` as read.

        Returns the number of messages flipped; a repeat call returns 0.
        """
        if recipient_id is None:
            raise Unauthenticated("Not authenticated.")

        stmt = (
            update(Message)
            .where(
                Message.match_id == match_id,
                Message.recipient_id == recipient_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
        )
        result = await db_session.execute(stmt)
        marked = result.rowcount or 0

        logger.info(
            "messages_marked_read",
            match_id=str(match_id),
            recipient=str(recipient_id),
            count=marked,
        )
        return marked

    @staticmethod
    def to_view(message: Message, content: str | None = None) -> dict:
        """Public representation of a stored message."""
        if content is None:
            content = decrypt_message_content(message.content)
        return {
            "id": message.id,
            "match_id": message.match_id,
            "sender_id": message.sender_id,
            "recipient_id": message.recipient_id,
            "content": content,
            "kind": message.kind,
            "attachment_ref": message.attachment_ref,
            "attachment_url": resolve_media_url(message.attachment_ref),
            "sequence": message.sequence,
            "sent_at": as_utc(message.sent_at),
            "is_read": message.is_read,
        }

    # ── Private helpers ──────────────────────────────────────────────────

    def _validate_content(
        self,
        content: str,
        kind: str,
        attachment_ref: str | None,
    ) -> None:
        if kind not in MESSAGE_KINDS:
            raise InvalidOperation(
                f"Message kind must be one of {sorted(MESSAGE_KINDS)}, got {kind!r}."
            )
        if not content.strip() and not attachment_ref:
            raise InvalidOperation("Message content cannot be empty.")
        if len(content) > self.max_length:
            raise InvalidOperation(
                f"Message exceeds {self.max_length} characters."
            )

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.page_default
        return max(1, min(limit, self.page_max))

    async def _last_message(
        self,
        match_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Message | None:
        stmt = (
            select(Message)
            .where(Message.match_id == match_id)
            .order_by(Message.sequence.desc())
            .limit(1)
        )
        result = await db_session.execute(stmt)
        return result.scalar_one_or_none()
