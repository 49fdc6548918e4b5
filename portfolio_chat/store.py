"""
Conversation Store: create / read / append-only writes over Conversation and Message.

The store works inside the caller's Session and only flushes; committing
(or rolling back) the turn is the orchestrator's job.
"""
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from portfolio_chat.models import Conversation, Message

ROLES = {"user", "assistant"}
MESSAGE_TYPES = {"text", "decision_tree"}


class ConversationStore:
    def __init__(self, db: Session):
        self.db = db

    def create_conversation(
        self,
        session_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Conversation:
        conv = Conversation(
            session_id=session_id or uuid.uuid4().hex,
            context=context,
            user_id=user_id,
        )
        self.db.add(conv)
        self.db.flush()
        return conv

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        stmt = (
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .options(selectinload(Conversation.messages))
        )
        return self.db.scalars(stmt).first()

    def get_by_session(self, session_id: str) -> Optional[Conversation]:
        stmt = select(Conversation).where(Conversation.session_id == session_id)
        return self.db.scalars(stmt).first()

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        message_type: str = "text",
        meta: Optional[Dict[str, Any]] = None,
    ) -> Message:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {message_type}")

        msg = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            message_type=message_type,
            meta=meta,
        )
        self.db.add(msg)

        # appending is the only mutation a conversation sees; bump updated_at
        conv = self.db.get(Conversation, conversation_id)
        if conv is not None:
            conv.updated_at = func.now()
        self.db.flush()
        return msg

    def recent_messages(self, conversation_id: str, limit: int = 6) -> List[Message]:
        """
        Last `limit` messages of a conversation, oldest first.
        """
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        return list(reversed(self.db.scalars(stmt).all()))
