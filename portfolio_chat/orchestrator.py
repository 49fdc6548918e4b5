# portfolio_chat/orchestrator.py
"""
Turn protocol for the chat widget.

A turn reads first (conversation lookup, AI history) with no write pending, then
runs the graph, then writes everything in one short transaction: creating the
conversation if needed, the user's message (AI mode only) and the assistant's
reply are committed together, or not at all. No database lock is held while the
LLM is being called.

Known limitation: two turns on the same conversation submitted at once are not
serialized. Message order is whatever the database timestamps/ids say at write time.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from portfolio_chat.errors import ConversationNotFound, TurnFailed, ValidationError
from portfolio_chat.graph.graph import build_graph
from portfolio_chat.graph.state import BACK_TO_TREE, Mode
from portfolio_chat.llm.rag import ResponseGenerator
from portfolio_chat.store import ConversationStore
from portfolio_chat.tree.engine import DecisionTreeEngine

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 6


class UnknownConversationPolicy(str, Enum):
    REJECT = "reject"      # 404 when the client names a conversation we don't have
    RECREATE = "recreate"  # silently start a fresh one


@dataclass
class TurnRequest:
    mode: Mode = Mode.TREE
    message: Optional[str] = None
    session_id: Optional[str] = None
    conversation_id: Optional[str] = None
    current_node_id: Optional[str] = None
    user_choice: Optional[str] = None
    client_context: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, body: Dict[str, Any], client_context: Optional[Dict[str, Any]] = None) -> "TurnRequest":
        raw_mode = body.get("mode") or Mode.TREE.value
        try:
            mode = Mode(raw_mode)
        except ValueError:
            raise ValidationError("Invalid mode")

        def _text(key: str) -> Optional[str]:
            val = body.get(key)
            if val is None:
                return None
            if not isinstance(val, str):
                raise ValidationError(f"{key} must be a string")
            return val.strip() or None

        return cls(
            mode=mode,
            message=_text("message"),
            session_id=_text("sessionId"),
            conversation_id=_text("conversationId"),
            current_node_id=_text("currentNodeId"),
            user_choice=_text("userChoice"),
            client_context=client_context,
        )


@dataclass
class TurnResponse:
    message: str
    conversation_id: str
    message_id: int
    mode: Mode
    options: List[Dict[str, Any]] = field(default_factory=list)
    next_node_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "message": self.message,
            "options": self.options,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "mode": self.mode.value,
        }
        if self.next_node_id is not None:
            out["nextNodeId"] = self.next_node_id
        return out


def validate(req: TurnRequest) -> None:
    if req.user_choice == BACK_TO_TREE:
        return
    if req.mode is Mode.TREE:
        # either a fresh start (neither) or a navigation step (both)
        if bool(req.current_node_id) != bool(req.user_choice):
            raise ValidationError("Invalid tree mode request")
    elif req.mode is Mode.AI:
        if not req.message:
            raise ValidationError("Message is required for AI mode")
    else:
        raise ValidationError("Invalid mode")


def history_lines(messages) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


class ChatOrchestrator:
    def __init__(
        self,
        session_factory,
        engine: DecisionTreeEngine,
        generator: ResponseGenerator,
        unknown_conversation: UnknownConversationPolicy | str | None = None,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.generator = generator
        self.unknown_conversation = UnknownConversationPolicy(
            unknown_conversation
            or os.getenv("CHAT_UNKNOWN_CONVERSATION", UnknownConversationPolicy.REJECT.value)
        )
        self.graph = build_graph(engine, generator)

    # ---------------------------
    # Conversation resolution
    # ---------------------------
    def _resolve_conversation(self, store: ConversationStore, req: TurnRequest) -> Optional[str]:
        """
        Id of the conversation this turn belongs to, or None when one has to be
        created. Read-only; creation happens with the turn's writes.
        """
        if req.conversation_id:
            conv = store.get_conversation(req.conversation_id)
            if conv is not None:
                return conv.id
            if self.unknown_conversation is UnknownConversationPolicy.REJECT:
                raise ConversationNotFound(req.conversation_id)
            logger.info("Unknown conversation %s, starting a new one", req.conversation_id)

        if req.session_id:
            conv = store.get_by_session(req.session_id)
            if conv is not None:
                return conv.id

        return None

    def _ensure_conversation(self, store: ConversationStore, req: TurnRequest, conversation_id: Optional[str]) -> str:
        if conversation_id is not None:
            return conversation_id
        # another turn may have claimed this session id while we were generating
        if req.session_id:
            conv = store.get_by_session(req.session_id)
            if conv is not None:
                return conv.id
        return store.create_conversation(session_id=req.session_id, context=req.client_context).id

    # ---------------------------
    # Turn
    # ---------------------------
    def handle_turn(self, req: TurnRequest) -> TurnResponse:
        validate(req)
        records_user_message = req.mode is Mode.AI and req.user_choice != BACK_TO_TREE

        state = {
            "mode": req.mode,
            "current_node_id": req.current_node_id,
            "user_choice": req.user_choice,
            "message": req.message,
        }

        db = self.session_factory()
        try:
            store = ConversationStore(db)
            conversation_id = self._resolve_conversation(store, req)

            if records_user_message:
                # history is what was said before this message
                recent = store.recent_messages(conversation_id, HISTORY_WINDOW) if conversation_id else []
                state["history"] = history_lines(recent)
            db.rollback()

            out = self.graph.invoke(state)

            conversation_id = self._ensure_conversation(store, req, conversation_id)
            if records_user_message:
                store.append_message(conversation_id, "user", req.message, message_type="text")
            assistant = store.append_message(
                conversation_id,
                "assistant",
                out["reply"],
                message_type=out["message_type"],
                meta={
                    "mode": out["result_mode"].value,
                    "options": out.get("options", []),
                    "nextNodeId": out.get("next_node_id"),
                    "trace": out.get("trace", []),
                },
            )
            db.commit()

            return TurnResponse(
                message=out["reply"],
                options=out.get("options", []),
                conversation_id=conversation_id,
                message_id=assistant.id,
                mode=out["result_mode"],
                next_node_id=out.get("next_node_id"),
            )
        except (ValidationError, ConversationNotFound):
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.exception("Chat turn failed")
            raise TurnFailed("Internal server error") from e
        finally:
            db.close()

    def conversation_history(self, conversation_id: str) -> Dict[str, Any]:
        with self.session_factory() as db:
            conv = ConversationStore(db).get_conversation(conversation_id)
            if conv is None:
                raise ConversationNotFound(conversation_id)
            return {
                "id": conv.id,
                "sessionId": conv.session_id,
                "messages": [
                    {
                        "id": m.id,
                        "role": m.role,
                        "content": m.content,
                        "messageType": m.message_type,
                        "metadata": m.meta,
                        "timestamp": m.created_at.isoformat() if m.created_at else None,
                    }
                    for m in conv.messages
                ],
            }
