import logging
import os

from flask import Flask, request, jsonify
from dotenv import load_dotenv

from portfolio_chat import init_db
from portfolio_chat.db import make_engine, make_session_factory
from portfolio_chat.errors import ConversationNotFound, KnowledgeBaseError, TurnFailed, ValidationError
from portfolio_chat.knowledge import KnowledgeBase, PublishedContentSource
from portfolio_chat.llm.providers import build_chat_provider, build_embedding_provider
from portfolio_chat.llm.rag import ResponseGenerator
from portfolio_chat.orchestrator import ChatOrchestrator, TurnRequest
from portfolio_chat.tree import DecisionTreeEngine, load_tree


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(session_factory=None, orchestrator=None, knowledge=None, content_source=None):
    """
    Wire the conversational core once at startup and expose it over HTTP.
    Anything not passed in is built from the environment.
    """
    load_dotenv()

    if session_factory is None:
        session_factory = make_session_factory(make_engine())

    embedder = build_embedding_provider()
    if knowledge is None:
        knowledge = KnowledgeBase(session_factory, embedder=embedder)
    if orchestrator is None:
        generator = ResponseGenerator(knowledge, chat=build_chat_provider(), embedder=embedder)
        orchestrator = ChatOrchestrator(session_factory, DecisionTreeEngine(load_tree()), generator)
    if content_source is None:
        content_source = PublishedContentSource(session_factory)

    app = Flask(__name__)

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok"})

    @app.post("/api/chat")
    def chat():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        try:
            turn = TurnRequest.from_payload(
                body, client_context={"userAgent": request.headers.get("User-Agent")}
            )
            resp = orchestrator.handle_turn(turn)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400
        except ConversationNotFound:
            return jsonify({"error": "Conversation not found"}), 404
        except TurnFailed:
            return jsonify({"error": "Internal server error"}), 500
        return jsonify(resp.to_dict())

    @app.get("/api/chat")
    def chat_history():
        conversation_id = (request.args.get("conversationId") or "").strip()
        if not conversation_id:
            return jsonify({"error": "Conversation ID required"}), 400
        try:
            conversation = orchestrator.conversation_history(conversation_id)
        except ConversationNotFound:
            return jsonify({"error": "Conversation not found"}), 404
        return jsonify({"conversation": conversation})

    @app.post("/api/embeddings")
    def rebuild_knowledge_base():
        # operator-only maintenance action; auth lives in front of this app
        try:
            count = knowledge.rebuild(content_source)
        except KnowledgeBaseError:
            return jsonify({"error": "Failed to update knowledge base"}), 500
        return jsonify({
            "success": True,
            "message": "Knowledge base updated successfully",
            "entries": count,
        })

    @app.cli.command("init-db")
    def init_db_command():
        """Create database tables."""
        init_db(session_factory.kw["bind"])
        print("Database initialised")

    @app.cli.command("rebuild-kb")
    def rebuild_kb_command():
        """Regenerate the chat knowledge base from published content."""
        count = knowledge.rebuild(content_source)
        print(f"Knowledge base rebuilt with {count} entries")

    return app


if __name__ == "__main__":
    setup_logging()
    engine = make_engine()
    # Create tables (simple dev mode)
    init_db(engine)
    app = create_app(make_session_factory(engine))
    app.run(host="0.0.0.0", port=5000, debug=True)
