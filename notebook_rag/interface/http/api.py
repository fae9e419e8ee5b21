"""HTTP API for notebook chat.

Why: Consumable API without business logic; pure delegation to the use case.
"""

from contextlib import asynccontextmanager
from typing import Any

try:
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel, ConfigDict, Field
except ImportError as err:
    raise ImportError(
        "FastAPI not installed. Install with: pip install 'notebook-rag[http]'"
    ) from err

import structlog

from notebook_rag.application.dto.answer_dto import AnswerRequest

logger = structlog.get_logger(__name__)


class InteractionReplyModel(BaseModel):
    key: str
    value: str


class ChatRequestModel(BaseModel):
    """Request model for /v1/chat. Empty ids/messages are rejected by the use case (400)."""

    model_config = ConfigDict(populate_by_name=True)

    notebook_id: str = Field(default="", alias="notebookId")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    user_message: str = Field(default="", alias="userMessage")
    user_id: str | None = Field(default=None, alias="userId")
    interaction_reply: InteractionReplyModel | None = Field(
        default=None, alias="interactionReply"
    )


def create_app(container: Any | None = None) -> FastAPI:
    """Build the app; the DI container is created on startup unless injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.container is None:
            from notebook_rag.config.compose import build_container
            from notebook_rag.config.logging import setup_logging

            built = build_container()
            setup_logging(
                built.settings.log_level,
                built.settings.log_format,
                environment=built.settings.telemetry_environment,
            )
            app.state.container = built
        yield

    app = FastAPI(title="Notebook RAG API", version="1.0.0", lifespan=lifespan)
    app.state.container = container

    @app.post("/v1/chat")
    def chat(req: ChatRequestModel, request: Request) -> JSONResponse:
        """Answer one chat turn.

        Example:
            POST /v1/chat
            {"notebookId": "nb_1", "userMessage": "What does the report conclude?"}
        """
        current = request.app.state.container
        if current is None:
            return JSONResponse(status_code=503, content={"error": "Service not initialized"})

        dto = AnswerRequest(
            notebook_id=req.notebook_id,
            message=req.user_message,
            conversation_id=req.conversation_id,
            user_id=req.user_id,
            interaction_reply=req.interaction_reply.model_dump() if req.interaction_reply else None,
        )
        try:
            result = current.get_answer_use_case().execute(dto)
        except Exception as ex:  # noqa: BLE001
            logger.exception("chat_unhandled_error", error=str(ex))
            return JSONResponse(status_code=500, content={"error": "Internal error"})

        if result.ok and result.value is not None:
            return JSONResponse(status_code=200, content=result.value.to_dict())
        err = result.error
        return JSONResponse(
            status_code=getattr(err, "status_code", 500),
            content={"error": getattr(err, "message", str(err))},
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy", "service": "notebook-rag"}

    return app


app = create_app()
