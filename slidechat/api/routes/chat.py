"""
Chat endpoint.

Implements POST /api/chatbot: builds the conversation for one user turn,
runs the tool-calling orchestrator and returns either a JSON response or a
Server-Sent Events stream of orchestration events.
"""

import asyncio
import base64
import binascii
import json
import logging
import posixpath
import uuid
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...config import get_llm_config
from ...errors import (
    ConfigurationError,
    ErrorCodes,
    format_error_response,
    mask_sensitive_info,
    mask_token,
)
from ...llm_call import LLMClient
from ...models import AppConfig, ChatMessage, ToolContext
from ...orchestration import ChatOrchestrator, FinalMessageEvent
from ...prompts import build_system_prompt
from ...tools.disk import LocalDiskStore
from ...tracing import TracingContext, get_tracing_client
from ..schemas import MAX_MESSAGE_LENGTH, Attachment, ChatRequest, ChatResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter()

ATTACHMENTS_DIR = "/attachments/"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error_response(status_code: int, error: BaseException) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=format_error_response(error))


def _flush_tracing() -> None:
    """Flush tracing client if available."""
    client = get_tracing_client()
    if client:
        client.flush()


def format_sse(event: str, data: dict) -> str:
    """One Server-Sent Events frame."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


def select_tools(app_config: AppConfig, registry, enabled_tool_names: Optional[list[str]]) -> list[dict]:
    """
    Tool definitions offered to the model for this request.

    ``None`` offers every tool; an explicit list (after trimming and
    de-duplication) restricts to those names, so an empty list offers none.
    """
    if not app_config.tools.enabled:
        return []
    if enabled_tool_names is None:
        return registry.tool_schemas()
    names = list(dict.fromkeys(
        name.strip() for name in enabled_tool_names if isinstance(name, str) and name.strip()
    ))
    return registry.tool_schemas(names)


async def store_attachments(
    disk_store: LocalDiskStore,
    disk_id: str,
    attachments: list[Attachment],
) -> list[Attachment]:
    """Write attachments to the session disk, returning the ones that were stored."""
    stored = []
    for attachment in attachments:
        filename = posixpath.basename(attachment.filename.replace("\\", "/"))
        try:
            data = base64.b64decode(attachment.content, validate=True)
            await disk_store.write(disk_id, ATTACHMENTS_DIR, filename, data)
        except (binascii.Error, ValueError, OSError) as e:
            logger.error(f"Failed to store attachment {attachment.filename!r}: {e}")
            continue
        stored.append(attachment)
    return stored


def build_user_turn(message: str, attachments: list[Attachment]) -> ChatMessage:
    """
    The new user turn.

    With image attachments the content becomes a part list (text, then one
    ``image_url`` data URL per image and a text reference per other file).
    Without images, file references are appended to the text.
    """
    if not attachments:
        return ChatMessage(role="user", content=message)

    if not any(att.is_image for att in attachments):
        text = message
        for att in attachments:
            text += f"\n\n[Attachment: {att.filename} ({att.mime_type})]"
        return ChatMessage(role="user", content=text)

    parts = []
    if message.strip():
        parts.append({"type": "text", "text": message})
    for att in attachments:
        if att.is_image:
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{att.mime_type};base64,{att.content}"},
            })
        else:
            parts.append({"type": "text", "text": f"\n[Attachment: {att.filename} ({att.mime_type})]"})
    return ChatMessage(role="user", content=parts)


def build_conversation(
    body: ChatRequest,
    attachments: Optional[list[Attachment]] = None,
) -> list[ChatMessage]:
    """System prompt, then the history, then the new user turn."""
    conversation = [ChatMessage(role="system", content=build_system_prompt(body.system_prompt))]
    conversation.extend(m for m in body.messages if m.role != "system")
    conversation.append(build_user_turn(body.message, attachments or []))
    return conversation


async def _stream_events(
    orchestrator: ChatOrchestrator,
    llm_client: LLMClient,
    conversation: list[ChatMessage],
    context: ToolContext,
    tracing_context: TracingContext,
    session_fields: dict,
) -> AsyncIterator[str]:
    execution_id = tracing_context.execution_id
    final: Optional[FinalMessageEvent] = None
    try:
        async for event in orchestrator.stream(conversation, context):
            if isinstance(event, FinalMessageEvent):
                event.extra.update(session_fields)
                final = event
            elif event.type == "error":
                logger.error(f"[{execution_id}] Stream ended with error: {event.error}")
                tracing_context.end_trace(output=event.error, status="error")
            yield format_sse(event.type, event.to_payload())
    except Exception as e:
        message = mask_sensitive_info(str(e))
        logger.exception(f"[{execution_id}] Stream error: {message}")
        tracing_context.end_trace(output=message, status="error")
        yield format_sse("error", {"error": message, "code": ErrorCodes.CHAT_ERROR})
    finally:
        if final is not None:
            tracing_context.end_trace(
                output=final.content,
                status="success",
                metadata={"tool_calls": len(final.tool_calls or [])},
            )
        _flush_tracing()
        await llm_client.close()


@router.post(
    "/api/chatbot",
    response_model=ChatResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        408: {"model": ErrorResponse, "description": "Request timeout"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Send a chat message",
    description=(
        "Run one chat turn through the tool-calling orchestrator. Streams "
        "Server-Sent Events by default; set stream=false for a JSON response."
    ),
)
async def chatbot(body: ChatRequest, request: Request):
    state = request.app.state
    app_config: AppConfig = state.app_config

    if not body.message or not isinstance(body.message, str):
        return _error_response(400, ValueError("Message is required and must be a string"))
    if len(body.message) > MAX_MESSAGE_LENGTH:
        return _error_response(
            400, ValueError(f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")
        )

    try:
        llm_config = get_llm_config(app_config)
    except ConfigurationError as e:
        logger.error(f"LLM configuration error: {e}")
        return _error_response(500, e)
    logger.debug(f"Using model {llm_config.model} (key {mask_token(llm_config.api_key)})")

    if not body.session_id and not body.character_id:
        return _error_response(
            400, ValueError("characterId is required when creating a new session")
        )

    session_id = body.session_id or str(uuid.uuid4())
    disk_id = body.disk_id or session_id
    context = ToolContext(
        disk_id=disk_id,
        acontext_session_id=body.acontext_session_id,
        user_id=body.user_id,
        session_id=session_id,
        character_id=body.character_id,
    )

    execution_id = f"exec-{uuid.uuid4().hex[:8]}"
    logger.info(f"[{execution_id}] Chat request for session {session_id}: {body.message[:100]}")

    attachments = await store_attachments(state.disk_store, disk_id, body.attachments)
    conversation = build_conversation(body, attachments)
    tools = select_tools(app_config, state.registry, body.enabled_tool_names)

    tracing_context = TracingContext(
        execution_id=execution_id,
        session_id=session_id,
        user_id=body.user_id,
    )
    tracing_context.start_trace(
        name="chatbot",
        input=body.message,
        metadata={"stream": body.stream, "character_id": body.character_id, "tools": len(tools)},
    )

    llm_client = LLMClient(llm_config)
    orchestrator = ChatOrchestrator(
        llm_client=llm_client,
        dispatcher=state.dispatcher,
        tools=tools,
        max_iterations=app_config.orchestrator.max_iterations,
        max_result_bytes=app_config.orchestrator.max_tool_result_bytes,
        tracing_context=tracing_context,
        execution_id=execution_id,
    )

    if body.stream:
        logger.debug(f"[{execution_id}] Starting SSE stream")
        session_fields = {
            "sessionId": session_id,
            "characterId": body.character_id,
            "diskId": disk_id,
        }
        return StreamingResponse(
            _stream_events(orchestrator, llm_client, conversation, context, tracing_context, session_fields),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        result = await asyncio.wait_for(
            orchestrator.run(conversation, context),
            timeout=app_config.orchestrator.request_timeout,
        )
    except asyncio.TimeoutError:
        logger.error(f"[{execution_id}] Request timed out")
        tracing_context.end_trace(output="timeout", status="error")
        _flush_tracing()
        return _error_response(408, TimeoutError("Request timeout - please try again"))
    except Exception as e:
        logger.exception(f"[{execution_id}] Chat request failed: {mask_sensitive_info(str(e))}")
        tracing_context.end_trace(output=mask_sensitive_info(str(e)), status="error")
        _flush_tracing()
        return _error_response(500, e)
    finally:
        await llm_client.close()

    if result.tool_calls:
        logger.info(
            f"[{execution_id}] Tool calls invoked: {', '.join(c.name for c in result.tool_calls)}"
        )
    tracing_context.end_trace(
        output=result.message,
        status="success",
        metadata={"iterations": result.iterations, "ceiling_reached": result.ceiling_reached},
    )
    _flush_tracing()

    return ChatResponse(
        message=result.message,
        session_id=session_id,
        character_id=body.character_id,
        tool_calls=[call.to_payload() for call in result.tool_calls] if result.tool_calls else None,
        disk_id=disk_id,
        ceiling_reached=result.ceiling_reached,
    )
