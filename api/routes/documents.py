from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from api.dependencies import Components, get_components
from deep_research.chat import ChatSessionManager, export_filename

router = APIRouter(prefix="/documents", tags=["documents"])


class ChatOpenRequest(BaseModel):
    title: str = ""


class ChatQuestion(BaseModel):
    question: str


def _session_view(chat: ChatSessionManager) -> dict:
    return {
        "document_id": chat.document_id,
        "state": chat.state.value,
        "input_enabled": chat.input_enabled,
        "messages": [msg.to_dict() for msg in chat.messages],
    }


def _require_open(chat: ChatSessionManager, document_id: str) -> None:
    if chat.document_id != document_id:
        raise HTTPException(status_code=409, detail=f"Chat is not open for document: {document_id}")


@router.post("/{document_id}/chat/open")
async def open_chat(
    document_id: str,
    body: Optional[ChatOpenRequest] = None,
    components: Components = Depends(get_components),
):
    chat = components.chat
    chat.switch_document(document_id, title=body.title if body else "")
    return _session_view(chat)


@router.post("/{document_id}/chat", status_code=202)
async def ask_question(document_id: str, body: ChatQuestion, components: Components = Depends(get_components)):
    chat = components.chat
    _require_open(chat, document_id)
    accepted = await chat.ask(body.question)
    return {"accepted": accepted}


@router.get("/{document_id}/chat")
async def get_chat(document_id: str, components: Components = Depends(get_components)):
    chat = components.chat
    _require_open(chat, document_id)
    return _session_view(chat)


@router.get("/{document_id}/chat/transcript", response_class=PlainTextResponse)
async def get_transcript(document_id: str, components: Components = Depends(get_components)):
    chat = components.chat
    _require_open(chat, document_id)
    return chat.transcript()


@router.get("/{document_id}/chat/export")
async def export_chat(document_id: str, components: Components = Depends(get_components)):
    chat = components.chat
    _require_open(chat, document_id)
    if not any(not msg.thinking for msg in chat.messages):
        raise HTTPException(status_code=404, detail="No chat history to download")
    title = chat.session.title or document_id
    return Response(
        content=chat.export_markdown(),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(title)}"'},
    )


@router.delete("/chat")
async def close_chat(components: Components = Depends(get_components)):
    components.chat.close()
    return {"status": "closed"}
