"""
Chat API Routes

Ask a question about one video (``video_id``) or every processed video of a
channel (``channel_id``). Answers cite transcript timestamps.
"""

import logging

from fastapi import APIRouter

from mindsift.api.deps import Orchestrator
from mindsift.schemas.chat import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
async def chat(request: ChatRequest, orchestrator: Orchestrator) -> ChatResponse:
    """
    Answer a question from the transcripts in scope.

    Returns the answer, its resolved timestamp citations and how many
    chunks were retrieved. ``found`` is false when nothing relevant was
    retrieved and the model was not called.
    """
    return await orchestrator.chat(request)
