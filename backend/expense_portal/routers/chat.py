from fastapi import APIRouter, Depends

from ..dependencies import get_orchestrator
from ..schemas.chat import ChatRequest, ChatResponse
from ..services.assistant import ChatOrchestrator

router = APIRouter(prefix="/api", tags=["Chat"])


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(request: ChatRequest, orchestrator: ChatOrchestrator = Depends(get_orchestrator)):
    """
    Send a message to the expense assistant.

    The assistant can list, create, submit, approve and reject expenses on
    your behalf by calling the same operations as the REST API.

    **History:** the server keeps no conversation state. Send the previous
    turns in `history` (oldest first) to continue a conversation.

    **Errors:** the endpoint always answers 200. When the turn fails,
    `success` is false, `response` holds a generic apology and `error`
    the failure detail.

    **Example queries:**
    - "Show me all pending expenses"
    - "Create a £25.50 travel expense for 10 January 2024"
    - "Approve expense 4"
    """
    return await orchestrator.converse(request.message, request.history)
