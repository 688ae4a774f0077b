"""
AI Routes
POST /ai/generate, POST /ai/stream, GET /ai/models
"""

import json
from typing import AsyncIterator, List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from ai_gateway.schemas.llm import GenerateRequest, GenerateResponse, ModelAvailability
from ai_gateway.services.data_structures import StreamChunk
from ai_gateway.services.exceptions import (
    AllProvidersFailedError,
    GatewayError,
    InvalidRequestError,
    NoProviderAvailableError,
)
from ai_gateway.services.gateway import AIGateway
from ai_gateway.utils.logger import setup_logger

router = APIRouter(prefix="/ai", tags=["ai"])
logger = setup_logger(__name__)


def get_gateway(request: Request) -> AIGateway:
    """The gateway instance built at startup"""
    return request.app.state.gateway


def to_http_exception(error: GatewayError) -> HTTPException:
    """Map gateway failures to status codes callers can react to"""
    if isinstance(error, InvalidRequestError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_request", "message": str(error)},
        )
    if isinstance(error, NoProviderAvailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "no_provider_available", "message": str(error), "request_id": error.request_id},
        )
    if isinstance(error, AllProvidersFailedError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "all_providers_failed", "message": str(error), "attempted_models": error.attempted_models},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "gateway_error", "message": str(error)},
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate(
    body: GenerateRequest,
    gateway: AIGateway = Depends(get_gateway),
) -> GenerateResponse:
    """Generate a completed response, falling back across providers"""
    logger.info(f"Generate request: model={body.model}, prompt_length={len(body.prompt)}")

    try:
        response = await gateway.process(body.to_generation_request())
    except GatewayError as e:
        raise to_http_exception(e)

    return GenerateResponse.from_response(response)


def _sse(chunk: StreamChunk) -> str:
    return f"data: {json.dumps(chunk.to_dict())}\n\n"


@router.post("/stream")
async def stream(
    body: GenerateRequest,
    gateway: AIGateway = Depends(get_gateway),
) -> StreamingResponse:
    """
    Stream chunks as server-sent events.
    The first chunk is pulled before the response starts so that chain
    exhaustion still maps to an HTTP error status.
    """
    logger.info(f"Stream request: model={body.model}, prompt_length={len(body.prompt)}")

    chunks = gateway.stream(body.to_generation_request(stream=True))
    try:
        first = await chunks.__anext__()
    except StopAsyncIteration:
        first = None
    except GatewayError as e:
        raise to_http_exception(e)

    async def event_source() -> AsyncIterator[str]:
        try:
            if first is not None:
                yield _sse(first)
            async for chunk in chunks:
                yield _sse(chunk)
        finally:
            await chunks.aclose()

    return StreamingResponse(event_source(), media_type="text/event-stream")


@router.get("/models", response_model=List[ModelAvailability])
async def list_models(gateway: AIGateway = Depends(get_gateway)) -> List[ModelAvailability]:
    """Every registered model and whether its provider is currently available"""
    return [ModelAvailability(**entry) for entry in gateway.get_available_models()]
