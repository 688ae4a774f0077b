from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any

from ai_gateway.services.data_structures import (
    GenerationOptions,
    GenerationRequest,
    GenerationResponse,
    RequestMetadata,
)


class GenerationOptionsSchema(BaseModel):
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=32768)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    stream: bool = False
    system_prompt: Optional[str] = Field(default=None, max_length=8000)
    context: Optional[Any] = None


class RequestMetadataSchema(BaseModel):
    user_id: Optional[str] = None
    module_id: Optional[str] = None
    request_id: Optional[str] = None


class GenerateRequest(BaseModel):
    """
    Inbound generation request
    Empty prompts are rejected by the gateway itself with a 400, so the
    schema only guards UTF-8 sanity and size.
    """
    model: str = Field(..., min_length=1, description="Requested model identifier")
    prompt: str = Field(..., max_length=100_000, description="The prompt to send to the model")
    options: GenerationOptionsSchema = Field(default_factory=GenerationOptionsSchema)
    metadata: RequestMetadataSchema = Field(default_factory=RequestMetadataSchema)

    @field_validator('prompt')
    @classmethod
    def validate_utf8_prompt(cls, v):
        """Reject prompts that would break upstream JSON encoding"""
        try:
            v.encode('utf-8').decode('utf-8')
        except UnicodeError:
            raise ValueError("Prompt must be valid UTF-8 text")

        if '\x00' in v:
            raise ValueError("Prompt cannot contain null bytes")

        return v

    def to_generation_request(self, stream: bool = False) -> GenerationRequest:
        options = self.options.model_dump()
        options["stream"] = stream or options["stream"]
        return GenerationRequest(
            model=self.model,
            prompt=self.prompt,
            options=GenerationOptions(**options),
            metadata=RequestMetadata(**self.metadata.model_dump()),
        )


class UsageSchema(BaseModel):
    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost: float


class ResponseMetadataSchema(BaseModel):
    request_id: str
    processing_time_ms: float
    quality: float = Field(..., ge=0.0, le=1.0)
    cached: bool


class GenerateResponse(BaseModel):
    content: str
    model: str
    provider: str
    usage: UsageSchema
    metadata: ResponseMetadataSchema

    @classmethod
    def from_response(cls, response: GenerationResponse) -> "GenerateResponse":
        return cls.model_validate(response.to_dict())


class ModelAvailability(BaseModel):
    model: str
    provider: str
    available: bool


class HealthStatus(BaseModel):
    status: str
    providers: Dict[str, str]  # provider -> open/closed
    cache_entries: int
    housekeeping_running: bool
