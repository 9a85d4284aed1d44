from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class GenerationOptions(BaseModel):
    """Known tuning knobs; other keys are passed through to the provider."""
    model_config = ConfigDict(extra="allow")

    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, ge=1)
    top_p: Optional[float] = Field(None, ge=0, le=1)
    top_k: Optional[int] = Field(None, ge=1)


class GenerateRequest(BaseModel):
    # Plain string so unknown services reach the dispatcher and fail as unsupported
    service: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    system: Optional[str] = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    operation: str = Field("generate", min_length=1, max_length=100)


class GenerateResponse(BaseModel):
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    raw: Dict[str, Any]


class SummarizeRequest(BaseModel):
    content: str = Field(..., min_length=1)


class SummarizeResponse(BaseModel):
    summary: str


class ProviderInfo(BaseModel):
    service: str
    name: str
    default_model: str


class ProvidersResponse(BaseModel):
    providers: List[ProviderInfo]
