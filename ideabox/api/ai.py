from typing import Optional

from fastapi import APIRouter, Depends

from ideabox.api.deps import get_ai_service
from ideabox.core.ai_providers import ADAPTERS, GenerationRequest
from ideabox.core.ai_service import AIService
from ideabox.core.auth import get_current_user
from ideabox.models.user import User
from ideabox.schemas.ai import (
    GenerateRequest,
    GenerateResponse,
    ProviderInfo,
    ProvidersResponse,
    SummarizeRequest,
    SummarizeResponse,
)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.get("/providers", response_model=ProvidersResponse)
def list_providers(service: AIService = Depends(get_ai_service)):
    """Services that have an adapter, with their default models."""
    return ProvidersResponse(providers=[
        ProviderInfo(
            service=s.value,
            name=adapter.display_name,
            default_model=service.default_models[s.value],
        )
        for s, adapter in ADAPTERS.items()
    ])


@router.post("/generate", response_model=GenerateResponse)
def generate(
    data: GenerateRequest,
    service: AIService = Depends(get_ai_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    """Send a prompt to the active key of the requested provider.

    Errors come back as {"error": message}: 400 when the service is unsupported
    or has no active key, 502 for provider errors (including unusable success
    payloads), 504 for network failures. 500 is reserved for unexpected server
    faults, so clients should not treat a bare 500 as a provider failure.
    """
    result = service.generate(
        GenerationRequest(
            service=data.service,
            prompt=data.prompt,
            model=data.model,
            options=data.options.model_dump(exclude_none=True),
            system=data.system,
        ),
        operation=data.operation,
        user_id=current_user.id if current_user else None,
    )
    return result.to_dict()


@router.post("/summarize", response_model=SummarizeResponse)
def summarize(
    data: SummarizeRequest,
    service: AIService = Depends(get_ai_service),
    current_user: Optional[User] = Depends(get_current_user),
):
    summary = service.summarize(data.content, user_id=current_user.id if current_user else None)
    return {"summary": summary}
