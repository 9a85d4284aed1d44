"""
AI dispatch facade.

generate() is the single entry point: pick the adapter, resolve the active key,
make exactly one provider call, normalize the response. Every attempt produces
a UsageEvent for the configured recorder; successful calls stamp the key's
last_used_at.
"""

import logging
from typing import Dict, Optional, Tuple, Any

import httpx
from cryptography.fernet import InvalidToken

from ideabox.config import settings
from ideabox.core.ai_providers import (
    AIServiceError,
    ConnectionTest,
    GenerationRequest,
    GenerationResult,
    NoActiveKey,
    ProviderAdapter,
    ProviderRequest,
    TransportError,
    get_adapter,
    service_name,
)
from ideabox.core.credentials import CredentialStore, ResolvedCredential
from ideabox.core.usage import UsageEvent, UsageRecorder
from ideabox.models.api_key import Service

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are an AI that summarizes text content. Given text content, "
    "provide a concise summary in 1-2 sentences."
)


class AIService:
    """Dispatches generation requests to the configured providers."""

    def __init__(
        self,
        credentials: CredentialStore,
        recorder: Optional[UsageRecorder] = None,
        timeout: Optional[float] = None,
        default_models: Optional[Dict[str, str]] = None,
        fallback_keys: Optional[Dict[str, str]] = None,
    ):
        self.credentials = credentials
        self.recorder = recorder
        self.timeout = timeout if timeout is not None else settings.AI_REQUEST_TIMEOUT
        self.default_models = default_models if default_models is not None else settings.default_models()
        self.fallback_keys = fallback_keys if fallback_keys is not None else settings.fallback_keys()

    def generate(
        self,
        request: GenerationRequest,
        operation: str = "generate",
        user_id: Optional[str] = None,
    ) -> GenerationResult:
        """Run one dispatch.

        Raises:
            UnsupportedService: no adapter for request.service (checked first).
            NoActiveKey: no stored or fallback key for the service.
            ProviderError: provider answered with an error.
            TransportError: the provider could not be reached.
        """
        event = UsageEvent(
            operation=operation,
            service=service_name(request.service),
            model=request.model,
            user_id=user_id,
        )
        try:
            adapter = get_adapter(request.service)
            model = request.model or self.default_models[adapter.service.value]
            event.model = model

            credential = self._resolve(adapter.service)
            event.api_key_id = credential.key_id

            provider_request = adapter.build_request(
                credential.secret, model, request.prompt, request.options, request.system,
            )
            status_code, data = self._send(adapter, provider_request)
            result = adapter.handle_response(status_code, data, model)

            event.successful = True
            event.model = result.model
            event.usage = result.usage
            event.tokens_used = adapter.tokens_used(result.usage)
            if credential.key_id:
                self.credentials.touch_last_used(credential.key_id)
            logger.info(
                "AI %s via %s/%s succeeded (tokens=%s)",
                operation, event.service, event.model, event.tokens_used,
            )
            return result
        except AIServiceError as e:
            event.error = str(e)
            logger.warning("AI %s via %s failed: %s", operation, event.service, e)
            raise
        except Exception as e:
            event.error = str(e)
            logger.exception("AI %s via %s failed unexpectedly", operation, event.service)
            raise
        finally:
            self._record(event)

    def summarize(self, content: str, user_id: Optional[str] = None) -> str:
        """Short summary of a piece of content, using OpenAI."""
        request = GenerationRequest(
            service=Service.openai,
            prompt=content,
            model=settings.SUMMARY_MODEL,
            options={"temperature": 0.5, "max_tokens": 100},
            system=SUMMARY_SYSTEM_PROMPT,
        )
        return self.generate(request, operation="summarize", user_id=user_id).content.strip()

    def _resolve(self, service: Service) -> ResolvedCredential:
        credential = self.credentials.get_active_key(service)
        if credential is not None:
            return credential
        fallback = self.fallback_keys.get(service.value)
        if fallback:
            logger.info("No stored key for %s, using environment fallback", service.value)
            return ResolvedCredential(key_id=None, secret=fallback)
        raise NoActiveKey(service.value)

    def test_connection(self, key_id: str, model: Optional[str] = None) -> ConnectionTest:
        """Check a stored key against its provider's model listing.

        The key does not need to be active. No usage row is written and
        last_used_at is left alone. Unknown key ids raise KeyNotFound.
        """
        record = self.credentials.get(key_id)
        try:
            adapter = get_adapter(record.service)
            model = model or self.default_models.get(adapter.service.value)
            secret = self.credentials.reveal(key_id)
            status_code, data = self._send(adapter, adapter.build_probe_request(secret))
        except AIServiceError as e:
            logger.warning("Connection test for API key %s failed: %s", key_id, e)
            return ConnectionTest(success=False, error=str(e))
        except InvalidToken:
            logger.error("API key %s cannot be decrypted", key_id)
            return ConnectionTest(success=False, error="Stored API key cannot be decrypted")

        result = adapter.check_listing(status_code, data, model)
        logger.info(
            "Connection test for API key %s (%s): success=%s model_available=%s",
            key_id, record.service, result.success, result.model_available,
        )
        return result

    def _send(self, adapter: ProviderAdapter, request: ProviderRequest) -> Tuple[int, Any]:
        """Send the request. Returns (status_code, parsed JSON or None)."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                if request.method == "GET":
                    response = client.get(
                        request.url,
                        headers=request.headers,
                        params=request.params or None,
                    )
                else:
                    response = client.post(
                        request.url,
                        headers=request.headers,
                        params=request.params or None,
                        json=request.body,
                    )
        except httpx.HTTPError as e:
            raise TransportError(f"{adapter.display_name} request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None
        return response.status_code, data

    def _record(self, event: UsageEvent) -> None:
        if self.recorder is None:
            return
        try:
            self.recorder(event)
        except Exception:
            logger.exception("Failed to record AI usage for %s", event.operation)
