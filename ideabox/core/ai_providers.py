"""
AI provider adapters.

One adapter per live service (OpenAI, Perplexity, Anthropic, Google). Each
knows how to build the provider-specific HTTP request and how to turn the
provider's response body into a GenerationResult. Usage data is passed through
in the provider's native shape.

The registry is closed: `custom` is a valid Service but has no adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

from ideabox.models.api_key import Service

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass
class GenerationRequest:
    service: Union[Service, str]
    prompt: str
    model: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    system: Optional[str] = None


@dataclass
class GenerationResult:
    """Normalized response from any provider."""
    content: str
    model: str
    usage: Optional[Dict] = None  # native shape, diagnostic only
    raw: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "usage": self.usage,
            "raw": self.raw,
        }


@dataclass
class ProviderRequest:
    """Everything needed for one outbound call."""
    url: str
    headers: Dict[str, str]
    body: Optional[Dict[str, Any]] = None
    params: Dict[str, str] = field(default_factory=dict)
    method: str = "POST"

    def __repr__(self):
        # params may carry the Google API key
        return f"<ProviderRequest({self.method} {self.url})>"


@dataclass
class ConnectionTest:
    """Outcome of checking a key against the provider's model listing."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    model_available: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "model_available": self.model_available,
        }


class AIServiceError(Exception):
    """Base exception for dispatch failures."""
    status_code = 500


class NoActiveKey(AIServiceError):
    """No credential is configured for the requested service."""
    status_code = 400

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"No active API key found for {service}")


class UnsupportedService(AIServiceError):
    """The requested service has no adapter."""
    status_code = 400

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Unsupported service: {service}")


class ProviderError(AIServiceError):
    """The upstream API returned an error response."""
    status_code = 502


class TransportError(AIServiceError):
    """Network-level failure talking to the provider (DNS, reset, timeout)."""
    status_code = 504


def service_name(service: Union[Service, str]) -> str:
    return service.value if isinstance(service, Service) else str(service)


class ProviderAdapter(ABC):
    """Builds requests for and parses responses from one provider."""

    service: Service
    display_name: str
    # Option keys the provider rejects; dropped before sending
    unsupported_options: frozenset = frozenset()

    @abstractmethod
    def build_request(
        self,
        secret: str,
        model: str,
        prompt: str,
        options: Optional[Dict] = None,
        system: Optional[str] = None,
    ) -> ProviderRequest:
        ...

    @abstractmethod
    def parse_response(self, data: Dict, model: str) -> GenerationResult:
        """Parse a successful provider payload. May raise KeyError/IndexError/TypeError."""
        ...

    @abstractmethod
    def tokens_used(self, usage: Optional[Dict]) -> Optional[int]:
        """Reduce native usage to a single count for the usage log."""
        ...

    @abstractmethod
    def build_probe_request(self, secret: str) -> ProviderRequest:
        """GET request for the provider's model listing."""
        ...

    @abstractmethod
    def listed_models(self, data: Dict) -> List[str]:
        """Model ids from a model listing payload."""
        ...

    @property
    def generic_error(self) -> str:
        return f"{self.display_name} API error"

    def error_message(self, data: Any) -> str:
        """Most specific message in the provider's error envelope."""
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return self.generic_error

    def handle_response(self, status_code: int, data: Any, model: str) -> GenerationResult:
        if not 200 <= status_code < 300:
            raise ProviderError(self.error_message(data))
        if not isinstance(data, dict):
            raise ProviderError(self.generic_error)
        if data.get("error"):
            raise ProviderError(self.error_message(data))
        try:
            result = self.parse_response(data, model)
        except (KeyError, IndexError, TypeError):
            raise ProviderError(f"{self.generic_error}: unexpected response shape")
        # null content shows up for refusals and tool-call replies
        if not isinstance(result.content, str):
            raise ProviderError(f"{self.generic_error}: unexpected response shape")
        return result

    def check_listing(self, status_code: int, data: Any, model: Optional[str]) -> ConnectionTest:
        """Turn a model listing response into a ConnectionTest."""
        if not 200 <= status_code < 300:
            error = self.error_message(data)
            if error == self.generic_error:
                error = f"{self.display_name} API returned status {status_code}"
            return ConnectionTest(success=False, error=error)
        try:
            models = self.listed_models(data)
        except (KeyError, IndexError, TypeError, AttributeError):
            return ConnectionTest(success=False, error=f"{self.generic_error}: unexpected model listing")
        return ConnectionTest(
            success=True,
            message=f"Successfully connected to {self.display_name} API",
            model_available=(model in models) if model else None,
        )

    def _filter_options(self, options: Optional[Dict]) -> Dict:
        return {
            k: v for k, v in (options or {}).items()
            if v is not None and k not in self.unsupported_options
        }


class _ChatCompletionsAdapter(ProviderAdapter):
    """OpenAI-style chat completions (system + user messages, bearer auth)."""

    BASE_URL: str

    def build_request(self, secret, model, prompt, options=None, system=None):
        headers = {
            "Authorization": f"Bearer {secret}",
            "Content-Type": "application/json",
        }
        body = {
            "model": model,
            "messages": [
                {"role": "system", "content": system or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            **self._filter_options(options),
        }
        return ProviderRequest(url=self.BASE_URL, headers=headers, body=body)

    def parse_response(self, data, model):
        return GenerationResult(
            content=data["choices"][0]["message"]["content"],
            model=data.get("model") or model,
            usage=_as_dict(data.get("usage")),
            raw=data,
        )

    def tokens_used(self, usage):
        if not isinstance(usage, dict):
            return None
        return usage.get("total_tokens")

    def build_probe_request(self, secret):
        return ProviderRequest(
            url=self.MODELS_URL,
            headers={"Authorization": f"Bearer {secret}"},
            method="GET",
        )

    def listed_models(self, data):
        return [m["id"] for m in data["data"]]


class OpenAIAdapter(_ChatCompletionsAdapter):
    service = Service.openai
    display_name = "OpenAI"
    BASE_URL = "https://api.openai.com/v1/chat/completions"
    MODELS_URL = "https://api.openai.com/v1/models"
    unsupported_options = frozenset({"top_k"})


class PerplexityAdapter(_ChatCompletionsAdapter):
    service = Service.perplexity
    display_name = "Perplexity"
    BASE_URL = "https://api.perplexity.ai/chat/completions"
    MODELS_URL = "https://api.perplexity.ai/models"


class AnthropicAdapter(ProviderAdapter):
    service = Service.anthropic
    display_name = "Anthropic"
    BASE_URL = "https://api.anthropic.com/v1/messages"
    MODELS_URL = "https://api.anthropic.com/v1/models"
    API_VERSION = "2023-06-01"
    DEFAULT_MAX_TOKENS = 1000

    def _headers(self, secret):
        return {
            "x-api-key": secret,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    def build_request(self, secret, model, prompt, options=None, system=None):
        headers = self._headers(secret)
        params = self._filter_options(options)
        body = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": params.pop("max_tokens", self.DEFAULT_MAX_TOKENS),
            **params,
        }
        if system:
            body["system"] = system
        return ProviderRequest(url=self.BASE_URL, headers=headers, body=body)

    def parse_response(self, data, model):
        usage = _as_dict(data.get("usage")) or {}
        return GenerationResult(
            content=data["content"][0]["text"],
            model=data.get("model") or model,
            usage={
                "input_tokens": usage.get("input_tokens"),
                "output_tokens": usage.get("output_tokens"),
            },
            raw=data,
        )

    def tokens_used(self, usage):
        if not isinstance(usage, dict):
            return None
        counts = [usage.get("input_tokens"), usage.get("output_tokens")]
        counts = [c for c in counts if isinstance(c, int)]
        return sum(counts) if counts else None

    def build_probe_request(self, secret):
        return ProviderRequest(url=self.MODELS_URL, headers=self._headers(secret), method="GET")

    def listed_models(self, data):
        return [m["id"] for m in data["data"]]


class GoogleAdapter(ProviderAdapter):
    """Gemini generateContent. The key travels as a query parameter."""

    service = Service.google
    display_name = "Google AI"
    BASE_URL = "https://generativelanguage.googleapis.com/v1/models"

    GENERATION_DEFAULTS = {
        "max_tokens": ("maxOutputTokens", 1000),
        "temperature": ("temperature", 0.7),
        "top_p": ("topP", 0.95),
        "top_k": ("topK", 40),
    }

    def build_request(self, secret, model, prompt, options=None, system=None):
        options = self._filter_options(options)
        generation_config = {
            name: options.get(option, default)
            for option, (name, default) in self.GENERATION_DEFAULTS.items()
        }
        parts = [{"text": system}] if system else []
        parts.append({"text": prompt})
        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        # The model is caller input and the key rides along as ?key=
        return ProviderRequest(
            url=f"{self.BASE_URL}/{quote(model, safe='')}:generateContent",
            headers={"Content-Type": "application/json"},
            body=body,
            params={"key": secret},
        )

    def parse_response(self, data, model):
        # Gemini does not echo the model name
        return GenerationResult(
            content=data["candidates"][0]["content"]["parts"][0]["text"],
            model=model,
            usage=_as_dict(data.get("usageMetadata")),
            raw=data,
        )

    def tokens_used(self, usage):
        if not isinstance(usage, dict):
            return None
        return usage.get("totalTokenCount")

    def build_probe_request(self, secret):
        return ProviderRequest(url=self.BASE_URL, headers={}, params={"key": secret}, method="GET")

    def listed_models(self, data):
        # Listed as "models/gemini-1.5-pro"
        return [m["name"].split("/", 1)[-1] for m in data["models"]]


def _as_dict(value: Any) -> Optional[Dict]:
    return value if isinstance(value, dict) else None


# --- Adapter registry ---

ADAPTERS: Dict[Service, ProviderAdapter] = {
    Service.openai: OpenAIAdapter(),
    Service.perplexity: PerplexityAdapter(),
    Service.anthropic: AnthropicAdapter(),
    Service.google: GoogleAdapter(),
}


def get_adapter(service: Union[Service, str]) -> ProviderAdapter:
    """Look up the adapter for a service, or raise UnsupportedService."""
    name = service_name(service)
    try:
        adapter = ADAPTERS.get(Service(name))
    except ValueError:
        adapter = None
    if adapter is None:
        raise UnsupportedService(name)
    return adapter


def supported_services() -> list[str]:
    return [s.value for s in ADAPTERS]
