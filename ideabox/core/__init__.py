from ideabox.core.ai_providers import (
    ADAPTERS,
    AIServiceError,
    GenerationRequest,
    GenerationResult,
    NoActiveKey,
    ProviderError,
    TransportError,
    UnsupportedService,
    get_adapter,
)
from ideabox.core.ai_service import AIService
from ideabox.core.credentials import (
    CredentialStore,
    InMemoryCredentialRepository,
    SqlCredentialRepository,
    KeyNotFound,
    ActivationConflict,
)
from ideabox.core.encryption import encrypt_secret, decrypt_secret
