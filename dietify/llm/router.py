from dietify.config import ConfigurationError, settings
from dietify.llm.base import LLMProvider
from dietify.llm.providers.anthropic import AnthropicProvider
from dietify.llm.providers.openai import OpenAIProvider
from dietify.observability.logger import get_logger

log = get_logger("llm_router")

PROVIDERS = {
    "openai": lambda: OpenAIProvider(),
    "azure": lambda: OpenAIProvider(azure=True),
    "anthropic": lambda: AnthropicProvider(),
}


def create_provider(name: str | None = None) -> LLMProvider:
    """Build the configured provider. No fallback chain: a missing key is a
    configuration error, and retries belong to the SDK transport."""
    name = name or settings.llm_provider
    factory = PROVIDERS.get(name)
    if factory is None:
        raise ConfigurationError(f"Unknown LLM provider: {name}")
    provider = factory()
    if not provider.is_available():
        log.warning("provider_unavailable", provider=provider.name)
        raise ConfigurationError(f"LLM provider '{provider.name}' is not configured")
    log.info("provider_available", provider=provider.name, models=provider.get_models())
    return provider
