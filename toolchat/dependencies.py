"""Dependency injection providers for FastAPI."""

from fastapi import Depends

from toolchat.clients.anthropic import AnthropicConfig, get_anthropic_client
from toolchat.config import Settings, get_settings
from toolchat.services.background import BackgroundTaskRunner
from toolchat.services.orchestrator import ChatOrchestrator, ModelClient
from toolchat.services.relay import CoordinationRelay
from toolchat.services.store import SessionStore, build_session_store
from toolchat.tools.registry import ToolsRegistry, get_tools_registry

# Global singleton instances, created on first use
_session_store: SessionStore | None = None
_store_initialized = False
_background_runner: BackgroundTaskRunner | None = None
_relay: CoordinationRelay | None = None
_relay_initialized = False


def get_session_store() -> SessionStore | None:
    """Return the configured session store, or None when storage is disabled."""
    global _session_store, _store_initialized
    if not _store_initialized:
        _session_store = build_session_store(get_settings())
        _store_initialized = True
    return _session_store


def get_background_runner() -> BackgroundTaskRunner:
    """Return the singleton background task runner."""
    global _background_runner
    if _background_runner is None:
        _background_runner = BackgroundTaskRunner()
    return _background_runner


def get_coordination_relay() -> CoordinationRelay | None:
    """Return the coordinator client if COORDINATOR_URL is configured."""
    global _relay, _relay_initialized
    if not _relay_initialized:
        settings = get_settings()
        if settings.coordinator_url:
            _relay = CoordinationRelay(settings.coordinator_url, timeout=settings.coordinator_timeout_seconds)
        _relay_initialized = True
    return _relay


def get_model_client() -> ModelClient:
    """Return the Anthropic client; raises ConfigurationError without an API key."""
    settings = get_settings()
    return get_anthropic_client(
        api_key=settings.anthropic_api_key,
        config=AnthropicConfig(
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            max_message_tokens=settings.max_message_tokens,
            requests_per_minute=settings.requests_per_minute,
            tokens_per_minute=settings.tokens_per_minute,
        ),
    )


def get_orchestrator(
    model: ModelClient = Depends(get_model_client),
    registry: ToolsRegistry = Depends(get_tools_registry),
    background: BackgroundTaskRunner = Depends(get_background_runner),
    store: SessionStore | None = Depends(get_session_store),
    relay: CoordinationRelay | None = Depends(get_coordination_relay),
    settings: Settings = Depends(get_settings),
) -> ChatOrchestrator:
    """Build the orchestrator for one request from the shared services."""
    return ChatOrchestrator(
        model=model,
        registry=registry,
        background=background,
        store=store,
        relay=relay,
        system_prompt=settings.system_prompt,
        max_steps=settings.max_steps,
        session_ttl_seconds=settings.session_ttl_seconds,
    )


async def shutdown_services() -> None:
    """Drain background work and close connections."""
    global _session_store, _store_initialized, _relay, _relay_initialized

    if _background_runner is not None:
        await _background_runner.drain(timeout=10.0)
    if _relay is not None:
        await _relay.close()
    if _session_store is not None:
        await _session_store.close()

    _session_store = None
    _store_initialized = False
    _relay = None
    _relay_initialized = False
