"""Know Your Rights MCP server application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Protocol

from fastmcp import FastMCP

from kyr.core.audit.logger import AuditLogger
from kyr.core.config.settings import Settings, get_settings
from kyr.core.llm.client import TextGenerationClient
from kyr.core.llm.provider import LLMProvider, provider_from_settings
from kyr.core.storage.database import RightsDatabase
from kyr.core.storage.encryption import EncryptionError, FieldEncryptor
from kyr.core.storage.gateway import PersistenceGateway
from kyr.core.storage.repository import RightsRepository
from kyr.domains.rights.domain_logic.narrative import ScriptGenerator, SummaryGenerator
from kyr.domains.rights.location.geocoding import BoundingBoxGeocoder, NominatimGeocoder
from kyr.domains.rights.location.provider import LocationProvider
from kyr.domains.rights.location.sources import ReportedPositionSource
from kyr.domains.rights.notifications.channels import ChannelSet, build_channels
from kyr.domains.rights.orchestration.session import RightsSession
from kyr.domains.rights.prompts.rights_prompts import register_rights_prompts
from kyr.domains.rights.resources.rights import register_rights_resources
from kyr.domains.rights.state.store import AppState, AppStore
from kyr.domains.rights.tools.account_tools import register_account_tools
from kyr.domains.rights.tools.alert_tools import register_alert_tools
from kyr.domains.rights.tools.encounter_tools import register_encounter_tools
from kyr.domains.rights.tools.rights_tools import register_rights_tools
from kyr.domains.rights.tools.runner import ToolRunner

logger = logging.getLogger(__name__)

SERVER_NAME = "Know Your Rights"
SERVER_VERSION = "0.1.0"


def _build_text_client(settings: Settings, override: LLMProvider | None) -> TextGenerationClient:
    if override is not None:
        return TextGenerationClient(provider=override, provider_name="override")

    provider_name, provider = provider_from_settings(settings)
    return TextGenerationClient(provider=provider, provider_name=provider_name)


def _build_storage(settings: Settings) -> tuple[RightsDatabase, FieldEncryptor]:
    if settings.encryption_key:
        try:
            encryptor = FieldEncryptor(settings.encryption_key)
            database = RightsDatabase(settings.db_path)
            database.initialize()
            logger.info(
                "Rights store initialized: %s (schema v%d)",
                settings.db_path,
                database.get_schema_version(),
            )
            return database, encryptor
        except EncryptionError as exc:
            logger.error("Failed to initialize storage: %s", exc)

    logger.warning(
        "No usable ENCRYPTION_KEY; using an in-memory database. "
        "Encounters and contacts will be lost on restart."
    )
    database = RightsDatabase(":memory:")
    database.initialize()
    return database, FieldEncryptor(FieldEncryptor.generate_key())


def _build_location(settings: Settings) -> LocationProvider:
    if settings.geocoder == "nominatim":
        geocoder = NominatimGeocoder(
            base_url=settings.nominatim_url,
            user_agent=settings.geocoder_user_agent,
            timeout=settings.location_timeout_s,
        )
        logger.info("Reverse geocoding via Nominatim at %s", settings.nominatim_url)
    else:
        geocoder = BoundingBoxGeocoder()
        logger.info("Reverse geocoding with offline state lookup")
    return LocationProvider(
        ReportedPositionSource(),
        geocoder,
        timeout_s=settings.location_timeout_s,
        maximum_age_s=settings.location_maximum_age_s,
    )


class _Closable(Protocol):
    async def aclose(self) -> None: ...


def build_lifespan(*resources: _Closable) -> Callable[[FastMCP], Any]:
    """Server lifespan that closes ``resources`` when the server shuts down."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        try:
            yield {}
        finally:
            for resource in resources:
                try:
                    await resource.aclose()
                except Exception:
                    logger.exception("Failed to close %s", type(resource).__name__)
            logger.info("Closed %d outbound client set(s)", len(resources))

    return lifespan


def create_app(
    settings: Settings | None = None,
    *,
    repository_override: PersistenceGateway | None = None,
    audit_override: AuditLogger | None = None,
    location_override: LocationProvider | None = None,
    channels_override: ChannelSet | None = None,
    llm_provider_override: LLMProvider | None = None,
    store_override: AppStore | None = None,
) -> FastMCP:
    """Create and configure the Know Your Rights MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Initializes encrypted storage and the audit trail
    3. Creates the text-generation client
    4. Wires location, notification channels and the session store
    5. Registers all tools, resources, and prompts
    """
    settings = settings or get_settings()

    # --- Outbound clients ---
    # Overrides belong to the caller; only what is built here is closed on shutdown.
    owned: list[_Closable] = []
    location = location_override
    if location is None:
        location = _build_location(settings)
        owned.append(location)
    channels = channels_override
    if channels is None:
        channels = build_channels(settings)
        owned.append(channels)

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        lifespan=build_lifespan(*owned),
        instructions=(
            "Know Your Rights: encounter recording and emergency alert server. "
            "Records police encounters with location, alerts trusted contacts, "
            "and provides state-specific rights guidance."
        ),
    )

    # --- Storage and audit ---
    if repository_override is not None:
        repository: PersistenceGateway = repository_override
        audit = audit_override
    else:
        database, encryptor = _build_storage(settings)
        repository = RightsRepository(database, encryptor)
        audit = audit_override or AuditLogger(database)

    # --- Text generation ---
    text_client = _build_text_client(settings, llm_provider_override)

    # --- Session ---
    store = store_override or AppStore(AppState(selected_jurisdiction=settings.default_jurisdiction))
    session = RightsSession(
        store,
        repository,
        location,
        channels,
        audit=audit,
        summaries=SummaryGenerator(text_client),
        scripts=ScriptGenerator(text_client),
        default_jurisdiction=settings.default_jurisdiction,
    )
    runner = ToolRunner(session, audit)

    # --- Register tools ---
    @server.tool
    async def health_check() -> dict:
        """Check server health and return basic status information."""
        state = store.state
        status = {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "signed_in": state.user is not None,
            "encounter_in_progress": state.current_encounter is not None,
            "storage": type(repository).__name__,
            "audit_enabled": audit is not None,
        }
        if isinstance(repository, RightsRepository):
            status["encounters_stored"] = repository.count_encounters()
        return status

    register_account_tools(server, runner)
    register_encounter_tools(server, runner)
    register_alert_tools(server, runner)
    register_rights_tools(server, runner)
    logger.info("Rights tools registered")

    # --- Register resources ---
    register_rights_resources(server)

    # --- Register prompts ---
    register_rights_prompts(server)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
