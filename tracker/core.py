"""
Service wiring for the tracker.
Builds the shared state objects and runs the server process.
"""

from dataclasses import dataclass
from typing import Optional
from loguru import logger

from tracker import __version__
from tracker.config import TrackerConfig, init_config
from tracker.logging_config import setup_logging
from tracker.live import Broadcaster, ConnectionRegistry, PresenceHub
from tracker.models import CarrierTag
from tracker.tracking import AmazonCarrierAPI, TrackingCache, TrackingService
from tracker.tracking.amazon_session import AmazonSession


@dataclass
class TrackerServices:
    """Shared state handed to request and connection handlers."""

    config: TrackerConfig
    cache: TrackingCache
    registry: ConnectionRegistry
    broadcaster: Broadcaster
    presence: PresenceHub
    tracking: TrackingService
    amazon_session: AmazonSession

    async def close(self):
        await self.amazon_session.close()

    def get_stats(self) -> dict:
        return {
            "version": __version__,
            "connections": len(self.broadcaster),
            "liveUsers": len(self.registry),
            "cachedResults": len(self.cache),
            "amazonSession": self.amazon_session.status.value,
        }


def build_services(config: TrackerConfig) -> TrackerServices:
    """Create every service from configuration."""
    cache = TrackingCache(ttl_seconds=config.cache_ttl_seconds)
    registry = ConnectionRegistry()
    broadcaster = Broadcaster()

    # Credentials are checked lazily, on the first Amazon lookup
    amazon_session = AmazonSession.from_config(config)

    tracking = TrackingService(
        cache=cache,
        broadcaster=broadcaster,
        strategies={CarrierTag.AMAZON: AmazonCarrierAPI(amazon_session)},
    )

    return TrackerServices(
        config=config,
        cache=cache,
        registry=registry,
        broadcaster=broadcaster,
        presence=PresenceHub(registry, broadcaster),
        tracking=tracking,
        amazon_session=amazon_session,
    )


def run_server(
    config_file: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
):
    """
    Run the tracker server (blocking).

    Args:
        config_file: Path to configuration file
        host: Override the configured listen address
        port: Override the configured port
    """
    import uvicorn
    from tracker.server import create_app

    config = init_config(config_file)
    setup_logging(config, console=True)

    errors = config.validate()
    for error in errors:
        if error.startswith("Warning:"):
            logger.warning(error)
        else:
            logger.error(f"Config error: {error}")
    if any(not error.startswith("Warning:") for error in errors):
        raise RuntimeError("Invalid configuration")

    app = create_app(build_services(config))

    host = host or config.host
    port = port or config.port
    logger.info(f"Ultimate Tracker v{__version__} running on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
