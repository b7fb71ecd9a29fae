"""Client entry point for UI hosts."""

from fixmate_client.app import App
from fixmate_client.config import Config
from fixmate_client.logging import setup_logging


def create_app(config: Config | None = None) -> App:
    """Load configuration, configure logging and build the client facade."""
    config = config or Config()
    setup_logging(config.debug)
    return App(config)
