"""kiosk_lite - stale-while-revalidate calendar and tasks server for a kiosk display.

Keeps imports light so the package can be inspected without starting the
server or pulling in aiohttp.
"""

__version__ = "1.0.0"

from typing import Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream colorized output to the console.

    Honors KIOSK_DEBUG (truthy values: "1", "true", "yes", "on"), which forces
    DEBUG verbosity without changing configuration.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("KIOSK_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> int:
    """Load configuration and run the requested command.

    Args:
        args: Optional argparse namespace with ``port``, ``config``,
            ``refresh`` and ``oauth_bootstrap`` attributes

    Returns:
        Process exit code

    Behavior:
    - Initialize console logging early using KIOSK_LOG_LEVEL (env) if present.
    - Load .env, the optional YAML file and environment variables; apply the
      command line port override; validate.
    - ``--oauth-bootstrap`` runs the consent flow; ``--refresh`` refreshes
      once; otherwise the server runs until signalled.
    """
    import logging
    import os
    from pathlib import Path

    _init_logging(os.environ.get("KIOSK_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from kiosk_lite.api import server
    from kiosk_lite.core.config_loader import ConfigurationError
    from kiosk_lite.core.config_manager import ConfigManager

    config_path = getattr(args, "config", None)
    overrides = {"server_port": getattr(args, "port", None)}

    manager = ConfigManager(config_path=Path(config_path) if config_path else None)
    try:
        config = manager.load_full_config(overrides=overrides)
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
    logger.debug(
        "Effective root log level: %s",
        logging.getLevelName(logging.getLogger().getEffectiveLevel()),
    )

    if getattr(args, "oauth_bootstrap", False):
        if not config.has_oauth_credentials:
            logger.error("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be set for the OAuth bootstrap")
            return 1
        from kiosk_lite.sources import OAuthError

        try:
            server.oauth_bootstrap(config)
        except OAuthError as e:
            logger.error("OAuth bootstrap failed: %s", e)
            return 1
        logger.info("Tokens saved; you can now start the server")
        return 0

    if getattr(args, "refresh", False):
        results = server.refresh_once(config)
        for name, outcome in results.items():
            logger.info("%s: %s", name, outcome)
        return 0 if all(o in ("refreshed", "not_modified") for o in results.values()) else 1

    logger.info("Starting kiosk_lite server")
    server.start_server(config)
    return 0
