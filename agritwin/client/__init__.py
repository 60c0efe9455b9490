"""Real-time client for the twin server."""

from .client import TwinClient
from .reconnect import ConnectionState, ReconnectPolicy


def main():
    """Entry point: connect and log every event received."""
    import argparse
    import asyncio
    import logging
    import sys

    from agritwin.shared.errors import ConfigError
    from agritwin.shared.logging import setup_logging
    from agritwin.shared.settings import load_config

    parser = argparse.ArgumentParser(description="AgriTwin real-time client")
    parser.add_argument("-c", "--config", help="Path to config YAML")
    parser.add_argument("--url", help="WebSocket URL (overrides config)")
    parser.add_argument("--zone", action="append", default=[], help="Also subscribe to a zone")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)
    logger = logging.getLogger("agritwin.client")

    policy = ReconnectPolicy(
        base_delay=config.client.reconnect_delay,
        max_delay=config.client.max_reconnect_delay,
        max_attempts=config.client.max_reconnect_attempts,
    )
    client = TwinClient(args.url or config.client.url, policy)
    for zone_id in args.zone:
        client.add_subscription("subscribe:zone", zone_id)

    def log_event(frame):
        data = frame["data"]
        size = f"{len(data)} item(s)" if isinstance(data, list) else data
        logger.info(f"{frame['event']}: {size}")

    client.on("*", log_event)

    try:
        final_state = asyncio.run(client.run())
        logger.info(f"Client finished in state {final_state.value}")
    except KeyboardInterrupt:
        pass


__all__ = ["ConnectionState", "ReconnectPolicy", "TwinClient", "main"]
