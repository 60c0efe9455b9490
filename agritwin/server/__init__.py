"""Twin backend service: simulation plus the real-time server."""

from .service import TwinService


def main():
    """Entry point for the twin server."""
    import argparse
    import asyncio
    import sys

    from agritwin.shared.errors import ConfigError
    from agritwin.shared.logging import setup_logging
    from agritwin.shared.settings import load_config

    parser = argparse.ArgumentParser(description="AgriTwin sensor twin server")
    parser.add_argument("-c", "--config", help="Path to config YAML")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, config.log_file)

    service = TwinService(config)
    try:
        asyncio.run(service.serve())
    except KeyboardInterrupt:
        pass


__all__ = ["TwinService", "main"]
