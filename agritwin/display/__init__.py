"""Terminal display service."""

from .data_fetcher import DataFetcher
from .terminal_monitor import TerminalMonitor


def main():
    """Entry point for display service."""
    import argparse
    import sys

    from agritwin.shared.errors import ConfigError
    from agritwin.shared.logging import setup_logging
    from agritwin.shared.settings import load_config

    parser = argparse.ArgumentParser(description="AgriTwin terminal monitor")
    parser.add_argument("-c", "--config", help="Path to config YAML")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # The live display owns the terminal, so logs go to the file only
    setup_logging(config.log_level, config.log_file, console=False)

    store = config.database.create_store()
    fetcher = DataFetcher(store)
    monitor = TerminalMonitor(fetcher)

    try:
        monitor.run()
    except KeyboardInterrupt:
        pass
    finally:
        store.close()


__all__ = ["DataFetcher", "TerminalMonitor", "main"]
