"""fund-watch: fund price change notifier."""

__version__ = "0.1.0"
