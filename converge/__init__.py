"""converge — declarative convergence for a single local machine."""

__version__ = "0.1.0"
