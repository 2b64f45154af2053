"""Value Miner: turn YouTube Shorts into summarized, actionable clips."""

__version__ = "0.1.0"
