"""Plugin-based cron task scheduler with an AHR999 auto-buy task and push notifications."""

__version__ = "0.1.0"