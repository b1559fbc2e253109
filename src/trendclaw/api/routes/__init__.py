from trendclaw.api.routes import health, monitoring, signals, webhooks

__all__ = ["health", "monitoring", "signals", "webhooks"]
