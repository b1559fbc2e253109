"""TrendClaw - client and niche monitoring backed by the OpenClaw gateway."""

__version__ = "1.0.0"
