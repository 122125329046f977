from taskbridge.observability.logging_setup import configure_logging, track_performance

__all__ = ["configure_logging", "track_performance"]
