from .service import AlertService, should_trigger

__all__ = ["AlertService", "should_trigger"]
