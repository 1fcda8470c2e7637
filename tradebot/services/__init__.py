from .events import EventHub

__all__ = ["EventHub"]
