"""Paper events: the append-only log and its projection into block rows."""

from paer.events.projector import StateProjector
from paer.events.store import EventStore

__all__ = ["EventStore", "StateProjector"]
