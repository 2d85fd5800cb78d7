"""gpsd sensor collaborator: JSON stream reader and LocationSource adapter."""

from navtrack.gpsd.reader import GpsdReader, SensorEvent
from navtrack.gpsd.source import GpsdLocationSource

__all__ = ["GpsdLocationSource", "GpsdReader", "SensorEvent"]
