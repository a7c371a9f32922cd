# Adapters between the exported retail tables and the engine's typed records

from .frames import FrameFactSource
from .loader import RetailExportLoader

__all__ = ["FrameFactSource", "RetailExportLoader"]
