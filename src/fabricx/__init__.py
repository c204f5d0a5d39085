"""
FabricX - local Hyperledger Fabric network runtime
"""

__version__ = "0.1.0"

from .core import FabricXService
from .errors import FabricXError
from .registry import NetworkRegistry

__all__ = ["FabricXService", "FabricXError", "NetworkRegistry"]
