"""
TomoBlob command modules
"""

from .base import BaseCommand
from .fit import FitCommand
from .mesh import MeshCommand
from .config import ConfigCommand
from .version import VersionCommand

__all__ = [
    "BaseCommand",
    "FitCommand",
    "MeshCommand",
    "ConfigCommand",
    "VersionCommand"
]
