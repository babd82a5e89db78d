"""
TomoBlob command line interface
"""

from .main import main, TomoBlobCLI

__all__ = ["main", "TomoBlobCLI"]
