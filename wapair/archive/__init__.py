"""Remote archive interfaces and implementations."""

from wapair.archive.base import RemoteArchive
from wapair.archive.factory import create_archive
from wapair.archive.placeholder import PlaceholderArchive, is_placeholder_locator

__all__ = ["PlaceholderArchive", "RemoteArchive", "create_archive", "is_placeholder_locator"]
