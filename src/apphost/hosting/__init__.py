"""Filesystem side of hosting: path resolution, manifests and upload staging."""

from .manifest import HostedApplication, ManifestStore, WebAppManifest
from .paths import DirectoryEntry, PathResolver
from .uploads import TemporaryUpload, UploadStagingStore

__all__ = [
    "DirectoryEntry",
    "HostedApplication",
    "ManifestStore",
    "PathResolver",
    "TemporaryUpload",
    "UploadStagingStore",
    "WebAppManifest",
]
