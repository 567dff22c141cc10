"""Protocol interfaces for pluggable backends."""

from repocdn.protocols.remote_store import FileDescriptor, RemoteStore

__all__ = [
    "FileDescriptor",
    "RemoteStore",
]
