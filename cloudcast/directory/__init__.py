"""
Directory abstractions.

Production Integration Point:
- DirectoryClient → managed backend (auth provider + tenancy tables)
"""

from cloudcast.directory.base import (
    AuthFailure,
    ConflictError,
    DirectoryClient,
    DirectoryError,
    DirectoryUnavailable,
    DuplicateJoinCode,
    JoinCodeMismatch,
    RecordNotFound,
)
from cloudcast.directory.local import InMemoryDirectoryClient
from cloudcast.directory.seed import SeedError, SeedLoader, load_seed

__all__ = [
    "AuthFailure",
    "ConflictError",
    "DirectoryClient",
    "DirectoryError",
    "DirectoryUnavailable",
    "DuplicateJoinCode",
    "JoinCodeMismatch",
    "RecordNotFound",
    "InMemoryDirectoryClient",
    "SeedError",
    "SeedLoader",
    "load_seed",
]
