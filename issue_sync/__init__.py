"""
GitHub Issue Sync
Incrementally mirrors GitHub issues and comments into a local SQL store.
"""

from .backoff import ExponentialBackoff
from .exceptions import GitHubAPIError, RecordValidationError, StoreError
from .github_client import GitHubClient
from .sync_manager import (
    CycleResult,
    CycleStatus,
    IssueSyncManager,
    ResyncResult,
    SyncState
)

__version__ = '1.0.0'

__all__ = [
    'ExponentialBackoff',
    'GitHubAPIError',
    'RecordValidationError',
    'StoreError',
    'GitHubClient',
    'CycleResult',
    'CycleStatus',
    'IssueSyncManager',
    'ResyncResult',
    'SyncState'
]
