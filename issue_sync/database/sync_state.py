"""
Sync State Store Module
Reads and advances the per-repository and per-issue sync cursors.

Every method works on the caller's session, so a cursor is written in the same
transaction as the rows it accounts for. If that transaction rolls back the
cursor stays where it was and the window is fetched again on the next cycle.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from issue_sync.database.dialect import upsert
from issue_sync.database.models import CommentSyncState, IssueSyncState
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)


class SyncStateStore:
    """Cursor access for one store; stateless apart from the session passed in."""

    def get_issue_cursor(self, session: Session, repository: str) -> Optional[datetime]:
        """Get the last issue sync time for a repository, or None if never synced."""
        return (
            session.query(IssueSyncState.last_issue_sync)
            .filter(IssueSyncState.repository == repository)
            .scalar()
        )

    def set_issue_cursor(self, session: Session, repository: str, timestamp: datetime) -> None:
        """Create or advance the repository cursor."""
        stmt = upsert(
            session,
            IssueSyncState,
            {'repository': repository, 'last_issue_sync': timestamp},
            index_elements=['repository'],
            update_columns=['last_issue_sync']
        )
        session.execute(stmt)
        logger.debug(f"Issue sync state for {repository} set to {timestamp.isoformat()}")

    def get_comment_cursor(
        self,
        session: Session,
        issue_id: int,
        repository: str
    ) -> Optional[datetime]:
        """Get the last comment sync time for an issue, or None if never synced."""
        return (
            session.query(CommentSyncState.last_comment_sync)
            .filter(
                CommentSyncState.issue_id == issue_id,
                CommentSyncState.repository == repository
            )
            .scalar()
        )

    def set_comment_cursor(
        self,
        session: Session,
        issue_id: int,
        repository: str,
        timestamp: datetime
    ) -> None:
        """Create or advance the comment cursor of an issue."""
        stmt = upsert(
            session,
            CommentSyncState,
            {'issue_id': issue_id, 'repository': repository, 'last_comment_sync': timestamp},
            index_elements=['issue_id'],
            update_columns=['repository', 'last_comment_sync']
        )
        session.execute(stmt)
        logger.debug(f"Comment sync state for issue {issue_id} set to {timestamp.isoformat()}")

    def delete_comment_cursor(self, session: Session, issue_id: int) -> bool:
        """Forget an issue's comment cursor so its next sync is a full replace."""
        deleted = (
            session.query(CommentSyncState)
            .filter(CommentSyncState.issue_id == issue_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0
