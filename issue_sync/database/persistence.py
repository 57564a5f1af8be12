"""
Persistence Module
Idempotent writes of issue and comment batches.
"""

import json
from typing import List

from sqlalchemy.orm import Session

from issue_sync.database.dialect import upsert
from issue_sync.database.models import GitHubComment, GitHubIssue
from issue_sync.database.sync_state import SyncStateStore
from issue_sync.records import CommentRecord, IssueRecord
from issue_sync.utils.helpers import chunk_list
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)

ISSUE_UPDATE_COLUMNS = [
    'number', 'is_pull_request', 'title', 'body', 'state', 'created_at',
    'updated_at', 'closed_at', 'user_login', 'assignee_login', 'labels',
    'comment_count', 'repository'
]
COMMENT_UPDATE_COLUMNS = [
    'issue_id', 'body', 'user_login', 'created_at', 'updated_at', 'repository'
]


class IssuePersistence:
    """
    Upserts issues and comments by GitHub id, last write wins.

    Methods run on the caller's session; atomicity comes from the enclosing
    ``session_scope()``.
    """

    def __init__(self, state_store: SyncStateStore = None, batch_size: int = 50):
        self.state_store = state_store or SyncStateStore()
        # Keeps a multi-row insert under SQLite's bound-parameter limit
        self.batch_size = batch_size

    def save_issues(self, session: Session, issues: List[IssueRecord], repository: str) -> int:
        """
        Insert or replace a batch of issues.

        Returns:
            Number of issues written
        """
        rows = [self._issue_row(issue, repository) for issue in issues]

        for chunk in chunk_list(rows, self.batch_size):
            session.execute(upsert(
                session,
                GitHubIssue,
                chunk,
                index_elements=['id'],
                update_columns=ISSUE_UPDATE_COLUMNS
            ))

        logger.info(f"Saved {len(rows)} issues for {repository}")
        return len(rows)

    def save_comments(
        self,
        session: Session,
        comments: List[CommentRecord],
        issue_id: int,
        repository: str
    ) -> int:
        """
        Write the comments of one issue.

        When the issue has no comment cursor yet, its stored comments are
        deleted first so the batch fully replaces them. Otherwise the batch
        is merged and comments outside it are kept.

        Returns:
            Number of comments written
        """
        last_sync = self.state_store.get_comment_cursor(session, issue_id, repository)
        if last_sync is None:
            removed = (
                session.query(GitHubComment)
                .filter(
                    GitHubComment.issue_id == issue_id,
                    GitHubComment.repository == repository
                )
                .delete(synchronize_session=False)
            )
            logger.info(
                f"Performing full comment sync for issue ID {issue_id}, "
                f"cleared {removed} existing comments"
            )

        rows = [self._comment_row(comment, issue_id, repository) for comment in comments]

        for chunk in chunk_list(rows, self.batch_size):
            session.execute(upsert(
                session,
                GitHubComment,
                chunk,
                index_elements=['id'],
                update_columns=COMMENT_UPDATE_COLUMNS
            ))

        logger.info(f"Saved {len(rows)} comments for issue ID {issue_id}")
        return len(rows)

    @staticmethod
    def _issue_row(issue: IssueRecord, repository: str) -> dict:
        return {
            'id': issue.id,
            'number': issue.number,
            'is_pull_request': issue.is_pull_request,
            'title': issue.title,
            'body': issue.body,
            'state': issue.state,
            'created_at': issue.created_at,
            'updated_at': issue.updated_at,
            'closed_at': issue.closed_at,
            'user_login': issue.user_login,
            'assignee_login': issue.assignee_login,
            'labels': json.dumps(issue.labels, ensure_ascii=False),
            'comment_count': issue.comment_count,
            'repository': repository
        }

    @staticmethod
    def _comment_row(comment: CommentRecord, issue_id: int, repository: str) -> dict:
        return {
            'id': comment.id,
            'issue_id': issue_id,
            'body': comment.body,
            'user_login': comment.user_login,
            'created_at': comment.created_at,
            'updated_at': comment.updated_at,
            'repository': repository
        }
