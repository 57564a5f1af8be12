"""
Database Query Helpers Module
Read-only lookups, search and status over the mirrored data, plus repository teardown.
"""

from typing import Dict, List, Optional

from sqlalchemy import desc, func, or_
from sqlalchemy.orm import Session

from issue_sync.database.models import (
    CommentSyncState, GitHubComment, GitHubIssue, IssueSyncState
)
from issue_sync.utils.helpers import escape_like
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)


class QueryHelpers:
    """Query helper functions scoped to one repository at a time."""

    def __init__(self, session: Session):
        """Initialize with database session."""
        self.session = session

    # ========================================
    # Lookups
    # ========================================

    def get_issue_id(self, repository: str, number: int) -> Optional[int]:
        """Get the GitHub id of an issue by its number, or None if it is not stored."""
        return (
            self.session.query(GitHubIssue.id)
            .filter(
                GitHubIssue.repository == repository,
                GitHubIssue.number == number
            )
            .scalar()
        )

    def get_issue_comments(self, repository: str, number: int) -> List[Dict]:
        """Get the comments of an issue, oldest first."""
        comments = (
            self.session.query(GitHubComment)
            .join(GitHubIssue, GitHubIssue.id == GitHubComment.issue_id)
            .filter(
                GitHubIssue.number == number,
                GitHubIssue.repository == repository
            )
            .order_by(GitHubComment.created_at.asc(), GitHubComment.id.asc())
            .all()
        )
        return [comment.to_dict() for comment in comments]

    # ========================================
    # Search
    # ========================================

    def search_issues(self, repository: str, query: str) -> List[Dict]:
        """
        Case-insensitive substring search over issue title, body, author and labels.

        Args:
            repository: Repository scope
            query: Text to look for; LIKE wildcards match literally

        Returns:
            Matching issues, most recently updated first
        """
        pattern = f"%{escape_like(query)}%"
        issues = (
            self.session.query(GitHubIssue)
            .filter(GitHubIssue.repository == repository)
            .filter(or_(
                GitHubIssue.title.ilike(pattern, escape='\\'),
                GitHubIssue.body.ilike(pattern, escape='\\'),
                GitHubIssue.user_login.ilike(pattern, escape='\\'),
                GitHubIssue.labels.ilike(pattern, escape='\\')
            ))
            .order_by(desc(GitHubIssue.updated_at))
            .all()
        )
        return [issue.to_dict() for issue in issues]

    def search_comments(self, repository: str, query: str) -> List[Dict]:
        """
        Case-insensitive substring search over comment body and author.

        Returns:
            Matching comments with their issue number, most recently updated first
        """
        pattern = f"%{escape_like(query)}%"
        rows = (
            self.session.query(GitHubComment, GitHubIssue.number)
            .join(GitHubIssue, GitHubIssue.id == GitHubComment.issue_id)
            .filter(GitHubComment.repository == repository)
            .filter(or_(
                GitHubComment.body.ilike(pattern, escape='\\'),
                GitHubComment.user_login.ilike(pattern, escape='\\')
            ))
            .order_by(desc(GitHubComment.updated_at))
            .all()
        )

        results = []
        for comment, issue_number in rows:
            data = comment.to_dict()
            data['issue_number'] = issue_number
            results.append(data)
        return results

    # ========================================
    # Status
    # ========================================

    def get_sync_status(self, repository: str) -> Dict:
        """Get counts, latest updates and the current cursor for a repository."""
        issue_stats = (
            self.session.query(
                func.count(GitHubIssue.id),
                func.max(GitHubIssue.updated_at)
            )
            .filter(GitHubIssue.repository == repository)
            .one()
        )
        comment_stats = (
            self.session.query(
                func.count(GitHubComment.id),
                func.max(GitHubComment.updated_at)
            )
            .filter(GitHubComment.repository == repository)
            .one()
        )
        last_issue_sync = (
            self.session.query(IssueSyncState.last_issue_sync)
            .filter(IssueSyncState.repository == repository)
            .scalar()
        )
        comment_cursors = (
            self.session.query(func.count(CommentSyncState.issue_id))
            .filter(CommentSyncState.repository == repository)
            .scalar()
        )

        return {
            'repository': repository,
            'last_issue_sync': last_issue_sync,
            'stats': {
                'total_issues': issue_stats[0] or 0,
                'total_comments': comment_stats[0] or 0,
                'latest_issue_update': issue_stats[1],
                'latest_comment_update': comment_stats[1],
                'issues_with_comment_sync': comment_cursors or 0
            }
        }

    # ========================================
    # Teardown
    # ========================================

    def delete_repository(self, repository: str) -> Dict[str, int]:
        """
        Delete every mirrored row and cursor of a repository.

        Children go first so foreign keys hold throughout.

        Returns:
            Deleted row count per table
        """
        counts = {}
        counts['comment_sync_state'] = (
            self.session.query(CommentSyncState)
            .filter(CommentSyncState.repository == repository)
            .delete(synchronize_session=False)
        )
        counts['github_comments'] = (
            self.session.query(GitHubComment)
            .filter(GitHubComment.repository == repository)
            .delete(synchronize_session=False)
        )
        counts['issue_sync_state'] = (
            self.session.query(IssueSyncState)
            .filter(IssueSyncState.repository == repository)
            .delete(synchronize_session=False)
        )
        counts['github_issues'] = (
            self.session.query(GitHubIssue)
            .filter(GitHubIssue.repository == repository)
            .delete(synchronize_session=False)
        )
        logger.info(f"Deleted data for {repository}: {counts}")
        return counts
