"""
SQLAlchemy ORM Models
Defines the mirrored GitHub issues and comments plus the sync cursors.
"""

import json

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey,
    Index, Integer, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


# ============================================
# MIRRORED DATA
# ============================================

class GitHubIssue(Base):
    """Issue (or pull request) mirrored from GitHub."""
    __tablename__ = 'github_issues'

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # GitHub id
    number = Column(Integer, nullable=False)
    is_pull_request = Column(Boolean, default=False)
    title = Column(Text)
    body = Column(Text)
    state = Column(String(50))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime)
    user_login = Column(String(255))
    assignee_login = Column(String(255))
    labels = Column(Text)  # JSON array of label names
    comment_count = Column(Integer, default=0)
    repository = Column(String(255), nullable=False)

    __table_args__ = (
        # Not unique: upserts resolve conflicts on id only, so a stale row
        # holding a number must not fail the whole batch
        Index('ix_github_issues_repository_number', 'repository', 'number'),
        Index('ix_github_issues_repository_updated', 'repository', 'updated_at'),
    )

    comments = relationship("GitHubComment", back_populates="issue")

    @property
    def label_names(self) -> list:
        return json.loads(self.labels) if self.labels else []

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'number': self.number,
            'is_pull_request': bool(self.is_pull_request),
            'title': self.title,
            'body': self.body,
            'state': self.state,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'closed_at': self.closed_at,
            'user_login': self.user_login,
            'assignee_login': self.assignee_login,
            'labels': self.label_names,
            'comment_count': self.comment_count,
            'repository': self.repository
        }


class GitHubComment(Base):
    """Comment on a mirrored issue."""
    __tablename__ = 'github_comments'

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # GitHub id
    issue_id = Column(BigInteger, ForeignKey('github_issues.id'), nullable=False)
    body = Column(Text)
    user_login = Column(String(255))
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    repository = Column(String(255), nullable=False)

    __table_args__ = (
        Index('ix_github_comments_issue', 'issue_id', 'repository'),
    )

    issue = relationship("GitHubIssue", back_populates="comments")

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'issue_id': self.issue_id,
            'body': self.body,
            'user_login': self.user_login,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'repository': self.repository
        }


# ============================================
# SYNC CURSORS
# ============================================

class IssueSyncState(Base):
    """Last issue sync per repository."""
    __tablename__ = 'issue_sync_state'

    repository = Column(String(255), primary_key=True)
    last_issue_sync = Column(DateTime, nullable=False)


class CommentSyncState(Base):
    """Last comment sync per issue; a missing row means comments were never synced."""
    __tablename__ = 'comment_sync_state'

    issue_id = Column(BigInteger, ForeignKey('github_issues.id'), primary_key=True, autoincrement=False)
    repository = Column(String(255), nullable=False)
    last_comment_sync = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('ix_comment_sync_state_repository', 'repository'),
    )
