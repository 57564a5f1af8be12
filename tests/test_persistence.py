"""
Unit Tests for Issue/Comment Persistence and Sync Cursors
"""

import unittest
from datetime import datetime

from issue_sync.database.models import (
    CommentSyncState, GitHubComment, GitHubIssue, IssueSyncState
)
from issue_sync.database.persistence import IssuePersistence
from issue_sync.database.sync_state import SyncStateStore
from issue_sync.exceptions import StoreError

from factories import REPOSITORY, make_comment, make_db, make_issue


class StoreTestCase(unittest.TestCase):

    def setUp(self):
        self.db = make_db()
        self.addCleanup(self.db.dispose)
        self.state_store = SyncStateStore()
        self.persistence = IssuePersistence(self.state_store, batch_size=2)

    def count(self, model) -> int:
        with self.db.session_scope() as session:
            return session.query(model).count()

    def comment_ids(self, issue_id) -> list:
        with self.db.session_scope() as session:
            rows = (
                session.query(GitHubComment.id)
                .filter(GitHubComment.issue_id == issue_id)
                .order_by(GitHubComment.id)
                .all()
            )
            return [row[0] for row in rows]


class TestSaveIssues(StoreTestCase):
    """Test issue upserts."""

    def test_insert_in_chunks(self):
        issues = [make_issue(100 + n, n) for n in range(1, 6)]

        with self.db.session_scope() as session:
            saved = self.persistence.save_issues(session, issues, REPOSITORY)

        self.assertEqual(saved, 5)
        self.assertEqual(self.count(GitHubIssue), 5)

    def test_save_is_idempotent(self):
        issues = [make_issue(1, 1), make_issue(2, 2)]

        for _ in range(3):
            with self.db.session_scope() as session:
                self.persistence.save_issues(session, issues, REPOSITORY)

        self.assertEqual(self.count(GitHubIssue), 2)

    def test_last_write_wins(self):
        """A second save of the same id replaces every mutable field."""
        with self.db.session_scope() as session:
            self.persistence.save_issues(
                session, [make_issue(1, 1, title='Old', labels=('bug',))], REPOSITORY
            )
        with self.db.session_scope() as session:
            self.persistence.save_issues(
                session,
                [make_issue(1, 1, title='New', state='closed', updated_at='2024-03-01T00:00:00Z')],
                REPOSITORY
            )

        with self.db.session_scope() as session:
            issue = session.get(GitHubIssue, 1)
            self.assertEqual(issue.title, 'New')
            self.assertEqual(issue.state, 'closed')
            self.assertEqual(issue.label_names, [])
            self.assertEqual(issue.updated_at, datetime(2024, 3, 1))

    def test_stale_row_with_same_number_does_not_block(self):
        """A new id reusing a stored number is saved next to the stale row."""
        with self.db.session_scope() as session:
            self.persistence.save_issues(session, [make_issue(1, 7)], REPOSITORY)
        with self.db.session_scope() as session:
            self.persistence.save_issues(session, [make_issue(2, 7), make_issue(3, 8)], REPOSITORY)

        self.assertEqual(self.count(GitHubIssue), 3)

    def test_empty_batch(self):
        with self.db.session_scope() as session:
            self.assertEqual(self.persistence.save_issues(session, [], REPOSITORY), 0)

    def test_rollback_discards_issues_and_cursor(self):
        """Issues and their cursor are committed together or not at all."""
        with self.assertRaises(RuntimeError):
            with self.db.session_scope() as session:
                self.persistence.save_issues(session, [make_issue(1, 1)], REPOSITORY)
                self.state_store.set_issue_cursor(session, REPOSITORY, datetime(2024, 5, 1))
                raise RuntimeError('crash before commit')

        self.assertEqual(self.count(GitHubIssue), 0)
        self.assertEqual(self.count(IssueSyncState), 0)


class TestSaveComments(StoreTestCase):
    """Test comment replace and merge."""

    def setUp(self):
        super().setUp()
        with self.db.session_scope() as session:
            self.persistence.save_issues(session, [make_issue(1, 1), make_issue(2, 2)], REPOSITORY)

    def save(self, comments, issue_id=1):
        with self.db.session_scope() as session:
            return self.persistence.save_comments(session, comments, issue_id, REPOSITORY)

    def test_first_sync_replaces_stored_comments(self):
        """Without a cursor the batch becomes the full comment set of the issue."""
        self.save([make_comment(n) for n in (10, 11, 12, 13, 14)])
        self.save([make_comment(20), make_comment(21)])

        self.assertEqual(self.comment_ids(1), [20, 21])

    def test_first_sync_only_touches_its_issue(self):
        self.save([make_comment(10)], issue_id=1)
        self.save([make_comment(30)], issue_id=2)
        self.save([make_comment(20)], issue_id=1)

        self.assertEqual(self.comment_ids(2), [30])

    def test_incremental_sync_merges(self):
        """With a cursor, stored comments outside the batch are kept."""
        with self.db.session_scope() as session:
            self.persistence.save_comments(session, [make_comment(10), make_comment(11)], 1, REPOSITORY)
            self.state_store.set_comment_cursor(session, 1, REPOSITORY, datetime(2024, 1, 3))

        self.save([make_comment(11, body='edited'), make_comment(12)])

        self.assertEqual(self.comment_ids(1), [10, 11, 12])
        with self.db.session_scope() as session:
            self.assertEqual(session.get(GitHubComment, 11).body, 'edited')

    def test_empty_first_sync_clears(self):
        self.save([make_comment(10)])
        self.assertEqual(self.save([]), 0)
        self.assertEqual(self.comment_ids(1), [])

    def test_orphan_comment_is_rejected(self):
        """A comment for an issue that is not stored violates the foreign key."""
        with self.assertRaises(StoreError):
            self.save([make_comment(99)], issue_id=12345)

        self.assertEqual(self.count(GitHubComment), 0)


class TestSyncStateStore(StoreTestCase):
    """Test cursor reads and writes."""

    def setUp(self):
        super().setUp()
        with self.db.session_scope() as session:
            self.persistence.save_issues(session, [make_issue(1, 1)], REPOSITORY)

    def test_missing_cursors(self):
        with self.db.session_scope() as session:
            self.assertIsNone(self.state_store.get_issue_cursor(session, REPOSITORY))
            self.assertIsNone(self.state_store.get_comment_cursor(session, 1, REPOSITORY))

    def test_issue_cursor_upsert(self):
        for ts in (datetime(2024, 1, 1), datetime(2024, 2, 1)):
            with self.db.session_scope() as session:
                self.state_store.set_issue_cursor(session, REPOSITORY, ts)

        with self.db.session_scope() as session:
            self.assertEqual(self.state_store.get_issue_cursor(session, REPOSITORY), datetime(2024, 2, 1))
            self.assertIsNone(self.state_store.get_issue_cursor(session, 'octo/other'))
        self.assertEqual(self.count(IssueSyncState), 1)

    def test_issue_cursor_is_case_sensitive(self):
        with self.db.session_scope() as session:
            self.state_store.set_issue_cursor(session, REPOSITORY, datetime(2024, 1, 1))
            self.assertIsNone(self.state_store.get_issue_cursor(session, REPOSITORY.upper()))

    def test_comment_cursor_upsert_and_delete(self):
        with self.db.session_scope() as session:
            self.state_store.set_comment_cursor(session, 1, REPOSITORY, datetime(2024, 1, 1))
        with self.db.session_scope() as session:
            self.state_store.set_comment_cursor(session, 1, REPOSITORY, datetime(2024, 1, 9))
        with self.db.session_scope() as session:
            self.assertEqual(
                self.state_store.get_comment_cursor(session, 1, REPOSITORY), datetime(2024, 1, 9)
            )
        self.assertEqual(self.count(CommentSyncState), 1)

        with self.db.session_scope() as session:
            self.assertTrue(self.state_store.delete_comment_cursor(session, 1))
        with self.db.session_scope() as session:
            self.assertFalse(self.state_store.delete_comment_cursor(session, 1))
            self.assertIsNone(self.state_store.get_comment_cursor(session, 1, REPOSITORY))

    def test_comment_cursor_scoped_to_repository(self):
        with self.db.session_scope() as session:
            self.state_store.set_comment_cursor(session, 1, REPOSITORY, datetime(2024, 1, 1))
            self.assertIsNone(self.state_store.get_comment_cursor(session, 1, 'octo/other'))


if __name__ == '__main__':
    unittest.main()
