"""
Sync Manager Module
Keeps a local store in step with the issues and comments of one GitHub repository.

Each cycle fetches the issues updated since the repository cursor, upserts
them, then refreshes the comments of every issue whose comments may have
changed since they were last synced.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from issue_sync.backoff import ExponentialBackoff
from issue_sync.config_manager import ConfigManager
from issue_sync.database.connection import DatabaseConnection, get_db
from issue_sync.database.persistence import IssuePersistence
from issue_sync.database.queries import QueryHelpers
from issue_sync.database.sync_state import SyncStateStore
from issue_sync.exceptions import GitHubAPIError, RetryCancelled, StoreError
from issue_sync.github_client import GitHubClient
from issue_sync.records import IssueRecord
from issue_sync.scheduler import RecurringTask
from issue_sync.utils.helpers import parse_repository, utc_now
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SYNC_INTERVAL = 5 * 60


class SyncState(Enum):
    UNINITIALIZED = 'uninitialized'
    VALIDATING = 'validating'
    INITIAL_SYNC = 'initial_sync'
    STEADY = 'steady'
    STOPPED = 'stopped'


class CycleStatus(Enum):
    SUCCESS = 'success'
    PARTIAL = 'partial'
    FAILED = 'failed'


@dataclass
class IssueFailure:
    """A comment sync that failed for one issue without stopping the cycle."""

    issue_number: int
    error: str


@dataclass
class CycleResult:
    """Outcome of one sync cycle."""

    repository: str
    started_at: datetime
    status: CycleStatus = CycleStatus.SUCCESS
    finished_at: Optional[datetime] = None
    last_issue_sync: Optional[datetime] = None
    issues_fetched: int = 0
    comment_syncs: int = 0
    comments_synced: int = 0
    comments_up_to_date: int = 0
    failures: List[IssueFailure] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def duration_seconds(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict:
        return {
            'repository': self.repository,
            'status': self.status.value,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': round(self.duration_seconds, 2),
            'last_issue_sync': self.last_issue_sync.isoformat() if self.last_issue_sync else None,
            'issues_fetched': self.issues_fetched,
            'comment_syncs': self.comment_syncs,
            'comments_synced': self.comments_synced,
            'comments_up_to_date': self.comments_up_to_date,
            'failures': [
                {'issue_number': f.issue_number, 'error': f.error} for f in self.failures
            ],
            'error': str(self.error) if self.error else None
        }


@dataclass
class ResyncResult:
    """Outcome of a forced comment resync."""

    issue_number: int
    found: bool
    comments_synced: int = 0


def needs_comment_sync(issue: IssueRecord, last_comment_sync: Optional[datetime]) -> bool:
    """
    Decide whether an issue's comments must be fetched again.

    True when they were never synced, or when the issue changed after the
    last comment sync. An issue updated at exactly the cursor time is
    considered up to date.
    """
    if last_comment_sync is None:
        return True
    return issue.updated_at > last_comment_sync


class IssueSyncManager:
    """
    Incremental issue/comment sync for one repository.

    Lifecycle: ``initialize()`` validates the token and runs the first sync
    under an unlimited exponential backoff, then polls every
    ``interval_seconds`` until ``stop()``.
    """

    def __init__(
        self,
        repository: str,
        db: DatabaseConnection = None,
        client: GitHubClient = None,
        interval_seconds: float = None,
        backoff: ExponentialBackoff = None,
        on_cycle: Callable[[CycleResult], None] = None
    ):
        """
        Args:
            repository: 'owner/name' of the repository to mirror
            db: Store; defaults to the configured database
            client: GitHub client; defaults to one built from configuration
            interval_seconds: Polling period once the first sync is done
            backoff: Retry policy for the bootstrap
            on_cycle: Called with every CycleResult, e.g. to export metrics
        """
        self.owner, self.repo = parse_repository(repository)
        self.repository = f"{self.owner}/{self.repo}"

        config = ConfigManager()
        sync_config = config.get_sync_config()

        self.db = db or get_db()
        self.client = client or GitHubClient()
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else sync_config.get('interval_seconds', DEFAULT_SYNC_INTERVAL)
        )
        self.backoff = backoff or self._default_backoff(config.get_backoff_config())
        self.on_cycle = on_cycle

        self.state_store = SyncStateStore()
        self.persistence = IssuePersistence(self.state_store, batch_size=self.db.batch_size)

        self.state = SyncState.UNINITIALIZED
        self.last_result: Optional[CycleResult] = None
        self._task: Optional[RecurringTask] = None
        # Serializes cycles and manual resyncs on this repository
        self._cycle_lock = threading.Lock()
        # Guards the stop request against the creation of the polling task
        self._lifecycle_lock = threading.RLock()
        self._stop_requested = threading.Event()

        logger.info(f"Initializing GitHub sync for {self.repository}")

    @staticmethod
    def _default_backoff(backoff_config: Dict) -> ExponentialBackoff:
        return ExponentialBackoff(
            initial_delay=backoff_config.get('initial_delay', 5),
            max_delay=backoff_config.get('max_delay', 65 * 60),
            max_attempts=backoff_config.get('max_attempts', 0),
            factor=backoff_config.get('factor', 2),
            jitter=backoff_config.get('jitter', False),
            retry_on=(GitHubAPIError, StoreError)
        )

    # ========================================
    # Lifecycle
    # ========================================

    def initialize(self, token: str = None, start_polling: bool = True) -> CycleResult:
        """
        Validate the token, run the first sync and start polling.

        The token check and the first sync are retried together as one unit.

        Args:
            token: GitHub token; the client's configured token is kept if None
            start_polling: Schedule the recurring cycle after the first sync

        Returns:
            Result of the initial sync cycle. If ``stop()`` was called while
            it ran, polling is not started and the state is STOPPED.

        Raises:
            GitHubAPIError, StoreError: If a bounded backoff gives up
            RetryCancelled: If ``stop()`` was called before the bootstrap succeeded
        """
        with self._lifecycle_lock:
            if self._stop_requested.is_set():
                raise RuntimeError(f"Sync for {self.repository} has been stopped")
            if self._task is not None:
                raise RuntimeError(f"Sync for {self.repository} is already running")

        logger.info("Starting initialization...")
        if token:
            self.client.set_token(token)

        try:
            result = self.backoff.execute(self._bootstrap, cancel=self._stop_requested)
        except RetryCancelled:
            self.state = SyncState.STOPPED
            logger.info(f"Initialization of {self.repository} cancelled")
            raise
        finally:
            self.backoff.reset()
        logger.info("Initial sync complete")

        with self._lifecycle_lock:
            if self._stop_requested.is_set():
                self.state = SyncState.STOPPED
                logger.info(f"Stop requested during initialization; not polling {self.repository}")
                return result

            self.state = SyncState.STEADY
            if start_polling:
                logger.info(f"Setting up continuous sync ({self.interval_seconds} second interval)...")
                self._task = RecurringTask(
                    self.run_cycle,
                    self.interval_seconds,
                    name=f"sync:{self.repository}"
                )
                self._task.start()

        return result

    def _bootstrap(self) -> CycleResult:
        self.state = SyncState.VALIDATING
        logger.info("Validating GitHub token...")
        user = self.client.get_authenticated_user()
        logger.info(f"Token validation successful (authenticated as {user.get('login')})")

        self.state = SyncState.INITIAL_SYNC
        logger.info("Starting initial sync...")
        result = self.run_cycle()
        if result.status == CycleStatus.FAILED:
            raise result.error
        return result

    def stop(self) -> None:
        """
        Stop syncing for good; an in-flight cycle finishes first.

        Safe to call from another thread or a signal handler while
        ``initialize()`` is still retrying: the retries end and polling is
        never started. Repeated calls are no-ops.
        """
        with self._lifecycle_lock:
            if self._stop_requested.is_set() and self._task is None:
                return
            self._stop_requested.set()
            task, self._task = self._task, None
            self.state = SyncState.STOPPED

        logger.info("Stopping sync process...")
        if task is not None:
            task.stop(wait=True)
        logger.info(f"Sync process for {self.repository} stopped")

    # ========================================
    # Sync Cycle
    # ========================================

    def run_cycle(self) -> CycleResult:
        """
        Run one sync cycle.

        Failures while reading the cursor or fetching/saving issues fail the
        whole cycle and leave the cursor untouched. Comment failures only
        affect their own issue.

        Returns:
            CycleResult; never raises for GitHub or store errors
        """
        with self._cycle_lock:
            result = CycleResult(repository=self.repository, started_at=utc_now())
            logger.info(f"Starting sync cycle for {self.repository}...")

            try:
                issues = self._sync_issues(result)
                self._sync_comments(issues, result)
            except (GitHubAPIError, StoreError) as e:
                logger.error(f"Sync cycle failed: {e}")
                result.status = CycleStatus.FAILED
                result.error = e
            else:
                if result.failures:
                    result.status = CycleStatus.PARTIAL

            result.finished_at = utc_now()
            self.last_result = result

        logger.info(
            f"Sync cycle {result.status.value}: {result.issues_fetched} issues, "
            f"{result.comments_synced} comments across {result.comment_syncs} issues, "
            f"{len(result.failures)} failures ({result.duration_seconds:.2f}s)"
        )
        if self.on_cycle:
            self.on_cycle(result)
        return result

    def _sync_issues(self, result: CycleResult) -> List[IssueRecord]:
        """Fetch issues since the cursor and save them with the advanced cursor."""
        with self.db.session_scope() as session:
            last_sync = self.state_store.get_issue_cursor(session, self.repository)
        logger.info(f"Last issue sync: {last_sync.isoformat() if last_sync else 'never'}")

        issues = self.client.fetch_issues(self.owner, self.repo, since=last_sync)
        result.issues_fetched = len(issues)

        if issues:
            with self.db.session_scope() as session:
                self.persistence.save_issues(session, issues, self.repository)
                # Cycle start, not the newest updated_at seen
                self.state_store.set_issue_cursor(session, self.repository, result.started_at)
            result.last_issue_sync = result.started_at
            logger.info("Issues saved to database")
        else:
            result.last_issue_sync = last_sync

        return issues

    def _sync_comments(self, issues: List[IssueRecord], result: CycleResult) -> None:
        """Refresh the comments of issues whose comments may be stale."""
        for issue in issues:
            if issue.comment_count <= 0:
                continue

            try:
                with self.db.session_scope() as session:
                    last_comment_sync = self.state_store.get_comment_cursor(
                        session, issue.id, self.repository
                    )

                if not needs_comment_sync(issue, last_comment_sync):
                    result.comments_up_to_date += 1
                    continue

                logger.info(
                    f"Syncing comments for issue #{issue.number} ({issue.comment_count} comments)"
                )
                result.comments_synced += self._sync_issue_comments(issue.id, issue.number, last_comment_sync)
                result.comment_syncs += 1
            except (GitHubAPIError, StoreError) as e:
                logger.error(f"Failed to sync comments for issue #{issue.number}: {e}")
                result.failures.append(IssueFailure(issue.number, str(e)))

    def _sync_issue_comments(
        self,
        issue_id: int,
        issue_number: int,
        since: Optional[datetime]
    ) -> int:
        """Fetch and save one issue's comments, advancing its cursor in the same transaction."""
        fetch_started = utc_now()
        comments = self.client.fetch_issue_comments(self.owner, self.repo, issue_number, since=since)

        with self.db.session_scope() as session:
            saved = self.persistence.save_comments(session, comments, issue_id, self.repository)
            self.state_store.set_comment_cursor(session, issue_id, self.repository, fetch_started)
        return saved

    def force_resync_comments(self, issue_number: int) -> ResyncResult:
        """
        Replace an issue's stored comments with a full fetch.

        Args:
            issue_number: Issue number within the repository

        Returns:
            ResyncResult; ``found`` is False when the issue is not stored

        Raises:
            GitHubAPIError, StoreError: If the fetch or the write fails
        """
        with self._cycle_lock:
            logger.info(f"Force resyncing comments for issue #{issue_number}...")

            with self.db.session_scope() as session:
                issue_id = QueryHelpers(session).get_issue_id(self.repository, issue_number)
                if issue_id is not None:
                    self.state_store.delete_comment_cursor(session, issue_id)

            if issue_id is None:
                logger.info(f"Issue #{issue_number} not found")
                return ResyncResult(issue_number=issue_number, found=False)

            saved = self._sync_issue_comments(issue_id, issue_number, since=None)
            logger.info(f"Force resync complete for issue #{issue_number}")
            return ResyncResult(issue_number=issue_number, found=True, comments_synced=saved)

    # ========================================
    # Query & Admin
    # ========================================

    def get_issue_comments(self, issue_number: int) -> List[Dict]:
        """Stored comments of an issue, oldest first."""
        with self.db.session_scope() as session:
            return QueryHelpers(session).get_issue_comments(self.repository, issue_number)

    def get_sync_status(self) -> Dict:
        """Counts, latest updates and cursor for this repository."""
        with self.db.session_scope() as session:
            status = QueryHelpers(session).get_sync_status(self.repository)
        status['state'] = self.state.value
        status['last_cycle'] = self.last_result.to_dict() if self.last_result else None
        return status

    def search_issues(self, query: str) -> List[Dict]:
        """Search stored issues of this repository."""
        with self.db.session_scope() as session:
            return QueryHelpers(session).search_issues(self.repository, query)

    def search_comments(self, query: str) -> List[Dict]:
        """Search stored comments of this repository."""
        with self.db.session_scope() as session:
            return QueryHelpers(session).search_comments(self.repository, query)

    def cleanup(self) -> Dict[str, int]:
        """Delete every stored row and cursor of this repository."""
        with self._cycle_lock:
            logger.info("Starting cleanup process...")
            with self.db.session_scope() as session:
                counts = QueryHelpers(session).delete_repository(self.repository)
            logger.info("Cleanup complete")
            return counts
