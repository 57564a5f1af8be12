#!/usr/bin/env python
"""
Run Sync Script
Command-line script for running and inspecting GitHub issue sync.
"""

import argparse
import json
import signal
import sys
import threading
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from issue_sync.config_manager import ConfigManager
from issue_sync.database.connection import get_db
from issue_sync.exceptions import GitHubAPIError, RetryCancelled, StoreError
from issue_sync.github_client import GitHubClient
from issue_sync.sync_manager import IssueSyncManager
from issue_sync.utils.logger import setup_logging, get_logger


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _install_signal_handlers(managers, logger) -> threading.Event:
    """Make SIGINT/SIGTERM stop every manager, including one still retrying its bootstrap."""
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()
        for manager in managers:
            manager.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    return stop_event


def _run_daemon(managers, logger) -> None:
    """Bootstrap every repository, then poll until interrupted."""
    stop_event = _install_signal_handlers(managers, logger)

    try:
        for manager in managers:
            if stop_event.is_set():
                break
            manager.initialize()
        stop_event.wait()
    except RetryCancelled:
        logger.info("Initialization cancelled")
    finally:
        for manager in managers:
            manager.stop()


def main():
    """Main entry point for sync script."""
    parser = argparse.ArgumentParser(description='Mirror GitHub issues and comments into a local database')
    parser.add_argument(
        '--repo',
        action='append',
        help="Repository as owner/name (repeatable); defaults to configuration"
    )
    parser.add_argument(
        '--token',
        help='GitHub token (defaults to GITHUB_TOKEN / configuration)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Validate the token, run a single sync cycle and exit'
    )
    parser.add_argument(
        '--force-resync',
        type=int,
        metavar='NUMBER',
        help='Refetch all comments of one issue and exit'
    )
    parser.add_argument(
        '--status',
        action='store_true',
        help='Print sync status and exit'
    )
    parser.add_argument(
        '--search',
        metavar='TEXT',
        help='Search stored issues and comments and exit'
    )
    parser.add_argument(
        '--comments',
        type=int,
        metavar='NUMBER',
        help='Print stored comments of one issue and exit'
    )
    parser.add_argument(
        '--cleanup',
        action='store_true',
        help='Delete all stored data for the repositories and exit'
    )
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    setup_logging(verbose=args.verbose)
    logger = get_logger(__name__)

    repositories = args.repo or ConfigManager().get_repositories()
    if not repositories:
        print("Error: no repository given (use --repo owner/name or set GITHUB_OWNER/GITHUB_REPO)")
        sys.exit(2)

    try:
        db = get_db()
        db.create_schema()

        managers = []
        for repository in repositories:
            client = GitHubClient(token=args.token)
            managers.append(IssueSyncManager(repository, db=db, client=client))

        if args.status:
            _print_json([manager.get_sync_status() for manager in managers])
        elif args.search:
            _print_json([
                {
                    'repository': manager.repository,
                    'issues': manager.search_issues(args.search),
                    'comments': manager.search_comments(args.search)
                }
                for manager in managers
            ])
        elif args.comments is not None:
            _print_json([
                {
                    'repository': manager.repository,
                    'comments': manager.get_issue_comments(args.comments)
                }
                for manager in managers
            ])
        elif args.cleanup:
            _print_json({manager.repository: manager.cleanup() for manager in managers})
        elif args.force_resync is not None:
            for manager in managers:
                result = manager.force_resync_comments(args.force_resync)
                if result.found:
                    print(f"{manager.repository}#{result.issue_number}: {result.comments_synced} comments synced")
                else:
                    print(f"{manager.repository}#{result.issue_number}: not found")
        elif args.once:
            stop_event = _install_signal_handlers(managers, logger)
            failed = False
            try:
                for manager in managers:
                    if stop_event.is_set():
                        failed = True
                        break
                    result = manager.initialize(start_polling=False)
                    _print_json(result.to_dict())
                    failed = failed or result.status.value != 'success'
            except RetryCancelled:
                logger.info("Sync cancelled")
                failed = True
            sys.exit(1 if failed else 0)
        else:
            _run_daemon(managers, logger)

    except (GitHubAPIError, StoreError, ValueError) as e:
        logger.error(f"Sync failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
