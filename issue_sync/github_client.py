"""
GitHub REST API Client Module
Handles all communication with the GitHub REST API.
"""

import time
from datetime import datetime
from typing import Any, Dict, Generator, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from issue_sync.config_manager import ConfigManager
from issue_sync.exceptions import GitHubAPIError
from issue_sync.records import CommentRecord, IssueRecord
from issue_sync.utils.helpers import format_github_datetime
from issue_sync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = 'https://api.github.com'


class GitHubClient:
    """
    GitHub REST API client with pagination, rate limiting, and error handling.
    """

    def __init__(
        self,
        token: str = None,
        base_url: str = None,
        per_page: int = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = None,
        requests_per_second: float = None
    ):
        """Initialize GitHub client; unset arguments fall back to configuration."""
        github_config = ConfigManager().get_github_config()

        self.base_url = (base_url or github_config.get('api_url') or DEFAULT_API_URL).rstrip('/')
        self.per_page = per_page or github_config.get('per_page', 100)
        self.timeout = timeout or github_config.get('timeout', 30)

        # Rate limiting
        self.requests_per_second = (
            requests_per_second if requests_per_second is not None
            else github_config.get('requests_per_second', 0)
        )
        self.max_retries = max_retries if max_retries is not None else github_config.get('max_retries', 3)
        self.retry_delay = retry_delay if retry_delay is not None else github_config.get('retry_delay', 1)

        self._last_request_time = 0
        self._session = self._create_session()
        self.set_token(token if token is not None else github_config.get('token'))

        logger.info(f"GitHub client initialized for {self.base_url}")

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic."""
        session = requests.Session()

        session.headers.update({
            'Accept': 'application/vnd.github+json',
            'User-Agent': 'GitHub-Issue-Sync'
        })

        # Transport-level retries for throttling and gateway errors
        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=self.retry_delay,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=['GET'],
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount('https://', adapter)
        session.mount('http://', adapter)

        return session

    def set_token(self, token: Optional[str]) -> None:
        """Set (or clear) the bearer credential used for every request."""
        self.token = token or None
        if self.token:
            self._session.headers['Authorization'] = f'Bearer {self.token}'
        else:
            self._session.headers.pop('Authorization', None)

    def _rate_limit(self) -> None:
        """Apply rate limiting between requests."""
        if not self.requests_per_second or self.requests_per_second <= 0:
            return

        min_interval = 1.0 / self.requests_per_second
        elapsed = time.time() - self._last_request_time

        if elapsed < min_interval:
            time.sleep(min_interval - elapsed)

        self._last_request_time = time.time()

    def _make_request(self, endpoint: str, params: Dict = None) -> Any:
        """
        Make a GET request to the GitHub API.

        Args:
            endpoint: API path, e.g. '/repos/octo/hello/issues'
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            GitHubAPIError: If the request fails or returns a non-2xx status
        """
        self._rate_limit()

        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = self._session.request(
                method='GET',
                url=url,
                params=params,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {e}")
            raise GitHubAPIError(f"Request failed: {str(e)}")

        if not response.ok:
            body = self._parse_error_body(response)
            if response.status_code == 401:
                message = "Authentication failed. Check your GitHub token."
            elif response.status_code == 403:
                message = "Access forbidden or rate limit exceeded."
            elif response.status_code == 404:
                message = f"Resource not found: {endpoint}"
            else:
                message = f"API error: {response.text}"
            raise GitHubAPIError(
                f"GitHub API error ({response.status_code}): {message}",
                response.status_code,
                body
            )

        try:
            return response.json() if response.text else {}
        except ValueError:
            raise GitHubAPIError(
                f"Invalid JSON from {endpoint}",
                response.status_code,
                response.text
            )

    @staticmethod
    def _parse_error_body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text or None

    def _paginate(self, endpoint: str, params: Dict = None) -> Generator[Dict, None, None]:
        """
        Walk page-numbered results until a page comes back empty.

        Args:
            endpoint: API endpoint
            params: Extra query parameters

        Yields:
            Individual result items
        """
        params = dict(params or {})
        params['per_page'] = self.per_page
        page = 1

        while True:
            params['page'] = page
            logger.debug(f"Fetching page {page} of {endpoint}")

            data = self._make_request(endpoint, params=dict(params))
            if not isinstance(data, list):
                raise GitHubAPIError(f"Expected a list page from {endpoint}", response=data)
            if not data:
                break

            for item in data:
                yield item

            page += 1

    def fetch_all(
        self,
        endpoint: str,
        since: Optional[datetime] = None,
        params: Dict = None
    ) -> List[Dict]:
        """
        Fetch every page of a list endpoint, most recently updated first.

        All pages are drained even when a cursor is given.

        Args:
            endpoint: API endpoint
            since: Only return items updated at or after this time
            params: Extra query parameters

        Returns:
            Raw items in the order the API returned them
        """
        query = {'sort': 'updated', 'direction': 'desc'}
        query.update(params or {})
        if since:
            query['since'] = format_github_datetime(since)

        items = list(self._paginate(endpoint, params=query))
        logger.debug(f"Fetched {len(items)} items from {endpoint}")
        return items

    # ========================================
    # Issue Methods
    # ========================================

    def fetch_issues(
        self,
        owner: str,
        repo: str,
        since: Optional[datetime] = None
    ) -> List[IssueRecord]:
        """
        Fetch issues (and pull requests) of a repository in any state.

        Args:
            owner: Repository owner
            repo: Repository name
            since: Only issues updated at or after this time

        Returns:
            Validated issue records

        Raises:
            GitHubAPIError: On a failed request or a malformed issue
        """
        logger.info(f"Fetching issues for {owner}/{repo} since {since or 'the beginning'}")
        items = self.fetch_all(
            f'/repos/{owner}/{repo}/issues',
            since=since,
            params={'state': 'all'}
        )
        issues = [IssueRecord.from_api(item) for item in items]
        logger.info(f"Fetched total of {len(issues)} issues for {owner}/{repo}")
        return issues

    def fetch_issue_comments(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        since: Optional[datetime] = None
    ) -> List[CommentRecord]:
        """Fetch comments of one issue, optionally only those updated since a time."""
        items = self.fetch_all(
            f'/repos/{owner}/{repo}/issues/{issue_number}/comments',
            since=since
        )
        comments = [CommentRecord.from_api(item) for item in items]
        logger.info(f"Fetched {len(comments)} comments for issue #{issue_number}")
        return comments

    # ========================================
    # Utility Methods
    # ========================================

    def get_authenticated_user(self) -> Dict:
        """
        Fetch the user the token belongs to.

        Raises:
            GitHubAPIError: If the token is missing or rejected
        """
        if not self.token:
            raise GitHubAPIError("No GitHub token configured", 401)
        return self._make_request('/user')

    def test_connection(self) -> bool:
        """Test connection to the GitHub API."""
        try:
            user = self.get_authenticated_user()
            logger.info(f"GitHub connection test successful (authenticated as {user.get('login')})")
            return True
        except GitHubAPIError as e:
            logger.error(f"GitHub connection test failed: {e.message}")
            return False

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
