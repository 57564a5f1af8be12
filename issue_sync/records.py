"""
Record Schemas Module
Typed views of the GitHub issue and comment payloads the sync engine stores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from issue_sync.exceptions import RecordValidationError
from issue_sync.utils.helpers import parse_github_datetime, safe_get, sanitize_string


def _require_object(payload: Any, kind: str) -> None:
    if not isinstance(payload, dict):
        raise RecordValidationError(f"{kind} payload is not a JSON object: {type(payload).__name__}")


def _require(payload: Dict, key: str, kind: str) -> Any:
    value = payload.get(key)
    if value is None:
        raise RecordValidationError(f"{kind} payload is missing '{key}'", payload)
    return value


def _require_datetime(payload: Dict, key: str, kind: str) -> datetime:
    raw = _require(payload, key, kind)
    parsed = parse_github_datetime(raw) if isinstance(raw, str) else None
    if parsed is None:
        raise RecordValidationError(f"{kind} payload has an invalid '{key}': {raw!r}", payload)
    return parsed


def _require_int(payload: Dict, key: str, kind: str) -> int:
    raw = _require(payload, key, kind)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise RecordValidationError(f"{kind} payload has a non-numeric '{key}': {raw!r}", payload)


def _optional_int(payload: Dict, key: str, kind: str, default: int = 0) -> int:
    raw = payload.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise RecordValidationError(f"{kind} payload has a non-numeric '{key}': {raw!r}", payload)
    try:
        return int(raw)
    except ValueError:
        raise RecordValidationError(f"{kind} payload has a non-numeric '{key}': {raw!r}", payload)


def _optional_str(payload: Dict, key: str, kind: str) -> Optional[str]:
    raw = payload.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise RecordValidationError(f"{kind} payload has a non-string '{key}': {raw!r}", payload)
    return sanitize_string(raw)


@dataclass
class IssueRecord:
    """A GitHub issue (or pull request) as returned by the issues endpoint."""

    id: int
    number: int
    title: Optional[str]
    body: Optional[str]
    state: Optional[str]
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    user_login: Optional[str] = None
    assignee_login: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    comment_count: int = 0
    is_pull_request: bool = False

    @classmethod
    def from_api(cls, payload: Dict) -> 'IssueRecord':
        """
        Build a record from an issues API object.

        Raises:
            RecordValidationError: If a required field is missing or malformed
        """
        _require_object(payload, 'Issue')

        raw_labels = payload.get('labels') or []
        if not isinstance(raw_labels, list):
            raise RecordValidationError(f"Issue payload has non-list 'labels': {raw_labels!r}", payload)

        labels = []
        for label in raw_labels:
            # Labels come back as objects, but older payloads used bare names
            name = label.get('name') if isinstance(label, dict) else label
            if name:
                labels.append(str(name))

        return cls(
            id=_require_int(payload, 'id', 'Issue'),
            number=_require_int(payload, 'number', 'Issue'),
            title=_optional_str(payload, 'title', 'Issue'),
            body=_optional_str(payload, 'body', 'Issue'),
            state=_optional_str(payload, 'state', 'Issue'),
            created_at=_require_datetime(payload, 'created_at', 'Issue'),
            updated_at=_require_datetime(payload, 'updated_at', 'Issue'),
            closed_at=parse_github_datetime(payload.get('closed_at')),
            user_login=safe_get(payload, 'user', 'login'),
            assignee_login=safe_get(payload, 'assignee', 'login'),
            labels=labels,
            comment_count=_optional_int(payload, 'comments', 'Issue'),
            is_pull_request=bool(payload.get('pull_request'))
        )


@dataclass
class CommentRecord:
    """A comment on a GitHub issue."""

    id: int
    body: Optional[str]
    created_at: datetime
    updated_at: datetime
    user_login: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict) -> 'CommentRecord':
        """
        Build a record from an issue comments API object.

        Raises:
            RecordValidationError: If a required field is missing or malformed
        """
        _require_object(payload, 'Comment')

        return cls(
            id=_require_int(payload, 'id', 'Comment'),
            body=_optional_str(payload, 'body', 'Comment'),
            created_at=_require_datetime(payload, 'created_at', 'Comment'),
            updated_at=_require_datetime(payload, 'updated_at', 'Comment'),
            user_login=safe_get(payload, 'user', 'login')
        )
