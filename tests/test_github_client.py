"""
Unit Tests for the GitHub REST Client
"""

import unittest
from datetime import datetime
from unittest.mock import Mock, patch

import requests

from issue_sync.exceptions import GitHubAPIError, RecordValidationError
from issue_sync.github_client import GitHubClient
from issue_sync.records import CommentRecord, IssueRecord

from factories import comment_payload, issue_payload


def make_response(status_code=200, payload=None, text=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = payload
    response.text = text if text is not None else ('' if payload is None else 'json')
    return response


class ClientTestCase(unittest.TestCase):

    def setUp(self):
        self.client = GitHubClient(
            token='ghp_test',
            base_url='https://api.example.test',
            per_page=2,
            requests_per_second=0
        )
        patcher = patch.object(self.client._session, 'request')
        self.request = patcher.start()
        self.addCleanup(patcher.stop)

    def queue(self, *responses):
        self.request.side_effect = list(responses)

    def sent_params(self):
        return [c.kwargs['params'] for c in self.request.call_args_list]


class TestPagination(ClientTestCase):
    """Test page walking."""

    def test_walks_pages_until_empty(self):
        """Pages are requested with increasing numbers and the walk stops on the first empty page."""
        self.queue(
            make_response(payload=[issue_payload(1, 1), issue_payload(2, 2)]),
            make_response(payload=[issue_payload(3, 3)]),
            make_response(payload=[])
        )

        issues = self.client.fetch_issues('octo', 'hello')

        self.assertEqual([i.number for i in issues], [1, 2, 3])
        self.assertEqual([p['page'] for p in self.sent_params()], [1, 2, 3])
        self.assertTrue(all(p['per_page'] == 2 for p in self.sent_params()))

    def test_empty_first_page(self):
        self.queue(make_response(payload=[]))
        self.assertEqual(self.client.fetch_issues('octo', 'hello'), [])
        self.assertEqual(self.request.call_count, 1)

    def test_non_list_page_is_rejected(self):
        self.queue(make_response(payload={'message': 'odd'}))
        with self.assertRaises(GitHubAPIError):
            self.client.fetch_all('/repos/octo/hello/issues')


class TestQueryParameters(ClientTestCase):
    """Test the query each fetch sends."""

    def test_issues_request_all_states_without_since(self):
        self.queue(make_response(payload=[]))

        self.client.fetch_issues('octo', 'hello')

        call = self.request.call_args
        self.assertEqual(call.kwargs['method'], 'GET')
        self.assertEqual(call.kwargs['url'], 'https://api.example.test/repos/octo/hello/issues')
        params = call.kwargs['params']
        self.assertEqual(params['state'], 'all')
        self.assertEqual(params['sort'], 'updated')
        self.assertEqual(params['direction'], 'desc')
        self.assertNotIn('since', params)

    def test_since_is_sent_as_iso_utc(self):
        self.queue(make_response(payload=[]))

        self.client.fetch_issues('octo', 'hello', since=datetime(2024, 1, 5, 10, 0, 0))

        self.assertEqual(self.sent_params()[0]['since'], '2024-01-05T10:00:00Z')

    def test_comment_endpoint(self):
        self.queue(
            make_response(payload=[comment_payload(11), comment_payload(12)]),
            make_response(payload=[])
        )

        comments = self.client.fetch_issue_comments(
            'octo', 'hello', 42, since=datetime(2024, 2, 1)
        )

        self.assertTrue(all(isinstance(c, CommentRecord) for c in comments))
        self.assertEqual([c.id for c in comments], [11, 12])
        call = self.request.call_args_list[0]
        self.assertEqual(call.kwargs['url'], 'https://api.example.test/repos/octo/hello/issues/42/comments')
        self.assertEqual(call.kwargs['params']['since'], '2024-02-01T00:00:00Z')
        self.assertNotIn('state', call.kwargs['params'])


class TestErrors(ClientTestCase):
    """Test error mapping."""

    def test_http_error_carries_status_and_body(self):
        self.queue(make_response(404, payload={'message': 'Not Found'}))

        with self.assertRaises(GitHubAPIError) as ctx:
            self.client.fetch_issues('octo', 'missing')

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.response, {'message': 'Not Found'})

    def test_transport_error_has_no_status(self):
        self.request.side_effect = requests.exceptions.ConnectionError('connection refused')

        with self.assertRaises(GitHubAPIError) as ctx:
            self.client.fetch_issues('octo', 'hello')

        self.assertIsNone(ctx.exception.status_code)

    def test_invalid_json(self):
        response = make_response(payload=None, text='<html>')
        response.json.side_effect = ValueError('no json')
        self.queue(response)

        with self.assertRaises(GitHubAPIError):
            self.client.fetch_issues('octo', 'hello')

    def test_malformed_issue_is_a_validation_error(self):
        broken = issue_payload(1, 1)
        del broken['updated_at']
        self.queue(make_response(payload=[broken]), make_response(payload=[]))

        with self.assertRaises(RecordValidationError):
            self.client.fetch_issues('octo', 'hello')

    def test_validation_error_is_a_remote_error(self):
        self.assertTrue(issubclass(RecordValidationError, GitHubAPIError))


class TestAuthentication(ClientTestCase):
    """Test token handling."""

    def test_bearer_header(self):
        self.assertEqual(self.client._session.headers['Authorization'], 'Bearer ghp_test')

        self.client.set_token('ghp_other')
        self.assertEqual(self.client._session.headers['Authorization'], 'Bearer ghp_other')

    def test_authenticated_user(self):
        self.queue(make_response(payload={'login': 'octocat'}))

        self.assertEqual(self.client.get_authenticated_user(), {'login': 'octocat'})
        self.assertEqual(self.request.call_args.kwargs['url'], 'https://api.example.test/user')

    def test_rejected_token(self):
        self.queue(make_response(401, payload={'message': 'Bad credentials'}))

        with self.assertRaises(GitHubAPIError) as ctx:
            self.client.get_authenticated_user()
        self.assertEqual(ctx.exception.status_code, 401)

    def test_connection_check_reports_failure(self):
        self.queue(make_response(401, payload={'message': 'Bad credentials'}))
        self.assertFalse(self.client.test_connection())

    def test_missing_token_fails_without_request(self):
        self.client.set_token(None)

        self.assertNotIn('Authorization', self.client._session.headers)
        with self.assertRaises(GitHubAPIError) as ctx:
            self.client.get_authenticated_user()
        self.assertEqual(ctx.exception.status_code, 401)
        self.request.assert_not_called()


class TestRecords(unittest.TestCase):
    """Test payload conversion."""

    def test_issue_fields(self):
        payload = issue_payload(7, 3, comments=4, labels=('bug', 'p1'))
        payload['pull_request'] = {'url': 'https://api.github.com/pulls/3'}

        issue = IssueRecord.from_api(payload)

        self.assertEqual(issue.id, 7)
        self.assertEqual(issue.comment_count, 4)
        self.assertEqual(issue.labels, ['bug', 'p1'])
        self.assertTrue(issue.is_pull_request)
        self.assertEqual(issue.updated_at, datetime(2024, 1, 2))
        self.assertIsNone(issue.updated_at.tzinfo)

    def test_comment_missing_id(self):
        payload = comment_payload(1)
        del payload['id']
        with self.assertRaises(RecordValidationError):
            CommentRecord.from_api(payload)

    def test_mistyped_optional_fields(self):
        """Wrongly typed optional fields are validation errors, not crashes."""
        cases = [
            ('comments', 'many'),
            ('comments', [3]),
            ('title', 123),
            ('body', ['text']),
            ('state', {'open': True}),
            ('labels', 'bug'),
            ('updated_at', 1704153600),
        ]
        for key, value in cases:
            payload = issue_payload(1, 1)
            payload[key] = value
            with self.assertRaises(RecordValidationError, msg=key):
                IssueRecord.from_api(payload)

    def test_numeric_string_comment_count(self):
        payload = issue_payload(1, 1)
        payload['comments'] = '3'
        self.assertEqual(IssueRecord.from_api(payload).comment_count, 3)

    def test_missing_optional_fields(self):
        payload = issue_payload(1, 1)
        for key in ('title', 'body', 'state', 'comments', 'labels'):
            del payload[key]

        issue = IssueRecord.from_api(payload)

        self.assertIsNone(issue.title)
        self.assertIsNone(issue.body)
        self.assertEqual(issue.comment_count, 0)
        self.assertEqual(issue.labels, [])

    def test_comment_with_non_string_body(self):
        payload = comment_payload(1)
        payload['body'] = 42
        with self.assertRaises(RecordValidationError):
            CommentRecord.from_api(payload)

    def test_non_object_payload(self):
        with self.assertRaises(RecordValidationError):
            IssueRecord.from_api(['not', 'an', 'object'])


if __name__ == '__main__':
    unittest.main()
