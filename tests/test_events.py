"""Tests for webhook event parsing."""

import json

import pytest
from pydantic import ValidationError

from ghapp.errors import MalformedPayload, UnknownEventOrMalformedPayload
from ghapp.events import (
    EVENT_TYPES,
    InstallationEvent,
    IssueCommentEvent,
    PingEvent,
    PullRequestEvent,
    PushEvent,
    UnknownEvent,
    parse_event,
)


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


class TestParseEvent:
    def test_minimal_pull_request(self):
        event = parse_event("pull_request", b'{"action":"opened","number":1}')
        assert isinstance(event, PullRequestEvent)
        assert event.kind == "pull_request"
        assert event.action == "opened"
        assert event.number == 1
        assert event.installation_id is None

    def test_full_pull_request(self):
        payload = {
            "action": "closed",
            "number": 42,
            "pull_request": {
                "number": 42,
                "merged": True,
                "html_url": "https://github.com/owner/repo/pull/42",
                "head": {"ref": "feature", "sha": "abc123", "repo": {"full_name": "owner/repo"}},
                "base": {"ref": "main", "sha": "def456"},
                "additions": 10,
            },
            "repository": {"name": "repo", "full_name": "owner/repo", "owner": {"login": "owner"}},
            "installation": {"id": 12345},
        }
        event = parse_event("pull_request", _body(payload))
        assert event.installation_id == 12345
        assert event.pull_request.merged is True
        assert event.pull_request.head.ref == "feature"
        assert event.repository.owner.login == "owner"
        # undeclared fields are kept
        assert event.pull_request.additions == 10

    def test_ping(self):
        event = parse_event("ping", _body({"zen": "Keep it logically awesome.", "hook_id": 1}))
        assert isinstance(event, PingEvent)
        assert event.zen == "Keep it logically awesome."

    def test_push(self):
        payload = {
            "ref": "refs/heads/main",
            "commits": [{"id": "abc", "message": "fix"}],
            "installation": {"id": 3},
        }
        event = parse_event("push", _body(payload))
        assert isinstance(event, PushEvent)
        assert event.commits[0].message == "fix"
        assert event.installation_id == 3

    def test_issue_comment_on_pull_request(self):
        payload = {
            "action": "created",
            "issue": {"number": 42, "pull_request": {"url": "https://api.github.com/repos/o/r/pulls/42"}},
            "comment": {"body": "LGTM", "user": {"login": "octocat", "type": "User"}},
        }
        event = parse_event("issue_comment", _body(payload))
        assert isinstance(event, IssueCommentEvent)
        assert event.issue.pull_request is not None
        assert event.comment.user.login == "octocat"

    @pytest.mark.parametrize("name", ["installation", "integration_installation"])
    def test_installation_aliases(self, name):
        event = parse_event(name, _body({"action": "created", "installation": {"id": 9}}))
        assert isinstance(event, InstallationEvent)
        assert event.installation_id == 9

    def test_every_registered_kind_accepts_empty_object(self):
        for name, model in EVENT_TYPES.items():
            assert isinstance(parse_event(name, b"{}"), model)

    def test_events_are_immutable(self):
        event = parse_event("pull_request", b'{"action":"opened","number":1}')
        with pytest.raises(ValidationError):
            event.action = "closed"

    def test_structural_match(self):
        event = parse_event("pull_request", b'{"action":"opened","number":1}')
        match event:
            case PullRequestEvent(action="opened", number=n):
                assert n == 1
            case _:
                pytest.fail("pattern did not match")


class TestUnknownAndMalformed:
    def test_unknown_kind_is_a_variant(self):
        event = parse_event("deployment_status", _body({"state": "success"}))
        assert isinstance(event, UnknownEvent)
        assert event.event_type == "deployment_status"
        assert event.payload == {"state": "success"}

    def test_unknown_kind_with_bad_json(self):
        with pytest.raises(MalformedPayload):
            parse_event("deployment_status", b"{not json")

    def test_invalid_json(self):
        with pytest.raises(MalformedPayload):
            parse_event("pull_request", b"{not json")

    def test_wrong_shape(self):
        with pytest.raises(UnknownEventOrMalformedPayload):
            parse_event("pull_request", _body({"number": "not-a-number"}))

    def test_not_an_object(self):
        with pytest.raises(MalformedPayload):
            parse_event("push", b"[1, 2, 3]")

    def test_installation_without_id(self):
        with pytest.raises(MalformedPayload):
            parse_event("installation", _body({"installation": {}}))
