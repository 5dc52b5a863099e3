"""
Typed GitHub webhook events.

Each event kind is its own pydantic model; the class is the tag. Only the
fields handlers commonly need are declared, everything else GitHub sends is
kept as extra attributes. Kinds we have no model for come back as
UnknownEvent rather than raising, so callers can decide what to do with them.
"""

import json
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ghapp.errors import MalformedPayload


class GitHubModel(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class User(GitHubModel):
    login: str = ""
    id: int | None = None
    type: str | None = None


class Installation(GitHubModel):
    id: int
    account: User | None = None


class Repository(GitHubModel):
    id: int | None = None
    name: str = ""
    full_name: str = ""
    owner: User | None = None
    private: bool = False
    default_branch: str | None = None
    html_url: str | None = None


class GitRef(GitHubModel):
    ref: str = ""
    sha: str = ""
    label: str | None = None
    repo: Repository | None = None


class PullRequest(GitHubModel):
    number: int | None = None
    state: str | None = None
    title: str | None = None
    merged: bool = False
    html_url: str | None = None
    user: User | None = None
    head: GitRef | None = None
    base: GitRef | None = None


class Issue(GitHubModel):
    number: int | None = None
    title: str | None = None
    state: str | None = None
    user: User | None = None
    # present (as a dict of URLs) only when the issue is a pull request
    pull_request: dict | None = None


class Comment(GitHubModel):
    id: int | None = None
    body: str = ""
    user: User | None = None
    html_url: str | None = None


class Review(GitHubModel):
    id: int | None = None
    state: str | None = None
    body: str | None = None
    user: User | None = None


class Label(GitHubModel):
    name: str = ""
    color: str | None = None


class Commit(GitHubModel):
    id: str = ""
    message: str = ""
    url: str | None = None


class WebhookEvent(GitHubModel):
    kind: ClassVar[str] = ""

    action: str | None = None
    sender: User | None = None
    repository: Repository | None = None
    installation: Installation | None = None

    @property
    def installation_id(self) -> int | None:
        return self.installation.id if self.installation else None


class PingEvent(WebhookEvent):
    kind: ClassVar[str] = "ping"

    zen: str | None = None
    hook_id: int | None = None
    hook: dict | None = None


class PushEvent(WebhookEvent):
    kind: ClassVar[str] = "push"

    ref: str = ""
    before: str | None = None
    after: str | None = None
    created: bool = False
    deleted: bool = False
    forced: bool = False
    commits: list[Commit] = Field(default_factory=list)
    head_commit: Commit | None = None
    pusher: dict | None = None


class PullRequestEvent(WebhookEvent):
    kind: ClassVar[str] = "pull_request"

    number: int | None = None
    pull_request: PullRequest | None = None


class PullRequestReviewEvent(WebhookEvent):
    kind: ClassVar[str] = "pull_request_review"

    review: Review | None = None
    pull_request: PullRequest | None = None


class PullRequestReviewCommentEvent(WebhookEvent):
    kind: ClassVar[str] = "pull_request_review_comment"

    comment: Comment | None = None
    pull_request: PullRequest | None = None


class IssuesEvent(WebhookEvent):
    kind: ClassVar[str] = "issues"

    issue: Issue | None = None


class IssueCommentEvent(WebhookEvent):
    kind: ClassVar[str] = "issue_comment"

    issue: Issue | None = None
    comment: Comment | None = None


class CommitCommentEvent(WebhookEvent):
    kind: ClassVar[str] = "commit_comment"

    comment: Comment | None = None


class CreateEvent(WebhookEvent):
    kind: ClassVar[str] = "create"

    ref: str = ""
    ref_type: str = ""
    master_branch: str | None = None


class DeleteEvent(WebhookEvent):
    kind: ClassVar[str] = "delete"

    ref: str = ""
    ref_type: str = ""


class InstallationEvent(WebhookEvent):
    kind: ClassVar[str] = "installation"

    repositories: list[Repository] = Field(default_factory=list)


class InstallationRepositoriesEvent(WebhookEvent):
    kind: ClassVar[str] = "installation_repositories"

    repository_selection: str | None = None
    repositories_added: list[Repository] = Field(default_factory=list)
    repositories_removed: list[Repository] = Field(default_factory=list)


class LabelEvent(WebhookEvent):
    kind: ClassVar[str] = "label"

    label: Label | None = None


class RepositoryEvent(WebhookEvent):
    kind: ClassVar[str] = "repository"


class WatchEvent(WebhookEvent):
    kind: ClassVar[str] = "watch"


class GollumEvent(WebhookEvent):
    kind: ClassVar[str] = "gollum"

    pages: list[dict] = Field(default_factory=list)


class GitHubAppAuthorizationEvent(WebhookEvent):
    kind: ClassVar[str] = "github_app_authorization"


class UnknownEvent(GitHubModel):
    """An event kind with no model; the raw decoded payload is kept."""

    kind: ClassVar[str] = "unknown"

    event_type: str
    payload: Any = None


Event = Union[
    PingEvent,
    PushEvent,
    PullRequestEvent,
    PullRequestReviewEvent,
    PullRequestReviewCommentEvent,
    IssuesEvent,
    IssueCommentEvent,
    CommitCommentEvent,
    CreateEvent,
    DeleteEvent,
    InstallationEvent,
    InstallationRepositoriesEvent,
    LabelEvent,
    RepositoryEvent,
    WatchEvent,
    GollumEvent,
    GitHubAppAuthorizationEvent,
    UnknownEvent,
]

EVENT_TYPES: dict[str, type[WebhookEvent]] = {
    cls.kind: cls
    for cls in (
        PingEvent,
        PushEvent,
        PullRequestEvent,
        PullRequestReviewEvent,
        PullRequestReviewCommentEvent,
        IssuesEvent,
        IssueCommentEvent,
        CommitCommentEvent,
        CreateEvent,
        DeleteEvent,
        InstallationEvent,
        InstallationRepositoriesEvent,
        LabelEvent,
        RepositoryEvent,
        WatchEvent,
        GollumEvent,
        GitHubAppAuthorizationEvent,
    )
}
# Names GitHub used before "integrations" became "apps".
EVENT_TYPES["integration_installation"] = InstallationEvent
EVENT_TYPES["integration_installation_repositories"] = InstallationRepositoriesEvent


def parse_event(event_type: str, body: bytes) -> Event:
    """Deserialize a verified request body into the model for *event_type*."""
    model = EVENT_TYPES.get(event_type)
    if model is None:
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise MalformedPayload(f"Body of {event_type!r} event is not valid JSON") from exc
        return UnknownEvent(event_type=event_type, payload=payload)

    try:
        return model.model_validate_json(body)
    except ValidationError as exc:
        raise MalformedPayload(
            f"Invalid {event_type} payload ({exc.error_count()} validation error(s))"
        ) from exc
