from __future__ import annotations

import pytest

from conftest import FakeDelivery
from relay.schemas.delivery import Attachment, DeliveryResult
from relay.schemas.events import (
    DiscussionEvent,
    ForkEvent,
    IgnoredEvent,
    IssueEvent,
    PullRequestEvent,
    ReleaseEvent,
    WikiEvent,
    WorkflowRunEvent,
)
from relay.services.router import classify_github_event, dispatch_github_event

RELEASE_PAYLOAD = {
    "action": "published",
    "release": {
        "name": "v1.2.0",
        "tag_name": "v1.2.0",
        "body": "Bug fixes",
        "html_url": "https://github.com/example/mod/releases/tag/v1.2.0",
    },
}

PR_PAYLOAD = {
    "action": "opened",
    "pull_request": {
        "number": 7,
        "title": "Add hobbit holes",
        "body": "Adds new structures",
        "html_url": "https://github.com/example/mod/pull/7",
        "draft": False,
        "user": {"login": "frodo"},
        "head": {"ref": "feature/holes", "repo": {"fork": True}},
        "base": {"ref": "main", "repo": {"fork": False}},
    },
}


def test_classify_recognises_each_supported_shape() -> None:
    assert isinstance(classify_github_event({"pages": [{"page_name": "Home", "action": "edited"}]}), WikiEvent)
    assert isinstance(
        classify_github_event({"action": "created", "discussion": {"title": "Hi", "category": {"name": "Announcements"}}}),
        DiscussionEvent,
    )
    assert isinstance(classify_github_event(RELEASE_PAYLOAD), ReleaseEvent)
    assert isinstance(classify_github_event({"action": "opened", "issue": {"number": 1, "title": "Bug"}}), IssueEvent)
    assert isinstance(classify_github_event(PR_PAYLOAD), PullRequestEvent)
    assert isinstance(classify_github_event({"forkee": {"full_name": "sam/mod"}}), ForkEvent)
    assert isinstance(
        classify_github_event({"action": "completed", "workflow_run": {"name": "Build", "conclusion": "success"}}),
        WorkflowRunEvent,
    )


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"zen": "Keep it logically awesome."},
        {"action": "edited", "discussion": {"title": "Hi"}},
        {"action": "created", "release": {"name": "v1"}},
        {"action": "closed", "issue": {"number": 1}},
        {"action": "opened", "issue": {"number": 1}, "comment": {"body": "me too"}},
        {"action": "created", "discussion": {"title": "Hi", "category": {"name": "Announcements"}}, "comment": {"body": "hello"}},
        {"action": "closed", "pull_request": {"number": 1}},
        {"action": "requested", "workflow_run": {"name": "Build"}},
        {"pages": []},
        {"action": "opened", "issue": "not an object"},
        ["not", "an", "object"],
        None,
    ],
)
def test_classify_is_total_and_ignores_everything_else(payload) -> None:
    assert isinstance(classify_github_event(payload), IgnoredEvent)


def test_classify_ignores_draft_pull_requests_until_ready() -> None:
    draft = {**PR_PAYLOAD, "pull_request": {**PR_PAYLOAD["pull_request"], "draft": True}}

    assert classify_github_event(draft) == IgnoredEvent(reason="draft PR")
    assert isinstance(classify_github_event({**draft, "action": "ready_for_review"}), PullRequestEvent)


@pytest.mark.asyncio
async def test_ignored_event_returns_200(config, delivery) -> None:
    result = await dispatch_github_event(IgnoredEvent(reason="unsupported event"), config, delivery)

    assert result.status == 200
    assert result.message == "Ignored"
    assert delivery.calls == []


@pytest.mark.asyncio
async def test_draft_pr_is_ignored_with_reason(config, delivery) -> None:
    draft = {**PR_PAYLOAD, "pull_request": {**PR_PAYLOAD["pull_request"], "draft": True}}

    result = await dispatch_github_event(classify_github_event(draft), config, delivery)

    assert result.message == "Ignored - draft PR"
    assert delivery.calls == []


@pytest.mark.asyncio
async def test_release_goes_to_news_and_changelog(config, delivery) -> None:
    result = await dispatch_github_event(classify_github_event(RELEASE_PAYLOAD), config, delivery)

    assert result.status == 200
    assert [call["destination"] for call in delivery.calls] == [config.webhooks.news, config.webhooks.changelog]


@pytest.mark.asyncio
async def test_release_partial_failure_returns_500(config) -> None:
    delivery = FakeDelivery(
        [
            DeliveryResult(success=True, status_code=200),
            DeliveryResult(success=False, status_code=429, error="Discord rate limit exceeded"),
        ]
    )

    result = await dispatch_github_event(classify_github_event(RELEASE_PAYLOAD), config, delivery)

    assert result.status == 500
    assert result.message == "Partial failure"
    assert len(delivery.calls) == 2


@pytest.mark.asyncio
async def test_delivery_failure_status_is_returned(config) -> None:
    delivery = FakeDelivery([DeliveryResult(success=False, status_code=400, error="Invalid Discord webhook URL")])

    result = await dispatch_github_event(classify_github_event(PR_PAYLOAD), config, delivery)

    assert result.status == 400
    assert result.message == "Invalid Discord webhook URL"


@pytest.mark.asyncio
async def test_discussion_in_other_category_is_ignored(config, delivery) -> None:
    payload = {"action": "created", "discussion": {"title": "Q", "category": {"name": "Q&A"}}}

    result = await dispatch_github_event(classify_github_event(payload), config, delivery)

    assert result.status == 200
    assert result.message == "Ignored"
    assert delivery.calls == []


@pytest.mark.asyncio
async def test_comment_on_announcement_does_not_repost_it(config, delivery) -> None:
    payload = {
        "action": "created",
        "discussion": {"title": "Update", "body": "hello", "category": {"name": "Announcements"}},
        "comment": {"body": "nice"},
    }

    result = await dispatch_github_event(classify_github_event(payload), config, delivery)

    assert result.message == "Ignored"
    assert delivery.calls == []

class FakeGitHub:
    def __init__(self, attachment: Attachment | None) -> None:
        self.attachment = attachment
        self.urls: list[str] = []

    async def fetch_run_artifact(self, artifacts_url: str) -> Attachment | None:
        self.urls.append(artifacts_url)
        return self.attachment


WORKFLOW_PAYLOAD = {
    "action": "completed",
    "workflow_run": {
        "name": "Build",
        "conclusion": "success",
        "run_number": 12,
        "head_branch": "main",
        "head_sha": "abcdef1234567",
        "html_url": "https://github.com/example/mod/actions/runs/1",
        "artifacts_url": "https://api.github.com/repos/example/mod/actions/runs/1/artifacts",
        "actor": {"login": "gandalf"},
    },
}


@pytest.mark.asyncio
async def test_successful_workflow_run_attaches_artifact(config, delivery) -> None:
    github = FakeGitHub(Attachment(filename="mod.zip", content=b"zip"))

    result = await dispatch_github_event(classify_github_event(WORKFLOW_PAYLOAD), config, delivery, github)

    assert result.status == 200
    assert github.urls == [WORKFLOW_PAYLOAD["workflow_run"]["artifacts_url"]]
    assert delivery.calls[0]["destination"] == config.webhooks.workflows
    assert delivery.calls[0]["attachment"].filename == "mod.zip"


@pytest.mark.asyncio
async def test_failed_workflow_run_is_sent_without_artifact(config, delivery) -> None:
    payload = {**WORKFLOW_PAYLOAD, "workflow_run": {**WORKFLOW_PAYLOAD["workflow_run"], "conclusion": "failure"}}
    github = FakeGitHub(Attachment(filename="mod.zip", content=b"zip"))

    await dispatch_github_event(classify_github_event(payload), config, delivery, github)

    assert github.urls == []
    assert delivery.calls[0]["attachment"] is None


@pytest.mark.asyncio
async def test_workflow_run_without_artifact_is_still_sent(config, delivery) -> None:
    result = await dispatch_github_event(
        classify_github_event(WORKFLOW_PAYLOAD), config, delivery, FakeGitHub(None)
    )

    assert result.status == 200
    assert delivery.calls[0]["attachment"] is None
