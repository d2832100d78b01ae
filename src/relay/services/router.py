from __future__ import annotations

import logging
from typing import Any, Union

from pydantic import ValidationError

from relay.config import RelayConfig
from relay.schemas.delivery import DeliveryResult, HandlerResult
from relay.schemas.events import (
    DiscussionEvent,
    ForkEvent,
    GitHubEvent,
    IgnoredEvent,
    IssueEvent,
    MailEvent,
    PullRequestEvent,
    ReleaseEvent,
    WikiEvent,
    WorkflowRunEvent,
)
from relay.services.discord_client import Delivery, with_query
from relay.services.github_client import GitHubClient
from relay.templates import github as templates
from relay.templates.mail import mail_messages

logger = logging.getLogger(__name__)

# draft PRs are only announced once they become ready for review
_DRAFT_IGNORED_ACTIONS = frozenset({"opened", "reopened", "synchronize"})

ClassifiedEvent = Union[GitHubEvent, IgnoredEvent]


def _ignored(reason: str) -> IgnoredEvent:
    logger.info("Ignoring GitHub event: %s", reason)
    return IgnoredEvent(reason=reason)


def _pull_request_event(payload: dict[str, Any]) -> ClassifiedEvent:
    action = payload.get("action")
    if action not in templates.PR_ACTIONS:
        return _ignored(f"pull request action {action!r}")

    event = PullRequestEvent.model_validate(payload)
    if action in _DRAFT_IGNORED_ACTIONS and event.pull_request.draft:
        return _ignored("draft PR")
    return event


def _classify(payload: dict[str, Any]) -> ClassifiedEvent:
    action = payload.get("action")

    if isinstance(payload.get("pages"), list):
        if not payload["pages"]:
            return _ignored("wiki event without pages")
        return WikiEvent.model_validate(payload)
    if payload.get("discussion"):
        if "comment" in payload:
            return _ignored("discussion comment")
        if action != "created":
            return _ignored(f"discussion action {action!r}")
        return DiscussionEvent.model_validate(payload)
    if payload.get("release") and action == "published":
        return ReleaseEvent.model_validate(payload)
    if payload.get("issue") and action == "opened" and "comment" not in payload:
        return IssueEvent.model_validate(payload)
    if payload.get("pull_request"):
        return _pull_request_event(payload)
    if payload.get("forkee"):
        return ForkEvent.model_validate(payload)
    if payload.get("workflow_run") and action == "completed":
        return WorkflowRunEvent.model_validate(payload)
    return _ignored("unsupported event")


def classify_github_event(payload: Any) -> ClassifiedEvent:
    """Map a raw GitHub webhook body onto an event variant.

    Every input yields a result: unknown shapes, unhandled actions and
    recognised but malformed payloads become ``IgnoredEvent``.
    """
    if not isinstance(payload, dict):
        return _ignored("payload is not a JSON object")
    try:
        return _classify(payload)
    except ValidationError as exc:
        logger.warning("Malformed GitHub payload: %s", exc)
        return IgnoredEvent(reason="malformed payload")


def mail_event_from_payload(payload: Any) -> MailEvent:
    if not isinstance(payload, dict):
        logger.warning("Mail payload is not a JSON object, forwarding defaults")
        return MailEvent()

    headers = payload.get("headers") if isinstance(payload.get("headers"), dict) else {}
    envelope = payload.get("envelope") if isinstance(payload.get("envelope"), dict) else {}
    plain = payload.get("plain")
    html = payload.get("html")
    return MailEvent(
        subject=headers.get("subject") or "No Subject",
        sender=envelope.get("from") or "Unknown sender",
        plain=plain if isinstance(plain, str) else None,
        html=html if isinstance(html, str) else None,
    )


def _handler_result(result: DeliveryResult) -> HandlerResult:
    if result.success:
        return HandlerResult(status=200, message="Success")
    return HandlerResult(status=result.status_code, message=result.error or "Delivery failed")


async def _dispatch_release(event: ReleaseEvent, config: RelayConfig, delivery: Delivery) -> HandlerResult:
    results = [await delivery.send(request) for request in templates.release_requests(event, config)]
    if all(result.success for result in results):
        return HandlerResult(status=200, message="Success")

    for result in results:
        if not result.success:
            logger.error("Release delivery failed: %s", result.error)
    return HandlerResult(status=500, message="Partial failure")


async def _dispatch_workflow_run(
    event: WorkflowRunEvent,
    config: RelayConfig,
    delivery: Delivery,
    github: GitHubClient | None,
) -> HandlerResult:
    run = event.workflow_run
    attachment = None
    if github is not None and run.conclusion == "success" and run.artifacts_url:
        attachment = await github.fetch_run_artifact(run.artifacts_url)
    request = templates.workflow_run_request(event, config, attachment=attachment)
    return _handler_result(await delivery.send(request))


async def dispatch_github_event(
    event: ClassifiedEvent,
    config: RelayConfig,
    delivery: Delivery,
    github: GitHubClient | None = None,
) -> HandlerResult:
    if isinstance(event, IgnoredEvent):
        message = f"Ignored - {event.reason}" if event.reason == "draft PR" else "Ignored"
        return HandlerResult(status=200, message=message)

    logger.info("Dispatching GitHub %s event", event.kind)

    if isinstance(event, ReleaseEvent):
        return await _dispatch_release(event, config, delivery)
    if isinstance(event, WorkflowRunEvent):
        return await _dispatch_workflow_run(event, config, delivery, github)

    if isinstance(event, IssueEvent):
        request = templates.issue_request(event, config)
    elif isinstance(event, PullRequestEvent):
        request = templates.pull_request_request(event, config)
    elif isinstance(event, DiscussionEvent):
        request = templates.discussion_request(event, config)
        if request is None:
            category = event.discussion.category.name if event.discussion.category else ""
            logger.info("Ignoring discussion in category %r", category)
            return HandlerResult(status=200, message="Ignored")
    elif isinstance(event, WikiEvent):
        request = templates.wiki_request(event, config)
    elif isinstance(event, ForkEvent):
        request = templates.fork_request(event, config)
    else:
        return HandlerResult(status=200, message="Ignored")

    return _handler_result(await delivery.send(request))


async def dispatch_mail(payload: Any, config: RelayConfig, delivery: Delivery) -> HandlerResult:
    """Post a mail as a new forum thread, then post the rest of a long body into it."""
    event = mail_event_from_payload(payload)
    first, followups = mail_messages(event, config)
    logger.info("Forwarding mail %r from %s (%s follow-up messages)", event.subject, event.sender, len(followups))

    destination = config.webhooks.mails
    result = await delivery.deliver(with_query(destination, wait=True) if followups else destination, first)
    if not result.success:
        logger.error("Forwarding mail failed: %s", result.error)
        return HandlerResult(status=result.status_code, message=result.error or "Delivery failed")
    if not followups:
        return HandlerResult(status=200, message="E-Mail forwarded to discord.")

    thread_id = result.thread_id
    if thread_id is None:
        logger.error("Discord did not return a thread id, dropping %s follow-up messages", len(followups))
        return HandlerResult(status=500, message="Partial failure")

    failed = 0
    for followup in followups:
        followup_result = await delivery.deliver(with_query(destination, thread_id=thread_id), followup)
        if not followup_result.success:
            failed += 1
            logger.error("Posting mail follow-up into thread %s failed: %s", thread_id, followup_result.error)

    if failed:
        return HandlerResult(status=500, message="Partial failure")
    return HandlerResult(status=200, message="E-Mail forwarded to discord.")
