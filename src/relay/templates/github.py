from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from relay.config import RelayConfig
from relay.schemas.delivery import Attachment, DeliveryRequest
from relay.schemas.events import (
    DiscussionEvent,
    ForkEvent,
    GitHubUser,
    IssueEvent,
    PullRequestEvent,
    ReleaseEvent,
    WikiEvent,
    WorkflowRunEvent,
)
from relay.templates.common import (
    DISCORD_DESCRIPTION_LIMIT,
    DISCORD_TITLE_LIMIT,
    EMBED_COLOR,
    UNKNOWN_USER,
    action_row,
    iso_now,
    link_button,
    thread_name,
    with_ping,
)
from relay.templates.markdown import truncate_text

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description provided"
PR_BODY_LIMIT = 300

# action -> (title verb, description after the author, footer)
_PR_ACTIONS: dict[str, tuple[str, str, str]] = {
    "opened": (
        "opened",
        "has opened a new pull request that is ready for review.",
        "This PR was opened",
    ),
    "ready_for_review": (
        "ready for review",
        "has marked their pull request as ready for review.",
        "This PR was marked ready for review",
    ),
    "reopened": (
        "reopened",
        "has reopened their pull request for review.",
        "This PR was reopened",
    ),
    "synchronize": (
        "synchronized",
        "has updated their pull request with new changes.",
        "This PR was updated with new changes",
    ),
    "review_requested": (
        "review requested",
        "has requested **{reviewer}** to review their pull request.",
        "This PR review was requested",
    ),
}
PR_ACTIONS = frozenset(_PR_ACTIONS)

_CONCLUSION_COLORS = {
    "success": 3066993,
    "failure": 15158332,
    "timed_out": 15158332,
}
_NEUTRAL_COLOR = 9807270


def _login(user: GitHubUser | None, default: str = UNKNOWN_USER) -> str:
    if user is not None and user.login:
        return user.login
    return default


def issue_timestamp(created_at: str | None) -> str:
    now = datetime.now(timezone.utc)
    if not created_at:
        return now.isoformat()
    try:
        parsed = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        logger.error("Invalid issue timestamp %r, using current time", created_at)
        return now.isoformat()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed > now:
        logger.warning("Issue timestamp %s is in the future", created_at)
    return created_at


def issue_request(event: IssueEvent, config: RelayConfig) -> DeliveryRequest:
    issue = event.issue
    labels = ", ".join(label.name for label in issue.labels or [] if label.name) or "None"
    description = truncate_text(issue.body, DISCORD_DESCRIPTION_LIMIT) if issue.body else NO_DESCRIPTION

    payload = {
        "username": f"{config.project_name} Issues",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": truncate_text(issue.title or "Untitled Issue", DISCORD_TITLE_LIMIT),
                "author": {"name": _login(issue.user)},
                "description": description,
                "color": EMBED_COLOR,
                "fields": [{"name": "Labels", "value": labels}],
                "timestamp": issue_timestamp(issue.created_at),
                "footer": {"text": "This issue was created on GitHub"},
            }
        ],
        "components": [action_row([link_button("Issue on GitHub", issue.html_url)])],
    }
    return DeliveryRequest(destination=config.webhooks.issues, payload=payload)


def pull_request_request(event: PullRequestEvent, config: RelayConfig) -> DeliveryRequest:
    pull_request = event.pull_request
    verb, action_text, footer = _PR_ACTIONS[event.action]

    number = pull_request.number
    author = _login(pull_request.user)
    pr_title = pull_request.title or "Untitled PR"
    if event.action == "review_requested":
        reviewer = _login(event.requested_reviewer, default="someone")
        if reviewer == "someone":
            logger.warning("Missing requested reviewer data for PR %s", number)
        action_text = action_text.format(reviewer=reviewer)

    ping = config.pings.maintainers if pull_request.from_fork else config.pings.contributors
    pr_url = pull_request.html_url or f"{config.repository_url}/pull/{number}"

    fields: list[dict[str, Any]] = []
    if pull_request.body and pull_request.body.strip():
        fields.append(
            {
                "name": "Description",
                "value": truncate_text(pull_request.body, PR_BODY_LIMIT),
                "inline": False,
            }
        )
    if pull_request.head and pull_request.base:
        fields.append(
            {
                "name": "Changes",
                "value": f"`{pull_request.head.ref}` → `{pull_request.base.ref}`",
                "inline": True,
            }
        )

    payload = {
        "username": f"{config.project_name} PRs",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": truncate_text(f"PR {number} {verb}: {pr_title}", DISCORD_TITLE_LIMIT),
                "description": with_ping(ping, f"**{author}** {action_text}", separator="\n"),
                "url": pr_url,
                "color": EMBED_COLOR,
                "fields": fields,
                "timestamp": iso_now(),
                "footer": {"text": footer},
            }
        ],
        "components": [action_row([link_button("View PR on GitHub", pr_url)])],
    }
    return DeliveryRequest(destination=config.webhooks.prs, payload=payload)


def release_requests(event: ReleaseEvent, config: RelayConfig) -> list[DeliveryRequest]:
    """A release goes to the news channel and, with its full notes, to the changelog channel."""
    release = event.release
    title = truncate_text(release.name or release.tag_name or "New Release", DISCORD_TITLE_LIMIT)
    timestamp = iso_now()

    news_payload = {
        "username": "Releases",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": title,
                "url": release.html_url,
                "color": EMBED_COLOR,
                "timestamp": timestamp,
                "description": with_ping(config.pings.release, "A new Release has dropped."),
                "fields": [
                    {"name": "GitHub", "value": f"[Download]({release.html_url})", "inline": True},
                    {"name": "Changelog", "value": f"[Details]({config.changelog_url})", "inline": True},
                ],
                "footer": {"text": config.footer_text},
            }
        ],
        "components": [
            action_row(
                [
                    link_button("Changelog Channel", config.changelog_channel_url),
                    link_button("GitHub Release", release.html_url),
                ]
            )
        ],
    }
    changelog_payload = {
        "username": "Changelog",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": title,
                "url": config.changelog_url,
                "color": EMBED_COLOR,
                "timestamp": timestamp,
                "description": truncate_text(release.body or NO_DESCRIPTION, DISCORD_DESCRIPTION_LIMIT),
            }
        ],
    }
    return [
        DeliveryRequest(destination=config.webhooks.news, payload=news_payload),
        DeliveryRequest(destination=config.webhooks.changelog, payload=changelog_payload),
    ]


def discussion_request(event: DiscussionEvent, config: RelayConfig) -> DeliveryRequest | None:
    """Announcements go to news, suggestions open a tagged thread; other categories are skipped."""
    discussion = event.discussion
    category = discussion.category.name if discussion.category else ""
    body = discussion.body or ""

    if category == "Announcements":
        destination = config.webhooks.news
        username = "GitHub Announcements"
        title_prefix = "GitHub Announcement"
        monthly = any(label.name == "Monthly Updates" for label in discussion.labels or [])
        description = with_ping(config.pings.monthly if monthly else config.pings.news, body)
        use_thread = False
    elif category == "Ideas and suggestions":
        destination = config.webhooks.suggestions
        username = "GitHub Suggestions"
        title_prefix = "GitHub Suggestion"
        description = body
        use_thread = True
    else:
        return None

    title = f"{title_prefix}: {discussion.title}"
    payload: dict[str, Any] = {
        "username": username,
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": truncate_text(title, DISCORD_TITLE_LIMIT),
                "description": truncate_text(description, DISCORD_DESCRIPTION_LIMIT),
                "url": discussion.html_url,
                "color": EMBED_COLOR,
                "timestamp": iso_now(),
                "footer": {"text": config.footer_text},
            }
        ],
        "components": [action_row([link_button("View on GitHub", discussion.html_url)])],
    }
    if use_thread:
        payload["thread_name"] = thread_name(title)
        if config.tags.suggestions:
            payload["applied_tags"] = [config.tags.suggestions]

    return DeliveryRequest(destination=destination, payload=payload)


def wiki_request(event: WikiEvent, config: RelayConfig) -> DeliveryRequest:
    author = _login(event.sender)
    lines = [f"**{author}** has made following changes to the Wiki:"]
    lines.extend(f"- {page.display_title} has been {page.action}" for page in event.pages)

    buttons = [link_button("Home", config.wiki_url)]
    for page in event.pages:
        if page.action in ("edited", "created") and page.html_url:
            buttons.append(link_button(page.display_title, page.html_url))

    payload = {
        "username": "GitHub Wiki",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": "New Project-Wiki Changes",
                "description": truncate_text("\n".join(lines) + "\n", DISCORD_DESCRIPTION_LIMIT),
                "color": EMBED_COLOR,
                "timestamp": iso_now(),
                "footer": {"text": config.footer_text},
            }
        ],
        "components": [action_row(buttons)],
    }
    return DeliveryRequest(destination=config.webhooks.wiki, payload=payload)


def fork_request(event: ForkEvent, config: RelayConfig) -> DeliveryRequest:
    forkee = event.forkee
    owner = _login(forkee.owner) if forkee.owner else _login(event.sender)
    source = event.repository.full_name if event.repository and event.repository.full_name else config.project_name

    description = f"**{owner}** has forked **{source}**."
    if event.repository and event.repository.forks_count is not None:
        description += f"\nThe repository now has {event.repository.forks_count} forks."

    payload = {
        "username": f"{config.project_name} Forks",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": truncate_text(f"New fork: {forkee.full_name or UNKNOWN_USER}", DISCORD_TITLE_LIMIT),
                "description": description,
                "url": forkee.html_url,
                "color": EMBED_COLOR,
                "timestamp": iso_now(),
                "footer": {"text": config.footer_text},
            }
        ],
        "components": [action_row([link_button("View Fork", forkee.html_url)])],
    }
    return DeliveryRequest(destination=config.webhooks.forks, payload=payload)


def workflow_run_request(
    event: WorkflowRunEvent,
    config: RelayConfig,
    attachment: Attachment | None = None,
) -> DeliveryRequest:
    run = event.workflow_run
    conclusion = run.conclusion or run.status or "unknown"
    name = run.name or "Workflow"
    number = f" #{run.run_number}" if run.run_number is not None else ""

    fields: list[dict[str, Any]] = [
        {"name": "Branch", "value": f"`{run.head_branch or 'unknown'}`", "inline": True},
        {"name": "Commit", "value": f"`{(run.head_sha or 'unknown')[:7]}`", "inline": True},
        {"name": "Triggered by", "value": _login(run.actor), "inline": True},
    ]
    if attachment is not None:
        fields.append({"name": "Artifact", "value": attachment.filename, "inline": False})

    payload = {
        "username": f"{config.project_name} Workflows",
        "avatar_url": config.avatar_url,
        "embeds": [
            {
                "title": truncate_text(f"{name}{number}: {conclusion}", DISCORD_TITLE_LIMIT),
                "description": truncate_text(run.display_title or "", DISCORD_DESCRIPTION_LIMIT),
                "url": run.html_url,
                "color": _CONCLUSION_COLORS.get(conclusion, _NEUTRAL_COLOR),
                "fields": fields,
                "timestamp": iso_now(),
                "footer": {"text": config.footer_text},
            }
        ],
        "components": [action_row([link_button("View Run", run.html_url)])],
    }
    return DeliveryRequest(destination=config.webhooks.workflows, payload=payload, attachment=attachment)
