from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    login: str | None = None


class Label(BaseModel):
    name: str = ""


class Repository(BaseModel):
    full_name: str = ""
    html_url: str = ""
    fork: bool = False
    forks_count: int | None = None
    owner: GitHubUser | None = None


class Issue(BaseModel):
    number: int | None = None
    title: str = ""
    body: str | None = None
    html_url: str = ""
    user: GitHubUser | None = None
    labels: list[Label] | None = None
    created_at: str | None = None


class BranchRef(BaseModel):
    ref: str = ""
    repo: Repository | None = None


class PullRequest(BaseModel):
    number: int | None = None
    title: str | None = None
    body: str | None = None
    html_url: str | None = None
    draft: bool | None = False
    user: GitHubUser | None = None
    head: BranchRef | None = None
    base: BranchRef | None = None

    @property
    def from_fork(self) -> bool:
        return bool(self.head and self.head.repo and self.head.repo.fork)


class Release(BaseModel):
    name: str | None = None
    tag_name: str | None = None
    body: str | None = None
    html_url: str = ""


class DiscussionCategory(BaseModel):
    name: str = ""


class Discussion(BaseModel):
    title: str = ""
    body: str | None = None
    html_url: str = ""
    category: DiscussionCategory | None = None
    labels: list[Label] | None = None
    user: GitHubUser | None = None


class WikiPage(BaseModel):
    page_name: str = ""
    title: str | None = None
    action: str = ""
    html_url: str = ""

    @property
    def display_title(self) -> str:
        return self.title or self.page_name


class WorkflowRun(BaseModel):
    id: int | None = None
    name: str | None = None
    display_title: str | None = None
    status: str | None = None
    conclusion: str | None = None
    event: str | None = None
    head_branch: str | None = None
    head_sha: str | None = None
    html_url: str = ""
    run_number: int | None = None
    actor: GitHubUser | None = None
    artifacts_url: str | None = None


class IssueEvent(BaseModel):
    kind: Literal["issue"] = "issue"
    action: str
    issue: Issue


class PullRequestEvent(BaseModel):
    kind: Literal["pull_request"] = "pull_request"
    action: str
    pull_request: PullRequest
    requested_reviewer: GitHubUser | None = None


class ReleaseEvent(BaseModel):
    kind: Literal["release"] = "release"
    action: str
    release: Release


class DiscussionEvent(BaseModel):
    kind: Literal["discussion"] = "discussion"
    action: str
    discussion: Discussion


class WikiEvent(BaseModel):
    kind: Literal["wiki"] = "wiki"
    pages: list[WikiPage]
    sender: GitHubUser | None = None


class ForkEvent(BaseModel):
    kind: Literal["fork"] = "fork"
    forkee: Repository
    repository: Repository | None = None
    sender: GitHubUser | None = None


class WorkflowRunEvent(BaseModel):
    kind: Literal["workflow_run"] = "workflow_run"
    action: str
    workflow_run: WorkflowRun
    repository: Repository | None = None


class MailEvent(BaseModel):
    kind: Literal["mail"] = "mail"
    subject: str = "No Subject"
    sender: str = "Unknown sender"
    plain: str | None = None
    html: str | None = None


class IgnoredEvent(BaseModel):
    kind: Literal["ignored"] = "ignored"
    reason: str = ""


GitHubEvent = Annotated[
    Union[
        IssueEvent,
        PullRequestEvent,
        ReleaseEvent,
        DiscussionEvent,
        WikiEvent,
        ForkEvent,
        WorkflowRunEvent,
    ],
    Field(discriminator="kind"),
]
