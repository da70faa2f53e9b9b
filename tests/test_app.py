"""End to end tests for a comparison run with a fake helm."""

import io
import logging
from pathlib import Path
from typing import Any

import git
import pytest

from argo_compare.app import App, DestinationAction, create_poster
from argo_compare.cache import ChartCache
from argo_compare.comment import Poster
from argo_compare.comment.gitlab import GitLabPoster
from argo_compare.config import (
    CommentConfig,
    CommentProvider,
    Config,
    GitLabCommentConfig,
)
from argo_compare.exceptions import HelmException, InvalidFilesFound
from argo_compare.git_repo import GitRepo
from argo_compare.helm import Helm

from .conftest import FakeRunner, commit_files

APP_TEMPLATE = """\
apiVersion: argoproj.io/v1alpha1
kind: Application
metadata:
  name: {name}
  namespace: argo-cd
spec:
  source:
    repoURL: https://charts.example.com
    chart: {name}
    targetRevision: {version}
    helm:
      values: |
        replicaCount: {replicas}
"""


def _app(name: str, version: str = "1.0.0", replicas: int = 1) -> str:
    return APP_TEMPLATE.format(name=name, version=version, replicas=replicas)


class FakePoster(Poster):
    def __init__(self) -> None:
        self.bodies: list[str] = []

    async def post(self, body: str) -> None:
        self.bodies.append(body)


@pytest.fixture(name="repo")
def repo_fixture(tmp_path: Path) -> git.Repo:
    """Fixture for a repository with one changed, one new and one broken app."""
    repo = git.Repo.init(tmp_path / "repo")
    commit_files(
        repo,
        {
            "apps/podinfo.yaml": _app("podinfo", "6.5.0", 1),
            "apps/secondary.yaml": _app("secondary"),
            "apps/target-broken.yaml": "kind: Application\nspec: [\n",
        },
        "Initial commit",
    )
    repo.git.update_ref("refs/remotes/origin/main", "HEAD")
    commit_files(
        repo,
        {
            "apps/podinfo.yaml": _app("podinfo", "6.5.1", 2),
            "apps/secondary.yaml": _app("secondary", replicas=3),
            "apps/new.yaml": _app("new"),
            "apps/broken.yaml": "kind: Application\nspec: [\n",
            "apps/target-broken.yaml": _app("target-broken"),
        },
        "Update applications",
    )
    return repo


@pytest.fixture(name="temp_dir_base")
def temp_dir_base_fixture(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture(name="make_app")
def make_app_fixture(
    repo: git.Repo, runner: FakeRunner, tmp_path: Path, temp_dir_base: Path
) -> Any:
    """Fixture returning a factory of App with the fake helm."""

    def make(
        output: io.StringIO, poster_factory: Any = None, **kwargs: Any
    ) -> App:
        config = Config.create(
            "main", tmp_path / "cache", temp_dir_base=temp_dir_base, **kwargs
        )
        helm = Helm(ChartCache(config.cache_dir), runner=runner)
        return App(
            config,
            repo=GitRepo(repo),
            helm=helm,
            poster_factory=poster_factory or (lambda _: FakePoster()),
            output=output,
        )

    return make


async def test_run(
    make_app: Any, runner: FakeRunner, temp_dir_base: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Test comparing every changed Application."""
    caplog.set_level(logging.INFO)
    output = io.StringIO()
    app = make_app(output, files_to_ignore=["apps/secondary.yaml"])
    with pytest.raises(InvalidFilesFound) as exc_info:
        await app.run()
    assert exc_info.value.files == ["apps/broken.yaml"]

    diff = output.getvalue()
    assert "-replicaCount: 1\n+replicaCount: 2\n" in diff
    assert "--- dst/podinfo/templates/deployment.yaml" in diff
    assert "replicaCount: 3" not in diff

    # The new Application is skipped without a destination render
    assert "does not exist in target branch" in caplog.text
    assert "# release new" not in diff
    # The target side of target-broken can't be parsed so it's compared to nothing
    assert "Could not get the target Application" in caplog.text
    # Both revisions of podinfo were fetched, target-broken only once
    assert runner.count("helm", "pull") == 3
    assert runner.count("helm", "template") == 3
    assert list(temp_dir_base.iterdir()) == []


async def test_run_print_added(make_app: Any) -> None:
    """Test rendering a new Application against an empty destination."""
    output = io.StringIO()
    app = make_app(output, file_to_compare="apps/new.yaml", print_added_manifests=True)
    await app.run()
    diff = output.getvalue()
    assert "+# release new\n+replicaCount: 1\n" in diff


async def test_single_file(make_app: Any, runner: FakeRunner) -> None:
    """Test comparing a single file without resolving the change set."""
    output = io.StringIO()
    app = make_app(output, file_to_compare="apps/secondary.yaml")
    await app.run()
    assert "-replicaCount: 1\n+replicaCount: 3\n" in output.getvalue()
    assert runner.count("helm", "template") == 2


async def test_single_file_ignored(
    make_app: Any, runner: FakeRunner, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)
    app = make_app(
        io.StringIO(),
        file_to_compare="apps/secondary.yaml",
        files_to_ignore=["apps/secondary.yaml"],
    )
    await app.run()
    assert "ignored by filters" in caplog.text
    assert runner.commands == []


async def test_no_changes(
    tmp_path: Path, runner: FakeRunner, caplog: pytest.LogCaptureFixture
) -> None:
    """Test a branch without any changed Application."""
    caplog.set_level(logging.INFO)
    repo = git.Repo.init(tmp_path / "repo")
    commit_files(repo, {"apps/a.yaml": _app("a")}, "Initial commit")
    repo.git.update_ref("refs/remotes/origin/main", "HEAD")
    commit_files(repo, {"README.md": "# Example\n"}, "Docs")

    config = Config.create("main", tmp_path / "cache")
    app = App(config, repo=GitRepo(repo), helm=Helm(ChartCache(tmp_path), runner=runner))
    await app.run()
    assert "No changed Application files found" in caplog.text
    assert runner.commands == []


async def test_pipeline_failure(
    make_app: Any, runner: FakeRunner, temp_dir_base: Path
) -> None:
    """Test that a helm failure aborts the run and removes the workspace."""
    runner.fail = "template"
    app = make_app(io.StringIO())
    with pytest.raises(HelmException):
        await app.run()
    assert runner.count("helm", "template") == 1
    assert list(temp_dir_base.iterdir()) == []


async def test_comment(make_app: Any) -> None:
    """Test posting one comment per compared Application."""
    posters: list[FakePoster] = []

    def factory(config: Config) -> Poster:
        poster = FakePoster()
        posters.append(poster)
        return poster

    app = make_app(
        io.StringIO(),
        poster_factory=factory,
        file_to_compare="apps/podinfo.yaml",
        comment=CommentConfig(
            CommentProvider.GITLAB,
            GitLabCommentConfig("https://gitlab.com", "token", "1", 2),
        ),
    )
    await app.run()
    [poster] = posters
    [body] = poster.bodies
    assert "**Application:** `apps/podinfo.yaml`" in body
    assert "+replicaCount: 2" in body


def test_resolve_target(make_app: Any) -> None:
    """Test the destination decision for each kind of target content."""
    app = make_app(io.StringIO())
    target, action = app.resolve_target("apps/podinfo.yaml")
    assert action == DestinationAction.RENDER
    assert target is not None and target.sources[0].target_revision == "6.5.0"
    assert app.resolve_target("apps/new.yaml") == (None, DestinationAction.SKIP)
    assert app.resolve_target("apps/target-broken.yaml") == (
        None,
        DestinationAction.EMPTY,
    )

    app = make_app(io.StringIO(), print_added_manifests=True)
    assert app.resolve_target("apps/new.yaml") == (None, DestinationAction.EMPTY)


def test_create_poster() -> None:
    config = Config.create(
        "main",
        "/tmp/cache",
        comment=CommentConfig(
            CommentProvider.GITLAB,
            GitLabCommentConfig("https://gitlab.com", "token", "1", 2),
        ),
    )
    assert isinstance(create_poster(config), GitLabPoster)
