"""Shared fixtures for argo-compare tests."""

from pathlib import Path

import git
import pytest

from argo_compare.command import Command, Task

AUTHOR = git.Actor("Example", "example@example.com")


def commit_files(repo: git.Repo, files: dict[str, str | None], message: str) -> None:
    """Write (or remove, for None) the files and commit them."""
    root = Path(str(repo.working_tree_dir))
    for path, content in files.items():
        if content is None:
            repo.index.remove([path], working_tree=True)
            continue
        (root / path).parent.mkdir(parents=True, exist_ok=True)
        (root / path).write_text(content)
        repo.index.add([path])
    repo.index.commit(message, author=AUTHOR, committer=AUTHOR)


class FakeRunner:
    """Records commands and fabricates the files helm and tar would write.

    `helm template` writes a single `deployment.yaml` per chart containing the
    release name followed by the values file content.
    """

    def __init__(self) -> None:
        self.commands: list[list[str]] = []
        self.tasks: list[Command] = []
        self.fail: str | None = None

    @staticmethod
    def _arg(cmd: list[str], flag: str) -> str:
        return cmd[cmd.index(flag) + 1]

    async def __call__(self, task: Task) -> str:
        assert isinstance(task, Command)
        cmd = task.cmd
        self.commands.append(cmd)
        self.tasks.append(task)
        if self.fail and self.fail in cmd:
            raise task.exc(f"Command '{task}' failed with return code 1")
        if cmd[:2] == ["helm", "pull"]:
            chart = cmd[4] if cmd[2] == "--repo" else cmd[2].rsplit("/", 1)[-1]
            version = self._arg(cmd, "--version")
            destination = Path(self._arg(cmd, "--destination"))
            (destination / f"{chart}-{version}.tgz").write_bytes(b"archive")
        elif cmd[0] == "tar":
            archive = Path(cmd[2])
            chart = archive.name.rsplit("-", 1)[0]
            chart_dir = Path(self._arg(cmd, "-C")) / chart
            chart_dir.mkdir(parents=True, exist_ok=True)
            (chart_dir / "Chart.yaml").write_text(f"name: {chart}\n")
        elif cmd[:2] == ["helm", "template"]:
            output_dir = Path(self._arg(cmd, "--output-dir"))
            values = Path(self._arg(cmd, "--values")).read_text()
            templates = output_dir / Path(cmd[3]).name / "templates"
            templates.mkdir(parents=True, exist_ok=True)
            (templates / "deployment.yaml").write_text(
                f"# release {cmd[2]}\n{values}\n"
            )
        return ""

    def count(self, *prefix: str) -> int:
        """Return the number of commands issued starting with the prefix."""
        return sum(1 for cmd in self.commands if cmd[: len(prefix)] == list(prefix))


@pytest.fixture(name="runner")
def runner_fixture() -> FakeRunner:
    return FakeRunner()
