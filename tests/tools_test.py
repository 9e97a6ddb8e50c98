import os
from pathlib import Path
import shutil
import subprocess
import sys

import pytest

from chainbuilder.config import RunConfig
from chainbuilder.graph import scan_directory
from chainbuilder.scheduler import BuildScheduler
from chainbuilder.status import NodeLog
from chainbuilder.status import NodeStatus
from chainbuilder.tools import build_command
from chainbuilder.tools import changed_files
from chainbuilder.tools import diff_command
from chainbuilder.tools import push_command
from chainbuilder.tools import Toolchain
from chainbuilder.work import ExecuteCommand
from chainbuilder.work import WorkFailedError


def test_execute_captures_output(tmp_path):
    log = NodeLog()
    cmd = ExecuteCommand(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"],
        working_directory=tmp_path,
    )
    lines = cmd(log)
    assert sorted(lines) == ["err", "out"]
    text = log.text()
    assert text.startswith(f"$ {cmd}\n")
    assert "out\n" in text
    assert "err\n" in text


def test_execute_echo(tmp_path):
    log = NodeLog()
    echo = NodeLog()
    ExecuteCommand([sys.executable, "-c", "print('hi')"], tmp_path)(log, echo)
    assert echo.getvalue() == log.getvalue()


def test_execute_failure(tmp_path):
    log = NodeLog()
    cmd = ExecuteCommand(
        [sys.executable, "-c", "print('broken'); raise SystemExit(3)"],
        working_directory=tmp_path,
    )
    with pytest.raises(WorkFailedError) as exc_info:
        cmd(log)
    assert exc_info.value.return_code == 3
    assert "broken" in log.text()


def test_build_command():
    cmd = build_command(
        "docker", Path("/images/base"), ["r/base:1.0.0", "r/base:latest"], no_cache=True
    )
    assert cmd.cmd == (
        "docker",
        "build",
        "--pull",
        "--no-cache",
        "-t",
        "r/base:1.0.0",
        "-t",
        "r/base:latest",
        ".",
    )


def test_buildah_command():
    cmd = build_command("buildah", Path("/images/base"), ["r/base:1"], pull=False)
    assert cmd.cmd == ("buildah", "bud", "-t", "r/base:1", ".")
    assert push_command("buildah", "r/base:1").cmd == ("buildah", "push", "r/base:1")


_fake_docker = """#!{python}
import os
import sys

if sys.argv[1] == "build" and not os.path.isfile(os.path.join(sys.argv[-1], "Dockerfile")):
    print("no Dockerfile in context " + sys.argv[-1])
    sys.exit(1)
print("built in " + os.getcwd())
"""


@pytest.fixture
def fake_docker(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    docker = bin_dir / "docker"
    docker.write_text(_fake_docker.format(python=sys.executable))
    docker.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return docker


@pytest.mark.skipif(sys.platform == "win32", reason="needs an executable script")
def test_build_from_relative_directory(tmp_path, monkeypatch, fake_docker):
    images = tmp_path / "images"
    images.mkdir()
    for name, base in (("base", "ubuntu:jammy"), ("child", "localhost/base:1.0.0")):
        (images / name).mkdir()
        (images / name / "Dockerfile").write_text(f"FROM {base}\n")
        (images / name / "VERSION").write_text("1.0.0\n")

    monkeypatch.chdir(tmp_path)
    graph = scan_directory(Path("images"), "localhost")
    statuses = BuildScheduler(graph, RunConfig(push=False), Toolchain()).run(["base"])

    assert statuses == {"base": NodeStatus.SUCCESS, "child": NodeStatus.SUCCESS}
    assert "built in" in graph["child"].state.log.text()


def test_diff_command():
    cmd = diff_command(Path("/images"), "origin/main")
    assert cmd.cmd == ("git", "diff", "--name-only", "--relative", "origin/main")


needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def _git(cwd, *args):
    subprocess.run(
        [
            "git",
            "-c",
            "user.name=test",
            "-c",
            "user.email=test@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@needs_git
def test_changed_files(tmp_path, make_image):
    make_image("base", "ubuntu:jammy")
    make_image("other", "ubuntu:jammy")
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "add", ".")
    _git(tmp_path, "commit", "-q", "-m", "initial")

    (tmp_path / "base" / "Dockerfile").write_text("FROM ubuntu:noble\n")
    assert changed_files(tmp_path, "HEAD") == ["base/Dockerfile"]


@needs_git
def test_changed_files_bad_reference(tmp_path):
    _git(tmp_path, "init", "-q")
    with pytest.raises(WorkFailedError):
        changed_files(tmp_path, "does-not-exist")
