import pytest

from chainbuilder import cli
from chainbuilder.config import RunConfig
from chainbuilder.version import BumpComponent

from conftest import REGISTRY


def _main(*argv):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(list(argv))
    return exc_info.value.code


def test_bump(chain):
    (chain / "conf.yaml").write_text(f"registry: {REGISTRY}\n")
    assert _main("bump", str(chain / "middle"), str(chain / "leaf"), "--bump", "major") == 0
    assert (chain / "middle" / "VERSION").read_text() == "1.0.0\n"
    assert (chain / "leaf" / "VERSION").read_text() == "3.0.0\n"
    assert f"FROM {REGISTRY}/middle:1.0.0" in (chain / "leaf" / "Dockerfile").read_text()
    assert (chain / "base" / "VERSION").read_text() == "1.2.3\n"


def test_bump_requires_component(chain):
    assert _main("bump", str(chain / "base")) == 2


def test_build_dry_run(chain, capsys):
    code = _main(
        "build",
        str(chain / "base"),
        "--bump",
        "patch",
        "--dry-run",
        "--registry",
        REGISTRY,
    )
    assert code == 0
    # Nothing was written
    assert (chain / "base" / "VERSION").read_text() == "1.2.3\n"
    out = capsys.readouterr().out
    assert "base [success]" in out
    assert "↳ leaf [success]" in out


def test_build_failure_exit_code(chain, monkeypatch):
    def failing_run(self, roots):
        return {"base": cli.NodeStatus.FAILURE}

    monkeypatch.setattr(cli.BuildScheduler, "run", failing_run)
    code = _main("build", str(chain / "base"), "--no-push", "--registry", REGISTRY)
    assert code == 1


def test_nothing_to_build(chain):
    (chain / "docs").mkdir()
    assert _main("build", str(chain / "docs"), "--dry-run") == 0


def test_folders_in_different_directories(chain, tmp_path_factory):
    elsewhere = tmp_path_factory.mktemp("elsewhere")
    assert _main("build", str(chain / "base"), str(elsewhere / "x"), "--dry-run") == -1


def test_bad_config_is_fatal(chain, capsys):
    (chain / "conf.yaml").write_text("colour: blue\n")
    assert _main("build", str(chain / "base"), "--dry-run") == -1
    assert "colour" in capsys.readouterr().err


def test_graph(chain, capsys):
    assert _main("graph", str(chain), "--registry", REGISTRY) == 0
    dot = (chain / "Dependency_Graph.dot").read_text()
    assert f'"{REGISTRY}/base:1.2.3" -> "{REGISTRY}/middle:0.1.0";' in dot

    assert _main("graph", str(chain), "-o", "-", "--registry", REGISTRY) == 0
    assert capsys.readouterr().out == dot


def test_make_config(chain):
    (chain / "conf.yaml").write_text("registry: from-file\nno_cache: true\ntool: buildah\n")
    args = cli.parse_arguments(
        ["build", str(chain / "base"), "--bump", "minor", "--no-push", "--max-workers", "2"]
    )
    config = cli.make_config(args, chain)
    assert config == RunConfig(
        registry="from-file",
        bump_component=BumpComponent.MINOR,
        no_cache=True,
        push=False,
        tool="buildah",
        max_workers=2,
    )


def test_since_dry_run_filters_changes(chain, monkeypatch, capsys):
    calls = []

    def fake_changed_files(base_dir, since):
        calls.append(since)
        return ["images/middle/Dockerfile"]

    monkeypatch.setattr(cli, "changed_files", fake_changed_files)
    code = _main(
        "build",
        str(chain / "middle"),
        str(chain / "unrelated"),
        "--since",
        "HEAD~1",
        "--change-match",
        "images/{name}/*",
        "--dry-run",
        "--registry",
        REGISTRY,
    )
    assert code == 0
    assert calls == ["HEAD~1"]
    out = capsys.readouterr().out
    assert "middle [success]" in out
    assert "↳ leaf [success]" in out
    assert "unrelated" not in out


def test_change_match_from_config(chain):
    (chain / "conf.yaml").write_text("change_match: 'images/{name}/*'\n")
    args = cli.parse_arguments(["bump", str(chain / "base"), "--bump", "patch"])
    assert cli.make_config(args, chain).change_match == "images/{name}/*"
