"""Tests for the promotion-steps command line tool."""

import json
import pathlib

import pytest
import yaml

from . import GUESTBOOK, run_main


def _run_args(config: str, stage: str, *extra: str) -> list[str]:
    return [
        "run",
        "argocd-update",
        "--apps",
        str(GUESTBOOK / "applications.yaml"),
        "--config",
        str(GUESTBOOK / config),
        "--project",
        "guestbook",
        "--stage",
        stage,
        "--promotion",
        f"{stage}.01",
        *extra,
    ]


def _apps_by_name(path: pathlib.Path) -> dict[str, dict]:
    return {
        doc["metadata"]["name"]: doc
        for doc in yaml.safe_load_all(path.read_text())
        if doc
    }


def test_list(capsys: pytest.CaptureFixture[str]) -> None:
    """Test listing the available steps."""
    assert run_main(["list"], capsys).splitlines() == [
        "NAME             TIMEOUT    CAPABILITIES",
        "argocd-update    300s       store",
    ]


def test_run(capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path) -> None:
    """Test running a step and writing out the updated Applications."""
    output_apps = tmp_path / "applications.yaml"
    out = run_main(
        _run_args("update-dev.yaml", "dev", "--output-apps", str(output_apps)), capsys
    )

    result = yaml.safe_load(out)
    assert result["status"] == "Running"
    assert result["retryAfter"] == 30
    assert result["healthCheck"] == {
        "kind": "argocd-update",
        "input": {
            "apps": [
                {
                    "name": "guestbook-dev",
                    "namespace": "argocd",
                    "desiredRevisions": ["def"],
                }
            ]
        },
    }

    apps = _apps_by_name(output_apps)
    dev = apps["guestbook-dev"]
    assert dev["spec"]["source"]["targetRevision"] == "def"
    assert dev["spec"]["source"]["kustomize"]["images"] == [
        "ghcr.io/example/guestbook:1.1.0"
    ]
    assert dev["operation"]["sync"]["syncOptions"] == ["CreateNamespace=true"]
    assert dev["metadata"]["annotations"]["argocd.argoproj.io/refresh"] == "hard"
    assert dev["status"]["health"] == {"status": "Healthy"}

    prod = apps["guestbook-prod"]
    assert "operation" not in prod
    assert [s["targetRevision"] for s in prod["spec"]["sources"]] == ["abc", "18.0.0"]


def test_run_selector(
    capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path
) -> None:
    """Test only the Applications authorized for the Stage are updated."""
    output_apps = tmp_path / "applications.yaml"
    out = run_main(
        _run_args(
            "update-prod.yaml", "prod", "--output-apps", str(output_apps), "-o", "json"
        ),
        capsys,
    )

    result = json.loads(out)
    assert result["status"] == "Running"
    assert [app["name"] for app in result["healthCheck"]["input"]["apps"]] == [
        "guestbook-prod"
    ]

    apps = _apps_by_name(output_apps)
    assert "operation" not in apps["guestbook-dev"]
    prod = apps["guestbook-prod"]
    assert [s["targetRevision"] for s in prod["spec"]["sources"]] == ["def", "18.0.0"]
    assert prod["operation"]["initiatedBy"] == {
        "username": "kargo-controller",
        "automated": True,
    }


def test_run_actor(capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path) -> None:
    """Test a sync is attributed to the user that triggered the Promotion."""
    output_apps = tmp_path / "applications.yaml"
    run_main(
        _run_args(
            "update-dev.yaml",
            "dev",
            "--actor",
            "admin",
            "--output-apps",
            str(output_apps),
        ),
        capsys,
    )
    dev = _apps_by_name(output_apps)["guestbook-dev"]
    assert dev["operation"]["initiatedBy"] == {"username": "admin", "automated": False}


def test_run_failed(capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path) -> None:
    """Test a step that fails exits with an error."""
    config = tmp_path / "config.yaml"
    config.write_text("apps: []\n")
    args = _run_args("update-dev.yaml", "dev")
    args[args.index("--config") + 1] = str(config)
    with pytest.raises(SystemExit) as exc_info:
        run_main(args, capsys)
    assert exc_info.value.code == 1

    captured = capsys.readouterr()
    assert yaml.safe_load(captured.out)["status"] == "Failed"
    assert "promotion-steps error:" in captured.err
    assert "finished with status Failed" in captured.err


def test_run_unauthorized(capsys: pytest.CaptureFixture[str]) -> None:
    """Test running for a Stage the Application does not permit."""
    with pytest.raises(SystemExit):
        run_main(_run_args("update-dev.yaml", "prod"), capsys)
    captured = capsys.readouterr()
    assert yaml.safe_load(captured.out)["status"] == "Errored"
    assert "'guestbook-dev' in namespace 'argocd' is not authorized" in captured.err


def test_unknown_step(capsys: pytest.CaptureFixture[str]) -> None:
    """Test running a step that does not exist."""
    args = _run_args("update-dev.yaml", "dev")
    args[1] = "git-clone"
    with pytest.raises(SystemExit):
        run_main(args, capsys)
    assert (
        "No promotion step runner found for kind 'git-clone'"
        in capsys.readouterr().err
    )


def test_missing_apps(capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path) -> None:
    """Test reading Applications from a file that does not exist."""
    args = _run_args("update-dev.yaml", "dev")
    args[args.index("--apps") + 1] = str(tmp_path / "missing.yaml")
    with pytest.raises(SystemExit):
        run_main(args, capsys)
    assert "Unable to read Applications" in capsys.readouterr().err


def test_invalid_config_file(
    capsys: pytest.CaptureFixture[str], tmp_path: pathlib.Path
) -> None:
    """Test a step configuration that is not a mapping."""
    config = tmp_path / "config.yaml"
    config.write_text("- apps\n")
    args = _run_args("update-dev.yaml", "dev")
    args[args.index("--config") + 1] = str(config)
    with pytest.raises(SystemExit):
        run_main(args, capsys)
    assert "must be a mapping" in capsys.readouterr().err
