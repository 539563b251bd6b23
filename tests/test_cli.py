"""CLI behavior tests."""

import json

import pytest

import restview.cli as cli
from restview.database.sqlite_client import session_context
from sample_domain.models import Base, Note, Status, Task, User


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    """Config pointing at a seeded sqlite file and the sample shapes."""
    monkeypatch.setattr(cli, "configure_logging", lambda *_args, **_kwargs: None)

    db_path = tmp_path / "app.db"
    with session_context(str(db_path), Base) as session:
        alice = User(id=1, name="Alice", email="alice@example.com")
        session.add_all(
            [
                alice,
                Task(id=1, name="Write foo report", status=Status.ACTIVE, priority=2, owner=alice),
                Task(id=2, name="Archive", status=Status.ARCHIVED, priority=1, owner=alice),
                Task(id=3, name="Buy milk", status=Status.ACTIVE, priority=1),
                Note(id=1, body="mine", user_id="u1"),
                Note(id=2, body="theirs", user_id="u2"),
            ]
        )
        session.commit()

    def write(extra=""):
        path = tmp_path / "restview.config.yaml"
        path.write_text(
            "\n".join(
                [
                    "shapes:",
                    "  base_packages: [sample_domain]",
                    "entities:",
                    "  base: sample_domain.models:Base",
                    "database:",
                    f"  sqlite_path: {db_path}",
                    extra,
                ]
            ),
            encoding="utf-8",
        )
        return str(path)

    return write


def test_no_command_prints_help(monkeypatch, capsys):
    monkeypatch.setattr(cli, "configure_logging", lambda *_args, **_kwargs: None)
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()


def test_shapes_json(config_path, capsys):
    assert cli.main(["--config", config_path(), "shapes", "--format", "json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["UserSummary"] == ["id", "name", "display_name"]
    assert "task-brief" in payload


def test_shapes_text(config_path, capsys):
    assert cli.main(["--config", config_path(), "shapes"]) == 0
    out = capsys.readouterr().out
    assert "TaskView" in out
    assert "owner_name" in out


def test_query_filters_sorts_and_shapes(config_path, capsys):
    code = cli.main(
        ["--config", config_path(), "query", "task", "-f", "status=active", "--sort", "name", "--size", "5"]
    )
    assert code == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["total"] == 2
    assert payload["size"] == 5
    assert payload["total_pages"] == 1
    assert [item["name"] for item in payload["items"]] == ["Buy milk", "Write foo report"]
    assert payload["items"][1]["owner"]["name"] == "Alice"
    assert payload["items"][0]["owner"] is None


def test_get_with_named_shape(config_path, capsys):
    assert cli.main(["--config", config_path(), "get", "task", "1", "--shape", "task-brief"]) == 0
    assert json.loads(capsys.readouterr().out) == {"id": 1, "name": "Write foo report", "missing_field": None}


def test_get_missing_entity(config_path, capsys):
    assert cli.main(["--config", config_path(), "get", "task", "42"]) == 1
    assert "Error [NOT_FOUND]: Not found task with id: 42" in capsys.readouterr().err


def test_unknown_entity(config_path, capsys):
    assert cli.main(["--config", config_path(), "query", "nope"]) == 1
    assert "Error [UNKNOWN_ENTITY]" in capsys.readouterr().err


def test_bad_filter_is_usage_error(config_path, capsys):
    assert cli.main(["--config", config_path(), "query", "task", "-f", "nokey"]) == 2
    assert "expected key=value" in capsys.readouterr().err


def test_missing_config_file(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "configure_logging", lambda *_args, **_kwargs: None)
    assert cli.main(["--config", str(tmp_path / "missing.yaml"), "shapes"]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_user_scoping(config_path, capsys):
    path = config_path("security:\n  enabled: true")

    assert cli.main(["--config", path, "--user", "u1", "query", "note"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["items"] == [{"id": 1, "body": "mine", "user_id": "u1"}]

    assert cli.main(["--config", path, "query", "note"]) == 1
    assert "Error [UNAUTHORIZED]" in capsys.readouterr().err
