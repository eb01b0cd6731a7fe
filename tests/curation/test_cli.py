import json
import pytest
from typer.testing import CliRunner
from src.curation.cli import app
from src.curation.database import CurationDB
from src.curation.models import CurationStatus

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cli.db"


@pytest.fixture
def feed(tmp_path):
    path = tmp_path / "feed.json"
    path.write_text(json.dumps([
        {"url": "https://img.example/1.png", "rating": 4.5, "tags": ["elf"]},
        {"url": "https://img.example/2.png", "rating": 1.0},
        {"url": "https://img.example/3.png"},
    ]))
    return path


def test_enqueue_and_stats(db_path, feed):
    result = runner.invoke(app, ["--db", str(db_path), "enqueue", str(feed)])
    assert result.exit_code == 0
    assert "Queued 2 of 3 images" in result.output

    assert CurationDB(db_path).count_by_status(CurationStatus.PENDING) == 2

    result = runner.invoke(app, ["--db", str(db_path), "stats"])
    assert result.exit_code == 0
    assert "Pending" in result.output
    assert "Total" in result.output


def test_enqueue_invalid_file(db_path, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps([{"rating": 5}]))

    result = runner.invoke(app, ["--db", str(db_path), "enqueue", str(bad)])
    assert result.exit_code == 1


def test_approved_empty(db_path):
    result = runner.invoke(app, ["--db", str(db_path), "approved"])
    assert result.exit_code == 0
    assert "No approved images waiting" in result.output
