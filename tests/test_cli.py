"""
Tests for the todo command line.

The Asana client is replaced with FakeAsanaClient; offline runs use a
snapshot saved into a temp cache file.
"""

import functools
import json
from datetime import date, timedelta

import pytest

from tests.fixtures import TODAY, FakeAsanaClient, FakeClock, make_snapshot
from todo.cache import SnapshotStore
from todo.cli.main import build_parser, find_task_gid, main
from todo.errors import AmbiguousSelection, TodoError
from todo.focus_day import STAT_NAMES
from todo.models import Task
from todo.sync import STALE_EPOCH, SyncEngine


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr("todo.cli.main.configure_logging", lambda **kwargs: None)


@pytest.fixture
def cache_file(tmp_path):
    return tmp_path / "cache.json"


@pytest.fixture
def saved_cache(cache_file):
    tasks = [
        Task(gid="t1", name="Pay rent", due_on=date(2020, 1, 1), project_gid="p2"),
        Task(gid="t2", name="Buy milk"),
    ]
    SnapshotStore(path=cache_file).save(make_snapshot(tasks=tasks))
    return cache_file


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeAsanaClient()
    monkeypatch.setattr("todo.cli.main.AsanaClient", lambda **kwargs: client)
    return client


@pytest.fixture
def pinned_engine(monkeypatch):
    """Run commands as if it were TODAY at NOW."""
    engine_class = functools.partial(SyncEngine, clock=FakeClock(), today=lambda: TODAY)
    monkeypatch.setattr("todo.cli.main.SyncEngine", engine_class)


@pytest.fixture
def focus_cache(cache_file):
    """Focus days for yesterday (all stats) and today (morning stats only)."""
    tasks = [
        Task(
            gid="d0",
            name="Daily Focus for Wednesday (2025-12-31)",
            project_gid="focus1",
            notes="Wrapped up the year",
            custom_fields={name: 4.0 for name in STAT_NAMES},
        ),
        Task(
            gid="d1",
            name="Daily Focus for Thursday (2026-01-01)",
            project_gid="focus1",
            custom_fields={"sleep": 7.5, "energy": 3.0},
        ),
    ]
    SnapshotStore(path=cache_file).save(make_snapshot(tasks=tasks))
    return cache_file


class TestParser:
    """Test argument parsing."""

    def test_use_cache_and_refresh_exclusive(self):
        """The two sync modes cannot be combined."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--use-cache", "--refresh", "list"])

    def test_default_command_is_summary(self, saved_cache, capsys):
        """No subcommand prints the summary."""
        assert main(["--use-cache", "--cache-path", str(saved_cache)]) == 0
        assert "You have 1 task overdue." in capsys.readouterr().out

    def test_max_age_minutes(self):
        """--max-age is read as minutes."""
        args = build_parser().parse_args(["--max-age", "90", "list"])
        assert args.max_age == timedelta(minutes=90)

    @pytest.mark.parametrize("value", ["inf", "1e300"])
    def test_unbounded_max_age(self, value):
        """An infinite or huge --max-age means the cache never goes stale."""
        args = build_parser().parse_args(["--max-age", value, "list"])
        assert args.max_age == timedelta.max

    @pytest.mark.parametrize("value", ["nan", "-5", "soon"])
    def test_invalid_max_age(self, value):
        """Not-a-number and negative ages are usage errors."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--max-age", value, "list"])


class TestOfflineCommands:
    """Commands run against the cache with --use-cache."""

    def test_list_without_cache_fails(self, cache_file, capsys):
        """No cache in offline mode is an error, not an empty list."""
        assert main(["--use-cache", "--cache-path", str(cache_file), "list"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_list_groups_tasks(self, saved_cache, capsys):
        """Tasks are printed under their project headers."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "list"]) == 0
        out = capsys.readouterr().out
        assert "Errands (1 task)" in out
        assert "My Tasks (1 task)" in out
        assert out.index("Errands") < out.index("My Tasks")
        assert "Pay rent" in out
        assert "Buy milk" in out

    def test_status_json(self, saved_cache, capsys):
        """JSON status reports counts, focus and freshness."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "status", "-f", "json"]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["overdue"] == 1
        assert status["due_today"] == 0
        assert status["focus_day"] is None
        assert status["source"] == "cache"
        assert status["stale"] is False

    def test_status_short(self, saved_cache, capsys):
        """Short status is one line."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "status"]) == 0
        assert capsys.readouterr().out.strip() == "1 overdue · no focus"

    def test_add_refused_offline(self, saved_cache, capsys):
        """Mutations need the network."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "add", "Call mom"]) == 1
        assert "cache-only" in capsys.readouterr().err

    def test_complete_refused_offline(self, saved_cache):
        """Completing offline fails without touching the cache."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "complete", "t1"]) == 1
        assert [t.gid for t in SnapshotStore(path=saved_cache).load().tasks] == ["t1", "t2"]


class TestFocusCommand:
    """Test the focus day overview and its completeness in status."""

    def test_focus_for_date(self, focus_cache, capsys):
        """--date picks another day and shows its stats and diary."""
        args = ["--use-cache", "--cache-path", str(focus_cache), "focus", "--date", "2025-12-31"]
        assert main(args) == 0
        out = capsys.readouterr().out
        assert "FOCUS: 2025-12-31" in out
        assert "Daily Focus for Wednesday (2025-12-31)" in out
        assert "Morning ✓  Evening ✓" in out
        assert "Wrapped up the year" in out

    def test_focus_today(self, focus_cache, pinned_engine, capsys):
        """Without --date the focus day is today's; unset stats print as '-'."""
        assert main(["--use-cache", "--cache-path", str(focus_cache), "focus"]) == 0
        out = capsys.readouterr().out
        assert "FOCUS: 2026-01-01" in out
        assert f"{'Sleep':<13} 7.5" in out
        assert f"{'Stress':<13} -" in out
        assert "Morning ✓  Evening ✗" in out

    def test_focus_date_without_day(self, focus_cache, capsys):
        """A date with no focus task says so."""
        args = ["--use-cache", "--cache-path", str(focus_cache), "focus", "--date", "2026-02-01"]
        assert main(args) == 0
        assert "No focus day found for 2026-02-01." in capsys.readouterr().out

    def test_focus_invalid_date(self, focus_cache, capsys):
        """An unparseable --date is an error."""
        args = ["--use-cache", "--cache-path", str(focus_cache), "focus", "--date", "whenever"]
        assert main(args) == 1
        assert "whenever" in capsys.readouterr().err

    def test_status_json_completeness(self, focus_cache, pinned_engine, capsys):
        """JSON status reports the stats and which halves of the day are done."""
        args = ["--use-cache", "--cache-path", str(focus_cache), "status", "-f", "json"]
        assert main(args) == 0
        focus_day = json.loads(capsys.readouterr().out)["focus_day"]
        assert focus_day["gid"] == "d1"
        assert focus_day["morning_done"] is True
        assert focus_day["evening_done"] is False
        assert focus_day["stats"]["sleep"] == 7.5
        assert focus_day["stats"]["flow"] is None

    def test_status_short_pending_evening(self, focus_cache, pinned_engine, capsys):
        """Short status points at the missing evening stats."""
        assert main(["--use-cache", "--cache-path", str(focus_cache), "status"]) == 0
        assert capsys.readouterr().out.strip() == "evening stats"


class TestOnlineCommands:
    """Commands that talk to Asana through the client."""

    def test_list_refreshes_empty_cache(self, cache_file, fake_client, capsys):
        """A cold cache is filled from Asana and saved."""
        assert main(["--cache-path", str(cache_file), "list"]) == 0
        assert "Write report" in capsys.readouterr().out
        assert SnapshotStore(path=cache_file).load().selected_focus_project_id == "focus1"

    def test_add_with_invalid_due(self, cache_file, fake_client, capsys):
        """An unparseable due date fails before anything is sent."""
        assert main(["--cache-path", str(cache_file), "add", "Call mom", "--due", "whenever"]) == 1
        assert "whenever" in capsys.readouterr().err
        assert fake_client.created == []

    def test_add_creates_task(self, cache_file, fake_client, capsys):
        """add sends the task and reports its id."""
        assert main(["--cache-path", str(cache_file), "add", "Call mom"]) == 0
        assert "new1" in capsys.readouterr().out
        assert fake_client.created[0]["name"] == "Call mom"

    def test_complete_by_name(self, saved_cache, fake_client, capsys):
        """A unique name fragment selects the cached task."""
        fake_client.my_tasks = [Task(gid="t1", name="Pay rent")]
        assert main(["--cache-path", str(saved_cache), "complete", "rent"]) == 0
        assert fake_client.completed == ["t1"]
        assert "Completed: t1" in capsys.readouterr().out

    def test_unbounded_max_age_serves_old_cache(self, saved_cache, fake_client, capsys):
        """With --max-age inf an old cache is used without contacting Asana."""
        assert main(["--cache-path", str(saved_cache), "--max-age", "inf", "list"]) == 0
        assert "Pay rent" in capsys.readouterr().out
        assert fake_client.calls == []


class TestCacheCommand:
    """Test cache info and clear."""

    def test_info(self, saved_cache, capsys):
        """info shows the selection and task count."""
        assert main(["--use-cache", "--cache-path", str(saved_cache), "cache", "info"]) == 0
        out = capsys.readouterr().out
        assert "Workspace: ws1" in out
        assert "Tasks:     2" in out

    def test_info_marked_stale(self, cache_file, capsys):
        """A cache marked stale is reported as such, not by its age."""
        SnapshotStore(path=cache_file).save(make_snapshot(fetched_at=STALE_EPOCH))
        assert main(["--use-cache", "--cache-path", str(cache_file), "cache", "info"]) == 0
        out = capsys.readouterr().out
        assert "marked stale" in out
        assert "min ago" not in out

    def test_clear(self, saved_cache, capsys):
        """clear deletes the file."""
        assert main(["--cache-path", str(saved_cache), "cache", "clear"]) == 0
        assert not saved_cache.exists()
        assert main(["--cache-path", str(saved_cache), "cache", "clear"]) == 0
        assert "No cache to clear." in capsys.readouterr().out


class TestConfigErrors:
    """Test config failures at startup."""

    def test_bad_config_exits_1(self, tmp_path, capsys):
        """Unparseable config.yaml stops before any command runs."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")
        assert main(["--config-path", str(config_file), "list"]) == 1
        assert "mapping" in capsys.readouterr().err


class TestFindTaskGid:
    """Test task selection for complete."""

    TASKS = [
        Task(gid="101", name="Pay rent"),
        Task(gid="102", name="Pay phone bill"),
        Task(gid="103", name="Buy milk"),
        Task(gid="104", name="Old rent receipt", completed=True),
    ]

    def test_exact_gid(self):
        assert find_task_gid(self.TASKS, "103") == "103"

    def test_unique_substring(self):
        """Completed tasks are not candidates."""
        assert find_task_gid(self.TASKS, "RENT") == "101"

    def test_ambiguous_substring(self):
        with pytest.raises(AmbiguousSelection) as exc_info:
            find_task_gid(self.TASKS, "pay")
        assert len(exc_info.value.candidates) == 2

    def test_unknown_numeric_passes_through(self):
        assert find_task_gid(self.TASKS, "999") == "999"

    def test_unknown_name(self):
        with pytest.raises(TodoError):
            find_task_gid(self.TASKS, "laundry")
