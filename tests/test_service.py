import json
from pathlib import Path
from typing import Any

from curriculumtracker.curriculum import normalize
from curriculumtracker.errors import ProgressImportError, StoreUnavailableError
from curriculumtracker.service import TrackerService
from curriculumtracker.storage import MemoryKeyValueStore


def _service(raw_curriculum: dict[str, Any], db_path: Path | str = ":memory:") -> TrackerService:
    return TrackerService(db_path, progression=normalize(raw_curriculum))


def test_defaults_to_bundled_curriculum_and_guest() -> None:
    service = TrackerService(":memory:")
    assert "Mathematics" in service.subjects()
    assert service.active_user == "guest"
    assert service.list_users() == ["guest"]
    assert service.persistent is True


def test_toggle_topic_updates_active_user(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("alice")
    assert service.toggle_topic("M9A") is True
    assert service.current_record() == {"M9A": True}
    assert service.subject_summary("Math").percent == 25
    assert service.toggle_topic("M9A") is False
    assert service.subject_summary("Math").percent == 0


def test_toggle_unknown_code_raises_key_error(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    try:
        service.toggle_topic("NOPE")
        raise AssertionError("Expected KeyError.")
    except KeyError:
        pass
    assert service.current_record() == {}


def test_switch_user_persists_across_sessions(tmp_path: Path, raw_curriculum: dict[str, Any]) -> None:
    db_path = tmp_path / "progress.db"
    first = _service(raw_curriculum, db_path)
    first.switch_user("alice")
    first.toggle_topic("A8D")
    first.close()

    second = _service(raw_curriculum, db_path)
    assert second.active_user == "alice"
    assert second.current_record() == {"A8D": True}
    assert second.list_users() == ["guest", "alice"]
    second.close()


def test_reset_removes_user_unless_active(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("bob")
    service.toggle_topic("M7N")
    service.reset_progress()
    assert service.current_record() == {}
    assert "bob" in service.list_users()
    assert service.has_saved_progress("bob") is False

    service.switch_user("guest")
    assert "bob" not in service.list_users()


def test_subject_years_and_leaderboard(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("alice")
    service.toggle_topic("M9A")
    service.toggle_topic("M9G")
    years = service.subject_years("Math")
    assert [row.percent for row in years] == [0, 100, 0]

    board = service.leaderboard()
    assert board[0].user == "alice"
    assert board[0].percent == 40
    assert board[0].leader is True


def test_export_then_import_round_trip(tmp_path: Path, raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("alice")
    service.toggle_topic("M9A")
    service.toggle_topic("A8D")
    service.toggle_topic("A8D")
    export_path = tmp_path / "out" / "alice.json"

    summary = service.export_progress(export_path)
    assert summary.user == "alice"
    assert summary.completed == 1
    assert json.loads(export_path.read_text(encoding="utf-8")) == {"M9A": True, "A8D": False}

    service.switch_user("carol")
    imported = service.import_progress(export_path)
    assert imported.user == "carol"
    assert service.current_record() == {"M9A": True, "A8D": False}


def test_invalid_import_keeps_progress(tmp_path: Path, raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.toggle_topic("M7N")
    bad = tmp_path / "bad.json"
    bad.write_text('{"M7N": "done"}', encoding="utf-8")
    for path in (bad, tmp_path / "missing.json"):
        try:
            service.import_progress(path)
            raise AssertionError("Expected ProgressImportError.")
        except ProgressImportError:
            pass
    assert service.current_record() == {"M7N": True}


def test_unavailable_storage_falls_back_to_memory(tmp_path: Path, raw_curriculum: dict[str, Any]) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    service = _service(raw_curriculum, blocker / "progress.db")
    assert service.persistent is False
    service.switch_user("alice")
    service.toggle_topic("M7N")
    assert service.current_record() == {"M7N": True}
    assert service.leaderboard()[0].user == "alice"


def test_storage_failure_mid_session_keeps_active_state(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("alice")
    service.toggle_topic("M7N")
    service.store.backend.close()

    assert service.toggle_topic("A8D") is True
    assert service.persistent is False
    assert isinstance(service.store.backend, MemoryKeyValueStore)
    assert service.active_user == "alice"
    assert service.current_record() == {"M7N": True, "A8D": True}


def test_memory_session_errors_propagate(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.persistent = False

    class BrokenBackend(MemoryKeyValueStore):
        def get(self, key: str) -> str | None:
            raise StoreUnavailableError("gone")

    service.store.backend = BrokenBackend()
    try:
        service.current_record()
        raise AssertionError("Expected StoreUnavailableError.")
    except StoreUnavailableError:
        pass


def test_failed_reads_retry_against_memory_storage(raw_curriculum: dict[str, Any]) -> None:
    service = _service(raw_curriculum)
    service.switch_user("alice")
    service.toggle_topic("M7N")

    class FailingBackend(MemoryKeyValueStore):
        def get(self, key: str) -> str | None:
            raise StoreUnavailableError("disk gone")

        def keys_with_prefix(self, prefix: str) -> list[str]:
            raise StoreUnavailableError("disk gone")

    service.store.backend = FailingBackend()
    assert service.active_user == "alice"
    assert service.list_users() == ["guest", "alice"]
    assert service.persistent is False


def test_persisted_active_user_survives_failure_before_first_read(
    tmp_path: Path, raw_curriculum: dict[str, Any]
) -> None:
    db_path = tmp_path / "progress.db"
    first = _service(raw_curriculum, db_path)
    first.switch_user("alice")
    first.toggle_topic("A8D")
    first.close()

    second = _service(raw_curriculum, db_path)
    second.store.backend.close()
    assert second.active_user == "alice"
    assert second.current_record() == {"A8D": True}
    assert second.persistent is False
