from curriculumtracker.progress import ProgressStore
from curriculumtracker.storage import MemoryKeyValueStore
from curriculumtracker.users import GUEST_USER, UserRegistry


def _registry() -> UserRegistry:
    return UserRegistry(ProgressStore(MemoryKeyValueStore()))


def test_guest_always_listed_first() -> None:
    registry = _registry()
    assert registry.list_users() == [GUEST_USER]

    registry.store.save("alice", {})
    registry.store.save("zed", {"A": True})
    registry.store.save("Bob", {})
    users = registry.list_users()
    assert users[0] == GUEST_USER
    assert set(users[1:]) == {"alice", "zed", "Bob"}


def test_guest_with_stored_record_is_not_duplicated() -> None:
    registry = _registry()
    registry.store.save(GUEST_USER, {"A": True})
    registry.store.save("aaron", {})
    assert registry.list_users() == [GUEST_USER, "aaron"]


def test_users_are_sorted_after_guest() -> None:
    registry = _registry()
    for name in ("mia", "dan", "ann"):
        registry.store.save(name, {})
    assert registry.list_users() == [GUEST_USER, "ann", "dan", "mia"]


def test_active_user_defaults_to_guest_and_persists() -> None:
    store = ProgressStore(MemoryKeyValueStore())
    registry = UserRegistry(store)
    assert registry.get_active_user() == GUEST_USER

    registry.set_active_user("  alice ")
    assert registry.get_active_user() == "alice"
    assert UserRegistry(store).get_active_user() == "alice"


def test_blank_active_user_rejected() -> None:
    registry = _registry()
    try:
        registry.set_active_user("   ")
        raise AssertionError("Expected ValueError for blank user.")
    except ValueError:
        pass


def test_reset_user_drops_out_unless_active() -> None:
    registry = _registry()
    registry.store.save("bob", {"A": True})
    registry.store.save("carl", {"A": True})
    registry.set_active_user("carl")

    registry.store.clear("bob")
    assert "bob" not in registry.list_users()

    registry.store.clear("carl")
    assert "carl" in registry.list_users()
    assert registry.store.load("carl") == {}
