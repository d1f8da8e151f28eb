from highlow.session.session_store import SessionRegistry
from highlow.tests.unit.session.helpers import FakeClock


class TestSessionRegistry:
    def test_create_session_returns_unique_tokens(self):
        registry = SessionRegistry()
        s1 = registry.create_session("c1", "Alice", "ABC")
        s2 = registry.create_session("c2", "Bob", "ABC")

        assert s1.session_token != s2.session_token
        assert len(registry) == 2

    def test_create_session_with_explicit_token(self):
        registry = SessionRegistry()

        session = registry.create_session("c1", "Alice", "ABC", token="XYZ")

        assert session.session_token == "XYZ"
        assert registry.get_session("XYZ") is session

    def test_get_session_returns_none_for_unknown_token(self):
        assert SessionRegistry().get_session("nonexistent") is None

    def test_expired_session_is_invisible(self):
        clock = FakeClock()
        registry = SessionRegistry(ttl_seconds=60, clock=clock)
        session = registry.create_session("c1", "Alice", "ABC")

        clock.advance(61)

        assert registry.get_session(session.session_token) is None
        assert registry.rebind(session.session_token, "c2") is None

    def test_touch_extends_lifetime(self):
        clock = FakeClock()
        registry = SessionRegistry(ttl_seconds=60, clock=clock)
        session = registry.create_session("c1", "Alice", "ABC")

        clock.advance(50)
        registry.touch(session.session_token)
        clock.advance(50)

        assert registry.get_session(session.session_token) is session

    def test_rebind_updates_connection(self):
        clock = FakeClock()
        registry = SessionRegistry(clock=clock)
        session = registry.create_session("c1", "Alice", "ABC")
        clock.advance(5)

        assert registry.rebind(session.session_token, "c2") is session
        assert session.connection_id == "c2"
        assert session.last_active_at == 1005.0

    def test_resolve_by_username_and_room(self):
        registry = SessionRegistry()
        alice = registry.create_session("c1", "Alice", "ABC")
        registry.create_session("c2", "Alice", "DEF")

        assert registry.resolve_by_username_and_room("Alice", "ABC") is alice
        assert registry.resolve_by_username_and_room("Bob", "ABC") is None

    def test_resolve_prefers_most_recent_duplicate(self):
        clock = FakeClock()
        registry = SessionRegistry(clock=clock)
        registry.create_session("c1", "Alice", "ABC")
        clock.advance(10)
        newer = registry.create_session("c2", "Alice", "ABC")

        assert registry.resolve_by_username_and_room("Alice", "ABC") is newer

    def test_purge_expired(self):
        clock = FakeClock()
        registry = SessionRegistry(ttl_seconds=60, clock=clock)
        old = registry.create_session("c1", "Alice", "ABC")
        clock.advance(40)
        fresh = registry.create_session("c2", "Bob", "ABC")
        clock.advance(30)

        assert registry.purge_expired() == 1
        assert registry._sessions.get(old.session_token) is None
        assert registry.get_session(fresh.session_token) is fresh

    def test_purge_for_room_preserves_other_rooms(self):
        registry = SessionRegistry()
        s1 = registry.create_session("c1", "Alice", "ABC")
        s2 = registry.create_session("c2", "Bob", "DEF")

        registry.purge_for_room("ABC")

        assert registry.get_session(s1.session_token) is None
        assert registry.get_session(s2.session_token) is s2

    def test_remove_session_ignores_unknown_token(self):
        registry = SessionRegistry()
        registry.remove_session("nonexistent")  # should not raise
        assert len(registry) == 0
