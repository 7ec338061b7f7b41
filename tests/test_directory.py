import threading

from relayd.directory import IdentityDirectory


def test_register_is_unique() -> None:
    d = IdentityDirectory()
    a, b = object(), object()
    assert d.register_unique("alice", a)
    assert not d.register_unique("alice", b)
    assert d.lookup("alice") is a
    assert "alice" in d
    assert len(d) == 1


def test_concurrent_registration_has_one_winner() -> None:
    d = IdentityDirectory()
    n = 16
    barrier = threading.Barrier(n)
    results: list[bool] = []
    lock = threading.Lock()

    def claim() -> None:
        s = object()
        barrier.wait()
        ok = d.register_unique("bob", s)
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=claim) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert results.count(True) == 1
    assert len(d) == 1


def test_unregister_only_removes_matching_session() -> None:
    d = IdentityDirectory()
    a, other = object(), object()
    d.register_unique("alice", a)

    assert not d.unregister("alice", other)
    assert d.lookup("alice") is a

    assert d.unregister("alice", a)
    assert d.lookup("alice") is None
    assert not d.unregister("alice", a)


def test_snapshot_is_sorted_copy() -> None:
    d = IdentityDirectory()
    for name in ("carol", "alice", "bob"):
        d.register_unique(name, object())

    names = d.snapshot_identities()
    assert names == ["alice", "bob", "carol"]

    sessions = d.all_sessions()
    sessions.clear()
    names.clear()
    assert len(d) == 3
    assert len(d.all_sessions()) == 3
