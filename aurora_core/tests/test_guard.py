import threading

from aurora_core.agents.guard import ConversationGuard


def test_guard_acquire_release():
    guard = ConversationGuard()
    assert guard.try_acquire("c1")
    assert guard.is_active("c1")
    assert not guard.try_acquire("c1")
    # 不同会话互不影响
    assert guard.try_acquire("c2")
    guard.release("c1")
    assert not guard.is_active("c1")
    assert guard.try_acquire("c1")


def test_guard_release_is_idempotent():
    guard = ConversationGuard()
    guard.release("never-acquired")
    guard.try_acquire("c1")
    guard.release("c1")
    guard.release("c1")
    assert not guard.is_active("c1")


def test_guard_only_one_winner_under_contention():
    guard = ConversationGuard()
    barrier = threading.Barrier(16)
    wins = []

    def worker():
        barrier.wait()
        wins.append(guard.try_acquire("shared"))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert wins.count(True) == 1
    assert wins.count(False) == 15
