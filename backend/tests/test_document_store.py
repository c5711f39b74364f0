import asyncio

from tsureben.services.document_store import ACTIVE_USERS, Change, ChangeFeed, DocumentStore


def test_get_returns_independent_copy(store):
    store.set("studyPlans", "taro@tsureben.jp", {"2025-05-12": {"09": []}})

    first = store.get("studyPlans", "taro@tsureben.jp")
    first["2025-05-12"]["09"].append({"topic": "x"})

    assert store.get("studyPlans", "taro@tsureben.jp") == {"2025-05-12": {"09": []}}
    assert store.get("studyPlans", "nobody@tsureben.jp") is None


def test_delete_reports_whether_document_existed(store):
    store.set(ACTIVE_USERS, "taro@tsureben.jp", {"subject": "英語"})

    assert store.delete(ACTIVE_USERS, "taro@tsureben.jp") is True
    assert store.delete(ACTIVE_USERS, "taro@tsureben.jp") is False
    assert store.list(ACTIVE_USERS) == {}


def test_feed_delivers_matching_changes_until_closed(db):
    async def scenario():
        feed = ChangeFeed()
        store = DocumentStore(db, feed)
        subscription = feed.subscribe(lambda change: change.collection == ACTIVE_USERS)

        store.set("studyPlans", "taro@tsureben.jp", {})
        store.set(ACTIVE_USERS, "taro@tsureben.jp", {"subject": "英語"})
        store.delete(ACTIVE_USERS, "taro@tsureben.jp")
        subscription.close()

        received = [change async for change in subscription]
        return received, feed.subscriber_count

    received, remaining = asyncio.run(scenario())

    assert received == [
        Change(ACTIVE_USERS, "taro@tsureben.jp"),
        Change(ACTIVE_USERS, "taro@tsureben.jp", deleted=True),
    ]
    assert remaining == 0


def test_create_refuses_existing_document(store):
    assert store.create("pomodoroTimers", "taro@tsureben.jp", {"state": "running"}) is True
    assert store.create("pomodoroTimers", "taro@tsureben.jp", {"state": "paused"}) is False
    assert store.get("pomodoroTimers", "taro@tsureben.jp") == {"state": "running"}
