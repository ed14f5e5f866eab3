import asyncio

from bookmark_sorter.notifier import NotificationHub


def _drain(queue: asyncio.Queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


def test_surface_without_subscribers_is_a_no_op():
    hub = NotificationHub()

    assert hub.notify("popup", "Bookmarked to News", "success") == 0
    assert hub.surfaces() == []


def test_toast_only_reaches_the_named_surface():
    hub = NotificationHub()
    popup = hub.subscribe("popup")
    manager = hub.subscribe("manager")

    assert hub.notify("popup", "Bookmarked to News", "success") == 1

    assert _drain(popup) == [{"type": "SHOW_TOAST", "message": "Bookmarked to News", "status": "success"}]
    assert _drain(manager) == []


def test_missing_surface_broadcasts_to_everyone():
    hub = NotificationHub()
    queues = [hub.subscribe("popup"), hub.subscribe("popup"), hub.subscribe("manager")]

    assert hub.notify(None, "Failed: boom", "error") == 3
    for queue in queues:
        assert _drain(queue) == [{"type": "SHOW_TOAST", "message": "Failed: boom", "status": "error"}]


def test_full_queue_drops_the_toast_and_keeps_delivering():
    hub = NotificationHub(queue_size=1)
    slow = hub.subscribe("popup")
    fresh = hub.subscribe("popup")
    hub.notify("popup", "first", "info")
    _drain(fresh)

    assert hub.notify("popup", "second", "info") == 1

    assert [event["message"] for event in _drain(slow)] == ["first"]
    assert [event["message"] for event in _drain(fresh)] == ["second"]


def test_unknown_status_becomes_info():
    hub = NotificationHub()
    queue = hub.subscribe("popup")

    hub.notify("popup", "hello", "warning")

    assert _drain(queue)[0]["status"] == "info"


def test_unsubscribe_forgets_empty_surfaces():
    hub = NotificationHub()
    queue = hub.subscribe("popup")

    hub.unsubscribe("popup", queue)
    hub.unsubscribe("popup", queue)

    assert hub.surfaces() == []
    assert hub.notify("popup", "gone", "success") == 0
