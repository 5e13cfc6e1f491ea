from preview_bridge import topics
from preview_bridge.bus import RuntimeBus


def test_publish_reaches_topic_subscribers_only() -> None:
    bus = RuntimeBus()
    ready, errors = [], []
    bus.subscribe(topics.PREVIEW_READY, ready.append)
    bus.subscribe(topics.PREVIEW_ERROR, errors.append)

    delivered = bus.publish(topics.PREVIEW_READY, {"generation": 1})

    assert delivered == 1
    assert ready == [{"generation": 1}]
    assert errors == []


def test_unsubscribe_and_failing_handler() -> None:
    bus = RuntimeBus()
    seen = []

    def broken(_payload):
        raise RuntimeError("boom")

    sub_id = bus.subscribe(topics.PREVIEW_STATE_CHANGED, seen.append)
    bus.subscribe(topics.PREVIEW_STATE_CHANGED, broken)
    assert bus.publish(topics.PREVIEW_STATE_CHANGED, {"state": "ready"}) == 2
    assert seen == [{"state": "ready"}]

    bus.unsubscribe(sub_id)
    bus.publish(topics.PREVIEW_STATE_CHANGED, {"state": "loading"})
    assert seen == [{"state": "ready"}]
