from __future__ import annotations

from agentdeck_mcp.events import SessionDestroyed, SessionEventBus, SessionStateChanged


def test_events_are_delivered_in_publish_order() -> None:
    bus = SessionEventBus()
    seen: list[str] = []
    bus.subscribe(lambda event: seen.append(f"a:{event.state}"))
    bus.subscribe(lambda event: seen.append(f"b:{event.state}"))

    bus.publish(SessionStateChanged(session_id="s1", state="busy"))
    bus.publish(SessionStateChanged(session_id="s1", state="idle"))

    assert seen == ["a:busy", "b:busy", "a:idle", "b:idle"]
    assert bus.subscriber_count == 2


def test_failing_subscriber_does_not_block_others(caplog) -> None:
    bus = SessionEventBus()
    received: list[object] = []

    def broken(event) -> None:
        raise RuntimeError("subscriber bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    with caplog.at_level("ERROR"):
        bus.publish(SessionDestroyed(session_id="s1"))

    assert received == [SessionDestroyed(session_id="s1")]
    assert any("subscriber failed" in record.message for record in caplog.records)


def test_unsubscribe_is_idempotent() -> None:
    bus = SessionEventBus()
    received: list[object] = []
    unsubscribe = bus.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    bus.publish(SessionDestroyed(session_id="s1"))

    assert received == []
    assert bus.subscriber_count == 0
