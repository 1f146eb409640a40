import asyncio
import json

import pytest

from residence_chat.services.websocket_service import ConnectionManager

# Async tests
pytestmark = pytest.mark.asyncio


class FakeWebSocket:
    def __init__(self):
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        self.sent.append(json.loads(text))


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


async def test_connect_confirms_and_tracks_user():
    manager = ConnectionManager()
    websocket = FakeWebSocket()

    await manager.connect(websocket, "res_1", "resident")

    assert websocket.accepted
    assert websocket.sent[0]["type"] == "connection_confirmed"
    assert manager.get_connection_stats()["total_users"] == 1


async def test_subscription_records_are_forwarded(messaging):
    manager = ConnectionManager()
    websocket = FakeWebSocket()
    await manager.connect(websocket, "staff_1", "gardien")
    conversation = await messaging.start_conversation("res_1")
    await messaging.send(conversation.id, "res_1", "Fuite d'eau", sender_role="resident")

    subscription = await messaging.stream_messages(conversation.id, "staff_1", "gardien")
    manager.attach(websocket, f"conversation:{conversation.id}", subscription, "chat_message")
    await _settle()

    events = [event for event in websocket.sent if event["type"] == "chat_message"]
    assert [event["data"]["content"] for event in events] == ["Fuite d'eau"]
    manager.disconnect(websocket)


async def test_disconnect_releases_subscriptions(messaging, hub):
    manager = ConnectionManager()
    websocket = FakeWebSocket()
    await manager.connect(websocket, "res_1", "resident")
    conversation = await messaging.start_conversation("res_1")

    subscription = await messaging.stream_messages(conversation.id, "res_1", "resident")
    manager.attach(websocket, "conversation", subscription, "chat_message")
    assert hub.subscriber_count(subscription.topic) == 1

    manager.disconnect(websocket)
    await _settle()

    assert subscription.closed
    assert hub.subscriber_count(subscription.topic) == 0
    assert manager.get_connection_stats()["total_connections"] == 0


async def test_overflowed_subscription_sends_closed_frame(hub):
    manager = ConnectionManager()
    websocket = FakeWebSocket()
    await manager.connect(websocket, "res_1", "resident")

    subscription = hub.subscribe("topic", max_pending=1)
    hub.publish("topic", {"id": "m1"})
    hub.publish("topic", {"id": "m2"})
    manager.attach(websocket, "feed", subscription, "community_window")
    await _settle()

    types = [event["type"] for event in websocket.sent]
    assert types == ["connection_confirmed", "community_window", "subscription_closed"]
    assert websocket.sent[-1]["reason"] == "overflow"
    manager.disconnect(websocket)
