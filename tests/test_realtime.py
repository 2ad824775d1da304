"""Balance-changed notifications: StockEventHub and WebSocket fan-out."""

from uuid import uuid4

from starlette.websockets import WebSocketState

from stock_ledger.schemas.realtime import BalanceChangedEvent
from stock_ledger.services.realtime import BroadcastManager, StockEventHub


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def _event(store_id=None):
    return BalanceChangedEvent(
        store_id=store_id or uuid4(),
        product_id=uuid4(),
        quantity_packets=4.0,
        weight_kg=288.0,
        source_document="PR-000001",
    )


class TestStockEventHub:
    async def test_subscribers_receive_each_batch(self):
        hub = StockEventHub()
        batches = []

        async def collect(batch):
            batches.append(list(batch))

        hub.subscribe(collect)
        await hub.publish([_event(), _event()])
        assert len(batches) == 1
        assert len(batches[0]) == 2

    async def test_unsubscribe_and_empty_batches(self):
        hub = StockEventHub()
        calls = []

        async def collect(batch):
            calls.append(batch)

        unsubscribe = hub.subscribe(collect)
        await hub.publish([])
        unsubscribe()
        await hub.publish([_event()])
        assert calls == []

    async def test_failing_subscriber_does_not_stop_the_others(self):
        hub = StockEventHub()
        received = []

        async def broken(batch):
            raise RuntimeError("down")

        async def collect(batch):
            received.extend(batch)

        hub.subscribe(broken)
        hub.subscribe(collect)
        await hub.publish([_event()])
        assert len(received) == 1


class TestBroadcastManager:
    async def test_changes_go_to_global_and_store_topics(self):
        manager = BroadcastManager()
        store_id = uuid4()
        everything, this_store, other_store = FakeSocket(), FakeSocket(), FakeSocket()
        await manager.connect(manager.stock_topic(), everything)
        await manager.connect(manager.stock_topic(store_id), this_store)
        await manager.connect(manager.stock_topic(uuid4()), other_store)

        await manager.publish_balance_changes([_event(store_id)])

        assert len(everything.sent) == 1
        assert len(this_store.sent) == 1
        assert other_store.sent == []
        message = this_store.sent[0]
        assert message["type"] == "stock.balance_changed"
        assert message["channel"] == str(store_id)
        assert message["payload"]["store_id"] == str(store_id)
        assert message["payload"]["quantity_packets"] == 4.0

    async def test_dead_sockets_are_dropped(self):
        manager = BroadcastManager()
        topic = manager.stock_topic()
        dead, alive = FakeSocket(fail=True), FakeSocket()
        await manager.connect(topic, dead)
        await manager.connect(topic, alive)

        await manager.broadcast(topic, {"type": "ping"})

        assert manager.subscriber_count(topic) == 1
        assert alive.sent == [{"type": "ping"}]

    async def test_disconnect(self):
        manager = BroadcastManager()
        topic = manager.stock_topic()
        socket = FakeSocket()
        await manager.connect(topic, socket)
        await manager.disconnect(topic, socket)
        await manager.broadcast(topic, {"type": "ping"})
        assert socket.sent == []
        assert manager.subscriber_count(topic) == 0
