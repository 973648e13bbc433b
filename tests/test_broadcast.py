import asyncio

import pytest
from pydantic import BaseModel

from peernet.discovery import PeerReceiver, PeerTransmitter, UpdateChannel
from peernet.errors import TransportError
from peernet.transport import MAX_DATAGRAM, BroadcastReceiver, BroadcastTransmitter, JsonCodec

LOOPBACK = '127.0.0.1'


class Reading(BaseModel):
    sensor: str
    value: float


async def test_value_roundtrip_over_loopback(free_port):
    with BroadcastReceiver.create(free_port, host=LOOPBACK) as rx, \
            BroadcastTransmitter.create(free_port, LOOPBACK) as tx:
        await tx.transmit("hello")

        assert await rx.receive_value(timeout=1.0) == "hello"


async def test_typed_codec_over_loopback(free_port):
    codec = JsonCodec(Reading)
    with BroadcastReceiver.create(free_port, host=LOOPBACK, codec=codec) as rx, \
            BroadcastTransmitter.create(free_port, LOOPBACK, codec=codec) as tx:
        await tx.transmit(Reading(sensor="t1", value=21.5))

        assert await rx.receive_value(timeout=1.0) == Reading(sensor="t1", value=21.5)


async def test_each_receive_returns_one_datagram(free_port):
    with BroadcastReceiver.create(free_port, host=LOOPBACK) as rx, \
            BroadcastTransmitter.create(free_port, LOOPBACK) as tx:
        await tx.send(b'"one"')
        await tx.send(b'"two"')

        assert await rx.receive(timeout=1.0) == b'"one"'
        assert await rx.receive(timeout=1.0) == b'"two"'


async def test_receive_times_out(free_port):
    with BroadcastReceiver.create(free_port, host=LOOPBACK) as rx:
        with pytest.raises(TimeoutError):
            await rx.receive(timeout=0.05)


async def test_run_loops_forward_values(free_port):
    outbox, inbox = asyncio.Queue(), asyncio.Queue()
    with BroadcastReceiver.create(free_port, host=LOOPBACK) as rx, \
            BroadcastTransmitter.create(free_port, LOOPBACK) as tx:
        tasks = [asyncio.create_task(rx.run(inbox)), asyncio.create_task(tx.run(outbox))]
        try:
            await tx.send(b'not json')
            await outbox.put({"msg": "hi"})

            assert await asyncio.wait_for(inbox.get(), timeout=1.0) == {"msg": "hi"}
            assert inbox.empty()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


def test_bind_failure_is_transport_error(free_port):
    with pytest.raises(TransportError):
        BroadcastReceiver.create(free_port, host='256.0.0.1')


async def test_send_on_closed_transmitter_fails(free_port):
    tx = BroadcastTransmitter.create(free_port, LOOPBACK)
    tx.close()

    with pytest.raises(TransportError):
        await tx.send(b'"late"')


async def test_peers_discover_and_lose_each_other(free_port):
    updates = UpdateChannel()
    transmitter = PeerTransmitter.create(free_port, broadcast_addr=LOOPBACK, interval=0.01)
    receiver = PeerReceiver.create(free_port, host=LOOPBACK, timeout=0.1)

    with transmitter, receiver:
        detect = asyncio.create_task(receiver.run(updates))
        announce = asyncio.create_task(transmitter.run("10.0.0.7:1234"))
        try:
            joined = await asyncio.wait_for(updates.get(), timeout=2.0)
            assert joined.new == "10.0.0.7:1234"
            assert joined.peers == ("10.0.0.7:1234",)

            transmitter.disable()

            left = await asyncio.wait_for(updates.get(), timeout=2.0)
            assert left.lost == ("10.0.0.7:1234",)
            assert left.new is None
            assert left.peers == ()
        finally:
            detect.cancel()
            announce.cancel()
            await asyncio.gather(detect, announce, return_exceptions=True)


async def test_large_values_arrive_whole(free_port):
    codec = JsonCodec(Reading)
    reading = Reading(sensor="x" * 5000, value=1.0)
    with BroadcastReceiver.create(free_port, host=LOOPBACK, codec=codec) as rx, \
            BroadcastTransmitter.create(free_port, LOOPBACK, codec=codec) as tx:
        await tx.transmit(reading)

        assert await rx.receive_value(timeout=1.0) == reading


async def test_oversized_datagram_is_refused(free_port):
    with BroadcastTransmitter.create(free_port, LOOPBACK) as tx:
        with pytest.raises(TransportError, match="exceeds"):
            await tx.send(b'x' * (MAX_DATAGRAM + 1))
