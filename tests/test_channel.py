"""Tests for the bounded broadcast channel."""

import asyncio

import pytest

from handson.channel import BroadcastChannel


async def drain(sub):
    return [item async for item in sub]


class TestBroadcastChannel:
    def test_items_arrive_in_order(self):
        async def main():
            channel = BroadcastChannel(maxsize=32)
            sub = channel.subscribe()
            reader = asyncio.create_task(drain(sub))
            for i in range(20):
                await channel.publish(i)
            channel.close()
            return await reader

        assert asyncio.run(main()) == list(range(20))

    def test_every_subscriber_gets_every_item(self):
        async def main():
            channel = BroadcastChannel(maxsize=16)
            readers = [asyncio.create_task(drain(channel.subscribe())) for _ in range(3)]
            for i in range(10):
                await channel.publish(i)
            channel.close()
            return await asyncio.gather(*readers)

        assert asyncio.run(main()) == [list(range(10))] * 3

    def test_publish_never_waits_on_full_subscriber(self):
        async def main():
            channel = BroadcastChannel(maxsize=2)
            idle = channel.subscribe()
            for i in range(5):
                await asyncio.wait_for(channel.publish(i), timeout=1)
            channel.close()
            return await drain(idle), idle.dropped

        items, dropped = asyncio.run(main())
        assert items == [3, 4]
        assert dropped == 3

    def test_slow_reader_keeps_order(self):
        async def main():
            channel = BroadcastChannel(maxsize=3)
            sub = channel.subscribe()
            seen = []

            async def slow():
                async for item in sub:
                    seen.append(item)
                    await asyncio.sleep(0.001)

            reader = asyncio.create_task(slow())
            for i in range(50):
                await channel.publish(i)
                await asyncio.sleep(0)
            channel.close()
            await reader
            return seen, sub.dropped

        seen, dropped = asyncio.run(main())
        assert seen == sorted(set(seen))
        assert seen[-1] == 49
        assert len(seen) + dropped == 50

    def test_close_delivers_backlog(self):
        async def main():
            channel = BroadcastChannel(maxsize=3)
            sub = channel.subscribe()
            for i in range(3):
                await channel.publish(i)
            # Queue is full, so the end marker cannot be queued.
            channel.close()
            return await drain(sub)

        assert asyncio.run(main()) == [0, 1, 2]

    def test_publish_after_close(self):
        async def main():
            channel = BroadcastChannel()
            channel.close()
            with pytest.raises(RuntimeError):
                await channel.publish(1)
            with pytest.raises(RuntimeError):
                channel.subscribe()

        asyncio.run(main())

    def test_close_is_idempotent(self):
        async def main():
            channel = BroadcastChannel()
            sub = channel.subscribe()
            channel.close()
            channel.close()
            return await drain(sub), channel.closed

        items, closed = asyncio.run(main())
        assert items == []
        assert closed

    def test_unsubscribe(self):
        async def main():
            channel = BroadcastChannel(maxsize=1)
            sub = channel.subscribe()
            other = channel.subscribe()
            sub.close()
            assert channel.subscriber_count == 1
            await channel.publish(1)
            return await other.get()

        assert asyncio.run(main()) == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            BroadcastChannel(maxsize=0)
