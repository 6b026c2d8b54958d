from __future__ import annotations

import asyncio

from garden.services.keyed_lock import KeyedLock


def test_same_key_is_serialized() -> None:
    async def main():
        locks = KeyedLock()
        events: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("p1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        return events, len(locks)

    events, remaining = asyncio.run(main())
    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert remaining == 0


def test_different_keys_do_not_block_each_other() -> None:
    async def main():
        locks = KeyedLock()
        inside = asyncio.Event()

        async def holder() -> None:
            async with locks.hold("p1"):
                inside.set()
                await asyncio.sleep(0.05)

        async def other() -> bool:
            await inside.wait()
            async with locks.hold("p2"):
                return locks.is_locked("p1")

        _, overlapped = await asyncio.gather(holder(), other())
        return overlapped

    assert asyncio.run(main()) is True


def test_lock_entry_released_after_exception() -> None:
    async def main():
        locks = KeyedLock()
        try:
            async with locks.hold("p1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        return len(locks), locks.is_locked("p1")

    assert asyncio.run(main()) == (0, False)
