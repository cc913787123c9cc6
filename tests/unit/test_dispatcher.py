"""
Testes unitários para o Dispatcher.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from ivr.core.cancellation import CancelScope
from ivr.dispatcher import Dispatcher


async def _noop_script(handler):
    await handler.play_number(1)


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_one_handler_per_call(self, fake_client, wait_until):
        dispatcher = Dispatcher(fake_client, _noop_script)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        for n in range(5):
            fake_client.start_call(f"call-{n}")

        await wait_until(lambda: dispatcher.handled_calls == 5)
        assert await dispatcher.wait_for_calls(timeout=1.0)

        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)

        assert sorted(fake_client.channels) == [f"call-{n}" for n in range(5)]
        for channel in fake_client.channels.values():
            assert channel.played == ["sound:digits/1"]
            assert channel.hangups == 1
        assert dispatcher.active_calls == 0

    @pytest.mark.asyncio
    async def test_loop_does_not_wait_for_handlers(self, fake_client, wait_until):
        gate = asyncio.Event()

        async def slow_script(handler):
            await gate.wait()

        dispatcher = Dispatcher(fake_client, slow_script)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        fake_client.start_call("a")
        fake_client.start_call("b")

        await wait_until(lambda: dispatcher.active_calls == 2)

        gate.set()
        assert await dispatcher.wait_for_calls(timeout=1.0)
        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)

    @pytest.mark.asyncio
    async def test_stop_ends_acceptance_but_not_running_calls(self, fake_client, wait_until):
        gate = asyncio.Event()

        async def script(handler):
            await gate.wait()
            await handler.play_number(2)

        dispatcher = Dispatcher(fake_client, script)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        fake_client.start_call("running")
        await wait_until(lambda: dispatcher.active_calls == 1)

        stop.cancel("shutdown")
        await asyncio.wait_for(loop_task, 1.0)

        # chamada nova depois do stop não é atendida
        assert fake_client.start_call("late") == 0
        assert dispatcher.handled_calls == 1

        gate.set()
        assert await dispatcher.wait_for_calls(timeout=1.0)

        running = fake_client.channels["running"]
        assert running.played == ["sound:digits/2"]
        assert running.hangups == 1
        assert "late" not in fake_client.channels

    @pytest.mark.asyncio
    async def test_stop_already_cancelled(self, fake_client):
        dispatcher = Dispatcher(fake_client, _noop_script)
        stop = CancelScope()
        stop.cancel()

        await asyncio.wait_for(dispatcher.run(stop), 1.0)

        assert dispatcher.handled_calls == 0
        assert fake_client.event_bus.subscription_count == 0

    @pytest.mark.asyncio
    async def test_bus_close_ends_loop(self, fake_client):
        dispatcher = Dispatcher(fake_client, _noop_script)
        loop_task = asyncio.create_task(dispatcher.run())
        await asyncio.sleep(0)

        fake_client.event_bus.close()

        await asyncio.wait_for(loop_task, 1.0)

    @pytest.mark.asyncio
    async def test_dialed_legs_do_not_spawn_handlers(self, fake_client):
        dispatcher = Dispatcher(fake_client, _noop_script)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        fake_client.start_call("leg-1", args=["dialed"])
        await asyncio.sleep(0.01)

        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)
        assert dispatcher.handled_calls == 0

    @pytest.mark.asyncio
    async def test_bounded_pool(self, fake_client, wait_until):
        running = 0
        peak = 0

        async def script(handler):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.02)
            running -= 1

        dispatcher = Dispatcher(fake_client, script, max_concurrent_calls=2)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        for n in range(5):
            fake_client.start_call(f"call-{n}")

        await wait_until(lambda: dispatcher.handled_calls == 5)
        assert await dispatcher.wait_for_calls(timeout=2.0)
        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)

        assert peak == 2
        assert all(channel.hangups == 1 for channel in fake_client.channels.values())

    @pytest.mark.asyncio
    async def test_cancel_calls(self, fake_client, wait_until):
        async def script(handler):
            await handler.wait_for_end()

        dispatcher = Dispatcher(fake_client, script)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        fake_client.start_call("a")
        await wait_until(lambda: dispatcher.active_calls == 1)
        assert not await dispatcher.wait_for_calls(timeout=0.02)

        dispatcher.cancel_calls("server shutdown")

        assert await dispatcher.wait_for_calls(timeout=1.0)
        assert fake_client.channels["a"].hangups == 1
        # o loop continua aceitando
        assert not loop_task.done()

        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)

    @pytest.mark.asyncio
    async def test_crashed_handler_is_logged_and_isolated(self, fake_client, wait_until):
        logger = MagicMock()

        async def script(handler):
            if handler.call_id == "bad":
                raise RuntimeError("script bug")
            await handler.play_number(1)

        dispatcher = Dispatcher(fake_client, script, logger=logger)
        stop = CancelScope()
        loop_task = asyncio.create_task(dispatcher.run(stop))
        await asyncio.sleep(0)

        fake_client.start_call("bad")
        fake_client.start_call("good")

        await wait_until(lambda: dispatcher.handled_calls == 2)
        await dispatcher.wait_for_calls(timeout=1.0)
        stop.cancel()
        await asyncio.wait_for(loop_task, 1.0)

        logger.error.assert_called_once()
        assert fake_client.channels["bad"].hangups == 1
        assert fake_client.channels["good"].played == ["sound:digits/1"]
