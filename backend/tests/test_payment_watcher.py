import asyncio
import unittest

from novaera.services.payment_watcher import PaymentWatcher, WatcherRegistry


class ScriptedCheck:
    def __init__(self, states):
        self.states = list(states)
        self.calls = 0

    async def __call__(self, transaction_id: str) -> str:
        self.calls += 1
        state = self.states.pop(0) if self.states else "PENDENTE"
        if isinstance(state, Exception):
            raise state
        return state


class TestPaymentWatcher(unittest.IsolatedAsyncioTestCase):
    async def test_stops_on_terminal_state(self):
        check = ScriptedCheck(["PENDENTE", "PENDENTE", "COMPLETO"])
        handle = PaymentWatcher(check, interval_s=0).watch("mp-1")
        self.assertEqual(await handle.wait(), "COMPLETO")
        self.assertEqual(check.calls, 3)
        self.assertTrue(handle.done)
        self.assertEqual(handle.result(), "COMPLETO")

    async def test_failure_state_is_terminal(self):
        handle = PaymentWatcher(ScriptedCheck(["falha"]), interval_s=0).watch("mp-1")
        self.assertEqual(await handle.wait(), "FALHA")

    async def test_errors_do_not_stop_polling(self):
        check = ScriptedCheck([RuntimeError("timeout"), "PENDENTE", "COMPLETO"])
        handle = PaymentWatcher(check, interval_s=0).watch("mp-1")
        self.assertEqual(await handle.wait(), "COMPLETO")
        self.assertEqual(check.calls, 3)

    async def test_timeout(self):
        check = ScriptedCheck([])
        handle = PaymentWatcher(check, interval_s=0.01, timeout_s=0.05).watch("mp-1")
        self.assertIsNone(await asyncio.wait_for(handle.wait(), timeout=2))
        self.assertGreaterEqual(check.calls, 1)

    async def test_cancel(self):
        check = ScriptedCheck([])
        handle = PaymentWatcher(check, interval_s=0.01).watch("mp-1")
        await asyncio.sleep(0.03)
        handle.cancel()
        self.assertIsNone(await handle.wait())
        self.assertTrue(handle.cancelled)
        calls = check.calls
        await asyncio.sleep(0.03)
        self.assertEqual(check.calls, calls)


class TestWatcherRegistry(unittest.IsolatedAsyncioTestCase):
    async def test_one_watcher_per_transaction(self):
        registry = WatcherRegistry()
        watcher = PaymentWatcher(ScriptedCheck([]), interval_s=0.01)
        first = registry.start(watcher, "mp-1")
        second = registry.start(watcher, "mp-1")
        self.assertIs(first, second)
        self.assertEqual(len(registry), 1)
        await registry.shutdown()

    async def test_webhook_notification_cancels_polling(self):
        registry = WatcherRegistry()
        handle = registry.start(PaymentWatcher(ScriptedCheck([]), interval_s=0.01), "mp-1")
        self.assertFalse(registry.notify("mp-1", "PENDENTE"))
        self.assertTrue(registry.notify("mp-1", "COMPLETO"))
        self.assertIsNone(await handle.wait())
        self.assertTrue(handle.cancelled)
        self.assertIsNone(registry.get("mp-1"))
        self.assertFalse(registry.notify("mp-1", "COMPLETO"))

    async def test_finished_watchers_are_forgotten(self):
        registry = WatcherRegistry()
        handle = registry.start(PaymentWatcher(ScriptedCheck(["COMPLETO"]), interval_s=0), "mp-1")
        await handle.wait()
        await asyncio.sleep(0)
        self.assertEqual(len(registry), 0)

    async def test_shutdown_cancels_everything(self):
        registry = WatcherRegistry()
        watcher = PaymentWatcher(ScriptedCheck([]), interval_s=0.01)
        handles = [registry.start(watcher, f"mp-{i}") for i in range(3)]
        await registry.shutdown()
        self.assertEqual(len(registry), 0)
        self.assertTrue(all(h.cancelled for h in handles))


if __name__ == "__main__":
    unittest.main()
