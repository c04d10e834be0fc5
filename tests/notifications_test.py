import asyncio
import unittest

from peer_sync.constants import Constants
from peer_sync.models import NotificationKind
from peer_sync.notifications import NotificationCenter


class NotificationCenterTest(unittest.IsolatedAsyncioTestCase):

    async def test_default_window_is_three_seconds(self):
        center = NotificationCenter()
        loop = asyncio.get_running_loop()
        before = loop.time()
        notification = center.show("Message sent")
        self.assertEqual(3, Constants.NOTIFICATION_DURATION_SEC)
        self.assertAlmostEqual(before + 3, notification.expires_at, delta=0.05)
        self.assertEqual(NotificationKind.SUCCESS, notification.kind)
        center.clear()

    async def test_notification_expires(self):
        center = NotificationCenter(duration_sec=0.1)
        center.show("Message sent")
        self.assertEqual("Message sent", center.current.message)
        await asyncio.sleep(0.2)
        self.assertIsNone(center.current)

    async def test_second_show_replaces_and_restarts_window(self):
        center = NotificationCenter(duration_sec=0.3)
        loop = asyncio.get_running_loop()
        center.show("first")
        await asyncio.sleep(0.2)
        second_at = loop.time()
        second = center.show("second", NotificationKind.INFO)

        self.assertAlmostEqual(second_at + 0.3, second.expires_at, delta=0.05)
        self.assertEqual("second", center.current.message)

        # past the first one's expiry, second is still up
        await asyncio.sleep(0.15)
        self.assertIs(second, center.current)

        await asyncio.sleep(0.25)
        self.assertIsNone(center.current)

    async def test_listeners_see_show_and_expiry(self):
        center = NotificationCenter(duration_sec=0.05)
        seen = []
        center.subscribe(seen.append)
        center.show("hello")
        await asyncio.sleep(0.15)
        self.assertEqual(2, len(seen))
        self.assertEqual("hello", seen[0].message)
        self.assertIsNone(seen[1])

    async def test_clear(self):
        center = NotificationCenter(duration_sec=5)
        center.show("hello")
        center.clear()
        self.assertIsNone(center.current)


if __name__ == '__main__':
    unittest.main()
