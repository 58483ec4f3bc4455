"""
进度通道单元测试
"""
import unittest
import asyncio

from core.models import CrawlAggregate
from core.progress import Error, Finished, Loading, ProgressChannel, ProgressChannelClosed


class TestProgressChannel(unittest.TestCase):

    def test_events_arrive_in_order(self):
        """迭代按发送顺序返回，并在 Finished 后结束"""
        async def run():
            channel = ProgressChannel()
            await channel.send(Loading(text="User Tweets"))
            await channel.send(Loading(text="Followers"))
            await channel.send(Finished(snapshot=CrawlAggregate()))
            await channel.send(Loading(text="never read"))
            return [event async for event in channel]

        events = asyncio.run(run())
        self.assertEqual([type(e) for e in events], [Loading, Loading, Finished])
        self.assertEqual(events[1].text, "Followers")

    def test_error_terminates_iteration(self):
        async def run():
            channel = ProgressChannel()
            await channel.send(Loading(text="Lists"))
            await channel.send(Error(cause=RuntimeError("boom")))
            return [event async for event in channel]

        events = asyncio.run(run())
        self.assertIsInstance(events[-1], Error)
        self.assertEqual(events[-1].message, "RuntimeError: boom")

    def test_send_after_close_raises(self):
        """接收方关闭后发送方会收到错误"""
        async def run():
            channel = ProgressChannel()
            channel.close()
            with self.assertRaises(ProgressChannelClosed):
                await channel.send(Loading(text="Follows"))

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
