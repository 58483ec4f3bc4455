"""
CLI handlers 单元测试
"""
import unittest
import asyncio
import io
import json
import tempfile
import shutil
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from cli.handlers import (
    build_config,
    consume_progress,
    ensure_owner_profile,
    handle_checkpoint_status,
    handle_crawl,
    handle_stats,
    print_statistics,
)
from config import Config
from core.models import CrawlAggregate, Profile
from core.progress import Error, Finished, Loading, ProgressChannel
from core.storage import Storage
from core.twitter_api import TwitterAPIError


def write_config(directory: Path, **account) -> Path:
    path = directory / "vault.json"
    path.write_text(json.dumps({
        "account": account,
        "database": {"sqlite_path": str(directory / "archive.db")},
        "media": {"media_dir": str(directory / "media")},
        "log": {"log_dir": str(directory / "logs")},
    }), encoding="utf-8")
    return path


class HandlerTestCase(unittest.TestCase):

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.config_path = write_config(self.test_dir, user_id=1, screen_name="owner")

    def tearDown(self):
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def open_archive(self) -> Storage:
        storage = Storage(self.test_dir / "archive.db", self.test_dir / "media")
        storage.connect()
        return storage


class TestBuildConfig(HandlerTestCase):

    def test_flags_override_file(self):
        args = MagicMock(config=str(self.config_path), tweets=None, mentions=False, tweet_responses=True,
                         followers=None, follows=None, lists=None, tweet_profiles=None, media=None)
        cfg = build_config(args)
        self.assertEqual(cfg.account.user_id, 1)
        self.assertEqual(cfg.database.sqlite_path, self.test_dir / "archive.db")
        self.assertTrue(cfg.crawl.tweets)
        self.assertFalse(cfg.crawl.mentions)
        self.assertTrue(cfg.crawl.tweet_responses)


class TestEnsureOwnerProfile(HandlerTestCase):

    def test_fetches_when_missing(self):
        cfg = Config()
        cfg.account.screen_name = "owner"
        client = MagicMock()
        client.users_show = AsyncMock(return_value=Profile(id=77, screen_name="owner"))
        storage = self.open_archive()
        try:
            profile = asyncio.run(ensure_owner_profile(cfg, storage, client))
            self.assertEqual(profile.id, 77)
            self.assertEqual(storage.data.profile.id, 77)
            self.assertEqual(cfg.account.user_id, 77)
            client.users_show.assert_awaited_once_with(None, "owner")
        finally:
            storage.close()

    def test_existing_profile_not_refetched(self):
        cfg = Config()
        client = MagicMock()
        client.users_show = AsyncMock()
        storage = self.open_archive()
        try:
            storage.data.profile = Profile(id=5, screen_name="five")
            asyncio.run(ensure_owner_profile(cfg, storage, client))
            client.users_show.assert_not_awaited()
            self.assertEqual(cfg.account.user_id, 5)
            self.assertEqual(cfg.account.screen_name, "five")
        finally:
            storage.close()


class TestConsumeProgress(unittest.TestCase):

    def test_returns_terminal_event(self):
        async def run():
            progress = ProgressChannel()
            await progress.send(Loading(text="User Tweets"))
            await progress.send(Loading(text="Followers"))
            await progress.send(Finished(snapshot=CrawlAggregate()))
            return await consume_progress(progress, 2)

        self.assertIsInstance(asyncio.run(run()), Finished)

    def test_error_event(self):
        async def run():
            progress = ProgressChannel()
            await progress.send(Error(cause=RuntimeError("boom")))
            return await consume_progress(progress, 5)

        self.assertIsInstance(asyncio.run(run()), Error)


class TestHandleCrawl(HandlerTestCase):
    """handle_crawl 测试（mock TwitterClient 与 CrawlOrchestrator）"""

    def make_args(self, **overrides):
        values = dict(config=str(self.config_path), resume=True, tweets=None, mentions=None, followers=None,
                      follows=None, lists=None, tweet_profiles=None, tweet_responses=None, media=None)
        values.update(overrides)
        return MagicMock(**values)

    def make_client(self, profile=None, error=None):
        client = MagicMock()
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=None)
        client.users_show = AsyncMock(return_value=profile, side_effect=error)
        return client

    @patch("cli.handlers.CrawlOrchestrator")
    @patch("cli.handlers.TwitterClient")
    def test_crawl_runs_orchestrator(self, mock_client_cls, mock_orchestrator_cls):
        mock_client_cls.return_value = self.make_client(Profile(id=1, screen_name="owner"))
        snapshot = CrawlAggregate()

        def make_orchestrator(cfg, storage, client, progress, checkpoints=None):
            orchestrator = MagicMock()
            orchestrator.enabled_phases.return_value = [("User Tweets", None)]

            async def run_and_report():
                await progress.send(Loading(text="User Tweets"))
                await progress.send(Finished(snapshot=snapshot))
                return snapshot

            orchestrator.run_and_report = run_and_report
            return orchestrator

        mock_orchestrator_cls.side_effect = make_orchestrator

        with redirect_stdout(io.StringIO()) as out:
            result = asyncio.run(handle_crawl(self.make_args()))
        self.assertIs(result, snapshot)
        self.assertIn("归档统计", out.getvalue())

    @patch("cli.handlers.CrawlOrchestrator")
    @patch("cli.handlers.TwitterClient")
    def test_owner_profile_failure_stops(self, mock_client_cls, mock_orchestrator_cls):
        mock_client_cls.return_value = self.make_client(error=TwitterAPIError(401, "Unauthorized"))
        with redirect_stdout(io.StringIO()):
            result = asyncio.run(handle_crawl(self.make_args()))
        self.assertIsNone(result)
        mock_orchestrator_cls.assert_not_called()

    @patch("cli.handlers.CrawlOrchestrator")
    @patch("cli.handlers.TwitterClient")
    def test_no_resume_clears_checkpoints(self, mock_client_cls, mock_orchestrator_cls):
        storage = self.open_archive()
        storage.save_checkpoint("followers", 99)
        storage.close()
        mock_client_cls.return_value = self.make_client(error=TwitterAPIError(401, "Unauthorized"))

        with redirect_stdout(io.StringIO()):
            asyncio.run(handle_crawl(self.make_args(resume=False)))

        storage = self.open_archive()
        try:
            self.assertEqual(storage.list_checkpoints(), {})
        finally:
            storage.close()

    def test_missing_account_identity(self):
        path = write_config(self.test_dir, user_id=0, screen_name="")
        with patch.dict("os.environ", {"TWITTER_USER_ID": "0", "TWITTER_SCREEN_NAME": ""}):
            with redirect_stdout(io.StringIO()):
                result = asyncio.run(handle_crawl(self.make_args(config=str(path))))
        self.assertIsNone(result)


class TestCheckpointAndStats(HandlerTestCase):

    def test_checkpoint_status_lists_positions(self):
        storage = self.open_archive()
        storage.save_checkpoint("followers", 1650000000000000000)
        storage.close()

        args = MagicMock(config=str(self.config_path), key=None, clear=False)
        with redirect_stdout(io.StringIO()) as out:
            asyncio.run(handle_checkpoint_status(args))
        self.assertIn("followers: 1650000000000000000", out.getvalue())

    def test_checkpoint_clear_single_key(self):
        storage = self.open_archive()
        storage.save_checkpoint("followers", 1)
        storage.save_checkpoint("list-3", 2)
        storage.close()

        args = MagicMock(config=str(self.config_path), key="list-3", clear=True)
        with redirect_stdout(io.StringIO()):
            asyncio.run(handle_checkpoint_status(args))

        storage = self.open_archive()
        try:
            self.assertEqual(storage.list_checkpoints(), {"followers": 1})
        finally:
            storage.close()

    def test_checkpoint_status_empty(self):
        args = MagicMock(config=str(self.config_path), key=None, clear=False)
        with redirect_stdout(io.StringIO()) as out:
            asyncio.run(handle_checkpoint_status(args))
        self.assertIn("没有找到检查点", out.getvalue())

    def test_stats(self):
        async def seed():
            storage = self.open_archive()
            async with storage.mutate() as data:
                data.followers = [1, 2, 3]
            await storage.save()
            storage.close()

        asyncio.run(seed())
        args = MagicMock(config=str(self.config_path))
        with redirect_stdout(io.StringIO()) as out:
            asyncio.run(handle_stats(args))
        self.assertIn("粉丝: 3", out.getvalue())


class TestPrintStatistics(unittest.TestCase):
    """print_statistics 输出统计"""

    def test_print_statistics(self):
        with redirect_stdout(io.StringIO()) as out:
            print_statistics({"tweets": 5, "media": 8})
        text = out.getvalue()
        self.assertIn("推文: 5", text)
        self.assertIn("媒体文件: 8", text)
        self.assertIn("回复: 0", text)


if __name__ == "__main__":
    unittest.main()
