"""
CLI commands 单元测试
"""
import unittest
from cli.commands import create_parser


class TestCreateParser(unittest.TestCase):
    """create_parser 测试"""

    def test_parser_requires_subcommand(self):
        """无子命令时应报错"""
        parser = create_parser()
        with self.assertRaises(SystemExit):
            parser.parse_args([])

    def test_parse_crawl_defaults(self):
        """未给出的开关为 None（保留配置中的值）"""
        args = create_parser().parse_args(["crawl"])
        self.assertEqual(args.command, "crawl")
        self.assertIsNone(args.config)
        for name in ("tweets", "mentions", "followers", "follows", "lists", "tweet_profiles", "tweet_responses", "media"):
            self.assertIsNone(getattr(args, name), name)
        self.assertTrue(args.resume)

    def test_parse_crawl_flags(self):
        """解析 crawl 子命令开关"""
        args = create_parser().parse_args([
            "crawl", "--config", "account.json",
            "--no-followers", "--no-follows", "--no-lists", "--no-profiles", "--no-media",
            "--replies", "--no-resume",
        ])
        self.assertEqual(args.config, "account.json")
        self.assertFalse(args.followers)
        self.assertFalse(args.follows)
        self.assertFalse(args.lists)
        self.assertFalse(args.tweet_profiles)
        self.assertFalse(args.media)
        self.assertTrue(args.tweet_responses)
        self.assertFalse(args.resume)
        self.assertIsNone(args.tweets)

    def test_parse_checkpoint_status_command(self):
        """解析 checkpoint-status 子命令"""
        args = create_parser().parse_args(["checkpoint-status", "--key", "list-123", "--clear"])
        self.assertEqual(args.command, "checkpoint-status")
        self.assertEqual(args.key, "list-123")
        self.assertTrue(args.clear)

    def test_parse_stats_command(self):
        args = create_parser().parse_args(["stats"])
        self.assertEqual(args.command, "stats")
        self.assertIsNone(args.config)


if __name__ == "__main__":
    unittest.main()
