"""
CLI命令处理函数
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger
from tqdm import tqdm

from config import Config, config as default_config, create_config_from_dict, load_config_file
from core.checkpoint import CheckpointManager
from core.models import Profile
from core.progress import Error, Finished, Loading, ProgressChannel, ProgressEvent
from core.storage import Storage
from core.twitter_api import TwitterAPIError, TwitterClient
from crawlers.orchestrator import CrawlOrchestrator

# 可以用命令行参数覆盖的抓取开关
OPTION_FLAGS = (
    "tweets",
    "mentions",
    "followers",
    "follows",
    "lists",
    "tweet_profiles",
    "tweet_responses",
    "media",
)


def build_config(args) -> Config:
    """
    根据命令行参数构建配置

    --config 指定的 JSON 文件优先，否则使用环境变量配置；
    显式给出的开关参数覆盖配置中的值。
    """
    config_path = getattr(args, "config", None)
    if config_path:
        logger.info(f"📁 使用配置文件: {config_path}")
        cfg = create_config_from_dict(load_config_file(Path(config_path)))
    else:
        cfg = default_config.model_copy(deep=True)

    for name in OPTION_FLAGS:
        value = getattr(args, name, None)
        if isinstance(value, bool):
            setattr(cfg.crawl, name, value)
    return cfg


def open_storage(cfg: Config) -> Storage:
    """连接并加载归档"""
    storage = Storage(cfg.database.sqlite_path, cfg.media.media_dir)
    storage.connect()
    storage.load()
    return storage


async def ensure_owner_profile(cfg: Config, storage: Storage, client: TwitterClient) -> Optional[Profile]:
    """
    确保归档中有账号本人的资料

    归档中没有时通过 users/show 获取；配置缺少数字 id 时以资料中的 id 为准。
    """
    profile = storage.data.profile
    if profile is None:
        account = cfg.account
        profile = await client.users_show(account.user_id or None, account.screen_name or None)
        async with storage.mutate() as data:
            data.profile = profile
        logger.info(f"👤 Owner profile: @{profile.screen_name} ({profile.id})")
    if not cfg.account.user_id:
        cfg.account.user_id = profile.id
    if not cfg.account.screen_name:
        cfg.account.screen_name = profile.screen_name
    return profile


async def consume_progress(progress: ProgressChannel, total: int) -> Optional[ProgressEvent]:
    """消费进度事件，用 tqdm 显示阶段进度；返回终止事件"""
    last_event = None
    with tqdm(total=total, desc="Starting", unit="phase") as bar:
        seen_phase = False
        async for event in progress:
            last_event = event
            if isinstance(event, Loading):
                if seen_phase:
                    bar.update(1)
                seen_phase = True
                bar.set_description(event.text)
            elif isinstance(event, Finished):
                bar.update(bar.total - bar.n)
                bar.set_description("Finished")
            elif isinstance(event, Error):
                bar.set_description("Error")
                logger.error(f"❌ 抓取失败: {event.message}")
    return last_event


async def handle_crawl(args):
    """处理 crawl 子命令"""
    print(f"\n📌 命令: 抓取归档")
    cfg = build_config(args)
    if not cfg.account.user_id and not cfg.account.screen_name:
        logger.error("❌ 请设置 TWITTER_USER_ID 或 TWITTER_SCREEN_NAME（或在配置文件 account 中指定）")
        return None
    cfg.create_directories()

    storage = open_storage(cfg)
    try:
        checkpoints = CheckpointManager(storage)
        if not args.resume:
            cleared = checkpoints.clear_all()
            logger.info(f"🔄 不从检查点恢复，已清除 {cleared} 个检查点")

        progress = ProgressChannel()
        async with TwitterClient(cfg) as client:
            try:
                await ensure_owner_profile(cfg, storage, client)
            except (TwitterAPIError, aiohttp.ClientError) as e:
                logger.error(f"❌ 无法获取账号资料: {e}")
                return None
            orchestrator = CrawlOrchestrator(cfg, storage, client, progress, checkpoints=checkpoints)
            consumer = asyncio.create_task(consume_progress(progress, len(orchestrator.enabled_phases())))
            try:
                snapshot = await orchestrator.run_and_report()
                await consumer
            finally:
                if not consumer.done():
                    consumer.cancel()

        if snapshot is not None:
            print_statistics(storage.get_statistics())
        return snapshot
    finally:
        storage.close()


def print_statistics(stats: Dict[str, Any]):
    """输出统计信息"""
    print("\n" + "=" * 60)
    print("📊 归档统计:")
    print(f"  推文: {stats.get('tweets', 0)}")
    print(f"  提及: {stats.get('mentions', 0)}")
    print(f"  粉丝: {stats.get('followers', 0)}")
    print(f"  关注: {stats.get('follows', 0)}")
    print(f"  列表: {stats.get('lists', 0)}")
    print(f"  用户资料: {stats.get('profiles', 0)}")
    print(f"  媒体文件: {stats.get('media', 0)}")
    print(f"  回复: {stats.get('responses', 0)}")
    print("=" * 60)


async def handle_checkpoint_status(args):
    """处理 checkpoint-status 子命令"""
    print(f"\n📌 命令: 查看检查点状态")
    cfg = build_config(args)
    storage = Storage(cfg.database.sqlite_path, cfg.media.media_dir)
    storage.connect()
    try:
        checkpoints = CheckpointManager(storage)
        positions = checkpoints.positions()
        if args.key:
            positions = {k: v for k, v in positions.items() if k == args.key}

        if args.clear:
            if not positions:
                print("ℹ️  没有找到检查点")
                return
            for key in positions:
                checkpoints.clear(key)
            print(f"✅ 已清除 {len(positions)} 个检查点")
            return

        if not positions:
            print("ℹ️  没有找到检查点（所有资源未开始或已完成）")
            return

        print("\n" + "=" * 60)
        print("📂 检查点信息:")
        for key, position in positions.items():
            print(f"  {key}: {position}")
        print("=" * 60)
    finally:
        storage.close()


async def handle_stats(args):
    """处理 stats 子命令"""
    cfg = build_config(args)
    storage = open_storage(cfg)
    try:
        print_statistics(storage.get_statistics())
    finally:
        storage.close()
