"""
Twitter 账号归档 - 入口
抓取自己的推文、提及、粉丝、关注、列表及媒体，保存为本地归档
"""
import asyncio
import sys

from loguru import logger

from config import config
from cli import create_parser, handle_crawl, handle_checkpoint_status, handle_stats


def setup_logging():
    """配置日志：彩色 stderr + 轮转文件"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level=config.log.log_level,
        colorize=True
    )

    log_file = config.log.log_dir / config.log.log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation=config.log.rotation,
        retention=config.log.retention,
        encoding="utf-8",
        level="DEBUG"
    )


async def main():
    """主函数 - 子命令模式"""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging()

    print("\n" + "=" * 60)
    print("🗄️  Twitter 账号归档")
    print("=" * 60)

    if args.command == 'crawl':
        await handle_crawl(args)
    elif args.command == 'checkpoint-status':
        await handle_checkpoint_status(args)
    elif args.command == 'stats':
        await handle_stats(args)


def cli_main():
    asyncio.run(main())


if __name__ == "__main__":
    cli_main()
