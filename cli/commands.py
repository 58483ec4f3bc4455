"""
CLI命令定义（argparse）
"""
import argparse


def create_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        ArgumentParser 实例
    """
    parser = argparse.ArgumentParser(
        prog='vault.py',
        description='Twitter 账号归档（子命令模式）',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
示例:
  # 抓取全部（账号与凭据来自 .env / 环境变量）
  python vault.py crawl

  # 使用配置文件，只抓推文和提及，并搜索回复
  python vault.py crawl --config account.json --no-followers --no-follows --no-lists --replies

  # 从头开始（清除所有检查点）
  python vault.py crawl --no-resume

  # 查看 / 清除检查点
  python vault.py checkpoint-status
  python vault.py checkpoint-status --key followers --clear

  # 归档统计
  python vault.py stats
        '''
    )

    subparsers = parser.add_subparsers(dest='command', help='子命令', required=True)

    # ============================================================================
    # 子命令: crawl - 运行一次抓取
    # ============================================================================
    parser_crawl = subparsers.add_parser('crawl', help='抓取推文、提及、粉丝、关注、列表及媒体')
    parser_crawl.add_argument('--config', type=str, help='JSON 配置文件路径')
    parser_crawl.add_argument('--no-tweets', dest='tweets', action='store_false', default=None,
                              help='跳过自己的推文')
    parser_crawl.add_argument('--no-mentions', dest='mentions', action='store_false', default=None,
                              help='跳过提及')
    parser_crawl.add_argument('--no-followers', dest='followers', action='store_false', default=None,
                              help='跳过粉丝')
    parser_crawl.add_argument('--no-follows', dest='follows', action='store_false', default=None,
                              help='跳过关注')
    parser_crawl.add_argument('--no-lists', dest='lists', action='store_false', default=None,
                              help='跳过列表')
    parser_crawl.add_argument('--no-profiles', dest='tweet_profiles', action='store_false', default=None,
                              help='不抓取推文作者资料')
    parser_crawl.add_argument('--replies', dest='tweet_responses', action='store_true', default=None,
                              help='搜索自己推文的回复')
    parser_crawl.add_argument('--no-media', dest='media', action='store_false', default=None,
                              help='不下载媒体')
    parser_crawl.add_argument('--resume', action='store_true', default=True,
                              help='从检查点恢复（默认：启用）')
    parser_crawl.add_argument('--no-resume', dest='resume', action='store_false',
                              help='清除检查点后从头抓取')

    # ============================================================================
    # 子命令: checkpoint-status - 查看检查点状态
    # ============================================================================
    parser_checkpoint = subparsers.add_parser('checkpoint-status', help='查看检查点状态')
    parser_checkpoint.add_argument('--config', type=str, help='JSON 配置文件路径')
    parser_checkpoint.add_argument('--key', type=str, default=None,
                                   help='检查点键（如 user_tweets / followers / list-123），默认全部')
    parser_checkpoint.add_argument('--clear', action='store_true', help='清除检查点')

    # ============================================================================
    # 子命令: stats - 归档统计
    # ============================================================================
    parser_stats = subparsers.add_parser('stats', help='查看归档统计')
    parser_stats.add_argument('--config', type=str, help='JSON 配置文件路径')

    return parser
