"""
爬虫模块

包含所有资源爬虫与编排：
- base: CrawlContext / BasePaginatedCrawler
- profiles: ProfileCache
- inspector: TweetInspector
- timelines / relations / lists: 五个分页爬虫
- orchestrator: CrawlOrchestrator
"""
from crawlers.base import CrawlContext, BasePaginatedCrawler
from crawlers.profiles import ProfileCache
from crawlers.inspector import TweetInspector
from crawlers.timelines import UserTweetsCrawler, UserMentionsCrawler
from crawlers.relations import FollowersCrawler, FollowsCrawler
from crawlers.lists import ListsCrawler, ListMembersCrawler
from crawlers.orchestrator import CrawlOrchestrator, fetch

__all__ = [
    'CrawlContext',
    'BasePaginatedCrawler',
    'ProfileCache',
    'TweetInspector',
    'UserTweetsCrawler',
    'UserMentionsCrawler',
    'FollowersCrawler',
    'FollowsCrawler',
    'ListsCrawler',
    'ListMembersCrawler',
    'CrawlOrchestrator',
    'fetch',
]
