"""
Reddit search client — public JSON endpoints, no authentication.

Every listing URL on Reddit has a JSON twin (append .json), e.g.
https://www.reddit.com/r/jobs/search.json?q=mock+interview&restrict_sr=true
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from leadmonitor.config import REDDIT_BASE_URL, REDDIT_USER_AGENT, REDDIT_TIMEOUT
from leadmonitor.errors import InvalidArgument, UpstreamUnavailable
from leadmonitor.models.types import Item
from leadmonitor.services.circuit_breaker import CircuitOpenError

logger = logging.getLogger('services.reddit')

MAX_QUERY_LENGTH = 512
MAX_LIMIT = 100


@dataclass
class SearchPage:
    """One page of search results plus the listing cursors."""
    items: List[Item] = field(default_factory=list)
    after: Optional[str] = None
    before: Optional[str] = None

    @property
    def count(self):
        return len(self.items)


def _to_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _parse_created(value) -> Optional[int]:
    """Best-effort epoch seconds. Reddit sends floats; junk becomes None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_post(post: Dict) -> Optional[Item]:
    """Normalize one listing child's `data` dict into an Item (None without an id)."""
    post_id = post.get('id')
    if not post_id:
        return None
    permalink = post.get('permalink') or ''
    return Item(
        id=str(post_id),
        title=post.get('title') or '',
        author=post.get('author') or '',
        subreddit=post.get('subreddit') or '',
        selftext=post.get('selftext') or '',
        score=_to_int(post.get('score')),
        num_comments=_to_int(post.get('num_comments')),
        created_utc=_parse_created(post.get('created_utc')),
        url=f'https://reddit.com{permalink}' if permalink else (post.get('url') or ''),
        permalink=permalink,
        link=post.get('url'),
        domain=post.get('domain'),
        flair=post.get('link_flair_text'),
        nsfw=bool(post.get('over_18', False)),
    )


def parse_listing(payload) -> SearchPage:
    """Parse a Reddit Listing response, dropping duplicate ids (first wins)."""
    data = payload.get('data') if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not isinstance(data.get('children'), list):
        return SearchPage()

    items = []
    seen = set()
    for child in data['children']:
        post = child.get('data') if isinstance(child, dict) else None
        if not isinstance(post, dict):
            continue
        item = parse_post(post)
        if item is None:
            logger.debug("Skipping listing child without id")
            continue
        if item.id in seen:
            continue
        seen.add(item.id)
        items.append(item)

    return SearchPage(items=items, after=data.get('after'), before=data.get('before'))


class RedditClient:
    """Stateless search client. One instance is shared by the scheduler and routes."""

    def __init__(self, base_url=REDDIT_BASE_URL, user_agent=REDDIT_USER_AGENT,
                 timeout=REDDIT_TIMEOUT, session=None, breaker=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': user_agent})
        self.breaker = breaker

    def _fetch(self, url, params=None):
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _get_json(self, url, params=None):
        try:
            if self.breaker is not None:
                return self.breaker.call(self._fetch, url, params=params)
            return self._fetch(url, params=params)
        except CircuitOpenError as e:
            raise UpstreamUnavailable('reddit', str(e)) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else '?'
            raise UpstreamUnavailable('reddit', f'HTTP {status} for {url}') from e
        except (requests.RequestException, ValueError) as e:
            raise UpstreamUnavailable('reddit', str(e)) from e

    def search(self, keyword: str, partition: str = 'all', sort: str = 'relevance',
               time_window: str = 'all', limit: int = 25,
               after: Optional[str] = None, before: Optional[str] = None) -> SearchPage:
        """
        Search one subreddit (or `all`) for a keyword.

        Raises:
            InvalidArgument: keyword empty or longer than 512 chars, limit outside 1..100.
            UpstreamUnavailable: non-2xx response, network error or open circuit.
        """
        if not keyword or len(keyword) > MAX_QUERY_LENGTH:
            raise InvalidArgument(f"Search query must be 1-{MAX_QUERY_LENGTH} characters")
        if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= MAX_LIMIT:
            raise InvalidArgument(f"Limit must be between 1 and {MAX_LIMIT}")

        params = {
            'q': keyword,
            'sort': sort,
            't': time_window,
            'limit': limit,
            'restrict_sr': 'true' if partition != 'all' else 'false',
        }
        if after:
            params['after'] = after
        if before:
            params['before'] = before

        url = f'{self.base_url}/r/{partition}/search.json'
        logger.debug("GET %s q=%r sort=%s t=%s limit=%d", url, keyword, sort, time_window, limit)
        page = parse_listing(self._get_json(url, params=params))
        logger.debug("r/%s %r → %d posts", partition, keyword, page.count)
        return page

    def search_many(self, keywords: List[str], **options) -> List[Item]:
        """
        Search several keywords concurrently and merge the results.

        A failing keyword contributes nothing. Results are deduplicated by id
        (first occurrence in keyword order wins) and sorted by upvotes, highest
        first. Cursors are not supported here.
        """
        options.pop('after', None)
        options.pop('before', None)

        def _one(keyword):
            try:
                return self.search(keyword, **options).items
            except (InvalidArgument, UpstreamUnavailable) as e:
                logger.error("Error searching for %r: %s", keyword, e)
                return []

        if not keywords:
            return []

        with ThreadPoolExecutor(max_workers=min(len(keywords), 4)) as executor:
            pages = list(executor.map(_one, keywords))

        merged: Dict[str, Item] = {}
        for items in pages:
            for item in items:
                merged.setdefault(item.id, item)

        return sorted(merged.values(), key=lambda i: i.score, reverse=True)

    def partition_info(self, name: str) -> Optional[Dict]:
        """Subreddit metadata from about.json, or None if it can't be fetched."""
        try:
            payload = self._get_json(f'{self.base_url}/r/{name}/about.json')
        except UpstreamUnavailable as e:
            logger.error("Subreddit info error for r/%s: %s", name, e)
            return None

        data = payload.get('data') if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return None
        return {
            'name': data.get('display_name'),
            'title': data.get('title'),
            'description': data.get('public_description'),
            'subscribers': data.get('subscribers'),
            'active_users': data.get('active_user_count'),
        }
