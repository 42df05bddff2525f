"""Shared test fixtures."""
import pytest
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadmonitor.database import Base
from leadmonitor.models.types import Item, ScoreResult


class FakeRedis:
    """Minimal in-memory Redis fake covering the hash commands the breakers use."""

    def __init__(self):
        self.hashes = {}

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hashes.setdefault(key, {})
        if mapping:
            h.update({k: str(v) for k, v in mapping.items()})
        if field is not None:
            h[field] = str(value)

    def hincrby(self, key, field, amount=1):
        h = self.hashes.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    def delete(self, *keys):
        for k in keys:
            self.hashes.pop(k, None)


class FakeClock:
    """Deterministic clock whose sleep() just advances time."""

    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created, shared across sessions."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import leadmonitor.models.post  # noqa: F401
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def lead_store(session_factory, db_engine):
    from leadmonitor.services.lead_store import LeadStore
    return LeadStore(session_factory=session_factory, engine=db_engine)


@pytest.fixture
def make_item():
    """Factory fixture — builds an Item with sensible defaults."""
    def _make(id='abc123', **overrides):
        defaults = dict(
            id=id,
            title='How do I prepare for a FAANG mock interview?',
            author='throwaway_dev',
            subreddit='cscareerquestions',
            selftext='I have an onsite in two weeks and I freeze on system design.',
            score=42,
            num_comments=7,
            created_utc=1760000000,
            url=f'https://reddit.com/r/cscareerquestions/comments/{id}/post/',
            permalink=f'/r/cscareerquestions/comments/{id}/post/',
        )
        defaults.update(overrides)
        return Item(**defaults)
    return _make


@pytest.fixture
def make_result():
    def _make(score=72, **overrides):
        defaults = dict(
            score=score,
            reasoning='Explicitly asking for interview practice.',
            recommendation='Offer a free mock interview session.',
            should_reach='yes',
            pain_points=['freezes on system design'],
            urgency='high',
        )
        defaults.update(overrides)
        return ScoreResult(**defaults)
    return _make


@pytest.fixture
def pipeline(lead_store, fake_redis):
    """Real store, broker and scheduler; Reddit client and scorer are mocks."""
    from leadmonitor.pipeline.monitor_config import MonitoringConfig
    from leadmonitor.pipeline.scheduler import MonitoringScheduler
    from leadmonitor.services.circuit_breaker import build_breakers
    from leadmonitor.services.fanout import LeadEventBroker

    reddit = MagicMock()
    scorer = MagicMock()
    scorer.enabled = True
    broker = LeadEventBroker()
    config = MonitoringConfig(
        keywords=['mock interview'], partitions=['jobs'],
        interval='*/30 * * * *', limit=25, min_score=60,
    )
    scheduler = MonitoringScheduler(
        source=reddit, scorer=scorer, store=lead_store, publish=broker.publish,
        config=config, sleep=lambda s: None,
    )
    return {
        'breakers': build_breakers(fake_redis),
        'lead_store': lead_store,
        'reddit': reddit,
        'scorer': scorer,
        'broker': broker,
        'scheduler': scheduler,
    }


@pytest.fixture
def app(pipeline):
    """Flask test app with the scheduler timer left off."""
    from leadmonitor import create_app
    app = create_app(start_monitor=False, pipeline=pipeline)
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def broken_store():
    """LeadStore whose every session call fails like a locked SQLite file."""
    from sqlalchemy.exc import OperationalError
    from leadmonitor.services.lead_store import LeadStore

    error = OperationalError('SELECT', {}, Exception('database is locked'))
    session = MagicMock()
    for name in ('execute', 'scalar', 'scalars', 'get', 'commit'):
        getattr(session, name).side_effect = error
    store = LeadStore(session_factory=lambda: session)
    store.session = session
    return store
