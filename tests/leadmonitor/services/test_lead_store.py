"""Tests for leadmonitor.services.lead_store — LeadStore against in-memory SQLite."""
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from leadmonitor.errors import InvalidArgument, StorageFailure
from leadmonitor.models.post import Post
from leadmonitor.services.lead_store import LeadStore


def _analyze(store, make_result, post_id, score, **overrides):
    assert store.record_analysis(post_id, make_result(score=score, **overrides))


def _backdate(session_factory, post_id, **fields):
    session = session_factory()
    post = session.get(Post, post_id)
    for name, value in fields.items():
        setattr(post, name, value)
    session.commit()
    session.close()


# ---------------------------------------------------------------------------
# Inserts
# ---------------------------------------------------------------------------

class TestInsert:

    def test_insert_new_post(self, lead_store, make_item):
        assert lead_store.insert(make_item('a1'), 'mock interview') is True
        post = lead_store.get('a1')
        assert post['search_query'] == 'mock interview'
        assert post['analyzed'] is False
        assert post['lead_status'] == 'new'
        assert post['ai_score'] is None

    def test_insert_is_ignored_for_known_id(self, lead_store, make_item):
        lead_store.insert(make_item('a1', title='original'), 'first')
        assert lead_store.insert(make_item('a1', title='changed'), 'second') is False
        post = lead_store.get('a1')
        assert post['title'] == 'original'
        assert post['search_query'] == 'first'

    def test_reinsert_keeps_analysis(self, lead_store, make_item, make_result):
        lead_store.insert(make_item('a1'))
        _analyze(lead_store, make_result, 'a1', 88)
        lead_store.insert(make_item('a1'))
        post = lead_store.get('a1')
        assert post['analyzed'] is True
        assert post['ai_score'] == 88

    def test_insert_many_counts_new_rows(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        count = lead_store.insert_many([make_item('a1'), make_item('a2'), make_item('a3')], 'kw')
        assert count == 2
        assert lead_store.stats()['total'] == 3

    def test_insert_many_skips_duplicates_within_batch(self, lead_store, make_item):
        assert lead_store.insert_many([make_item('a1'), make_item('a1')]) == 1

    def test_insert_many_empty(self, lead_store):
        assert lead_store.insert_many([]) == 0

    def test_failure_rolls_back_and_raises(self, make_item):
        session = MagicMock()
        session.scalars.return_value = []
        session.commit.side_effect = OperationalError('INSERT', {}, Exception('disk full'))
        store = LeadStore(session_factory=lambda: session)

        with pytest.raises(StorageFailure):
            store.insert_many([make_item('a1'), make_item('a2')], 'kw')
        session.rollback.assert_called_once()
        session.close.assert_called_once()

    def test_failed_batch_leaves_no_rows(self, lead_store, make_item):
        batch = [make_item('a1'), make_item('a2', title=None), make_item('a3')]
        with pytest.raises(StorageFailure):
            lead_store.insert_many(batch, 'kw')
        assert lead_store.stats()['total'] == 0
        assert lead_store.exists('a1') is False


# ---------------------------------------------------------------------------
# Analysis + workflow status
# ---------------------------------------------------------------------------

class TestRecordAnalysis:

    def test_records_all_fields(self, lead_store, make_item, make_result):
        lead_store.insert(make_item('a1'))
        _analyze(lead_store, make_result, 'a1', 72)
        post = lead_store.get('a1')
        assert post['analyzed'] is True
        assert post['ai_score'] == 72
        assert post['ai_should_reach'] == 'yes'
        assert post['ai_pain_points'] == ['freezes on system design']
        assert post['ai_urgency'] == 'high'
        assert post['analyzed_at'] is not None

    def test_reanalysis_overwrites(self, lead_store, make_item, make_result):
        lead_store.insert(make_item('a1'))
        _analyze(lead_store, make_result, 'a1', 72)
        _analyze(lead_store, make_result, 'a1', 30, urgency='low')
        post = lead_store.get('a1')
        assert post['ai_score'] == 30
        assert post['ai_urgency'] == 'low'

    def test_unknown_id(self, lead_store, make_result):
        assert lead_store.record_analysis('missing', make_result()) is False


class TestSetStatus:

    def test_changes_status_and_notes(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        assert lead_store.set_status('a1', 'interested', notes='Looks promising') is True
        post = lead_store.get('a1')
        assert post['lead_status'] == 'interested'
        assert post['lead_notes'] == 'Looks promising'

    def test_notes_kept_when_omitted(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        lead_store.set_status('a1', 'interested', notes='first note')
        lead_store.set_status('a1', 'not_interested')
        assert lead_store.get('a1')['lead_notes'] == 'first note'

    def test_contacted_at_set_once(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        lead_store.set_status('a1', 'contacted')
        first = lead_store.get('a1')['contacted_at']
        assert first is not None

        lead_store.set_status('a1', 'new')
        lead_store.set_status('a1', 'contacted')
        assert lead_store.get('a1')['contacted_at'] == first

    def test_any_transition_allowed(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        for status in ('converted', 'new', 'not_interested', 'interested'):
            assert lead_store.set_status('a1', status)
        assert lead_store.get('a1')['lead_status'] == 'interested'

    def test_invalid_status(self, lead_store, make_item):
        lead_store.insert(make_item('a1'))
        with pytest.raises(InvalidArgument):
            lead_store.set_status('a1', 'archived')
        assert lead_store.get('a1')['lead_status'] == 'new'

    def test_unknown_id(self, lead_store):
        assert lead_store.set_status('missing', 'interested') is False


# ---------------------------------------------------------------------------
# Queries and stats
# ---------------------------------------------------------------------------

class TestQuery:

    @pytest.fixture
    def seeded(self, lead_store, make_item, make_result):
        lead_store.insert_many([make_item('a1', subreddit='jobs')], 'mock interview')
        lead_store.insert_many([make_item('a2', subreddit='jobs')], 'coding interview')
        lead_store.insert_many([make_item('a3', subreddit='cscareerquestions')], 'mock interview')
        lead_store.insert(make_item('a4'), 'mock interview')
        _analyze(lead_store, make_result, 'a1', 60)
        _analyze(lead_store, make_result, 'a2', 90)
        _analyze(lead_store, make_result, 'a3', 75)
        return lead_store

    def test_analyzed_view_sorted_by_score(self, seeded):
        leads = seeded.query(analyzed_only=True)
        assert [lead['id'] for lead in leads] == ['a2', 'a3', 'a1']

    def test_min_score_filter(self, seeded):
        assert [lead['id'] for lead in seeded.query(min_score=75)] == ['a2', 'a3']

    def test_status_filter(self, seeded):
        seeded.set_status('a3', 'contacted')
        assert [lead['id'] for lead in seeded.query(status='contacted')] == ['a3']

    def test_keyword_and_partition_filters(self, seeded):
        leads = seeded.query(source_keyword='mock interview', partition='jobs')
        assert [lead['id'] for lead in leads] == ['a1']

    def test_raw_view_includes_unanalyzed(self, seeded):
        assert {lead['id'] for lead in seeded.query()} == {'a1', 'a2', 'a3', 'a4'}

    def test_raw_view_newest_first(self, lead_store, make_item, session_factory):
        lead_store.insert(make_item('old'))
        lead_store.insert(make_item('new'))
        _backdate(session_factory, 'old', created_at=datetime.now(timezone.utc) - timedelta(hours=1))
        assert [lead['id'] for lead in lead_store.query()] == ['new', 'old']

    def test_same_batch_ordered_by_id(self, lead_store, make_item):
        lead_store.insert_many([make_item('c3'), make_item('a1'), make_item('b2')])
        assert [lead['id'] for lead in lead_store.query()] == ['a1', 'b2', 'c3']

    def test_equal_scores_ordered_by_id(self, lead_store, make_item, make_result):
        lead_store.insert_many([make_item('z9'), make_item('m5')])
        _analyze(lead_store, make_result, 'z9', 70)
        _analyze(lead_store, make_result, 'm5', 70)
        assert [lead['id'] for lead in lead_store.query(analyzed_only=True)] == ['m5', 'z9']

    def test_limit(self, seeded):
        assert len(seeded.query(analyzed_only=True, limit=2)) == 2

    def test_invalid_limit(self, seeded):
        with pytest.raises(InvalidArgument):
            seeded.query(limit=0)

    def test_invalid_status(self, seeded):
        with pytest.raises(InvalidArgument):
            seeded.query(status='bogus')


class TestStats:

    def test_empty_store(self, lead_store):
        assert lead_store.stats() == {'total': 0, 'analyzed': 0, 'pending': 0, 'avg_score': None}

    def test_counts_and_average(self, lead_store, make_item, make_result):
        lead_store.insert_many([make_item('a1'), make_item('a2'), make_item('a3')])
        _analyze(lead_store, make_result, 'a1', 70)
        _analyze(lead_store, make_result, 'a2', 75)
        assert lead_store.stats() == {'total': 3, 'analyzed': 2, 'pending': 1, 'avg_score': 72.5}

    def test_status_breakdown(self, lead_store, make_item, make_result):
        lead_store.insert_many([make_item('a1'), make_item('a2'), make_item('a3')])
        _analyze(lead_store, make_result, 'a1', 70)
        _analyze(lead_store, make_result, 'a2', 80)
        lead_store.set_status('a2', 'contacted')

        breakdown = lead_store.status_breakdown()
        assert breakdown['new'] == 1
        assert breakdown['contacted'] == 1
        assert breakdown['converted'] == 0


# ---------------------------------------------------------------------------
# Bulk delete
# ---------------------------------------------------------------------------

class TestBulkDelete:

    @pytest.fixture
    def seeded(self, lead_store, make_item, make_result):
        now = int(time.time())
        lead_store.insert_many([
            make_item('fresh_high', created_utc=now - 3600),
            make_item('fresh_low', created_utc=now - 3600),
            make_item('stale_high', created_utc=now - 10 * 86400),
            make_item('stale_low', created_utc=now - 10 * 86400),
        ])
        _analyze(lead_store, make_result, 'fresh_high', 85)
        _analyze(lead_store, make_result, 'fresh_low', 20)
        _analyze(lead_store, make_result, 'stale_high', 95)
        _analyze(lead_store, make_result, 'stale_low', 10)
        return lead_store

    def test_requires_a_filter(self, seeded):
        with pytest.raises(InvalidArgument):
            seeded.bulk_delete()
        with pytest.raises(InvalidArgument):
            seeded.preview_bulk_delete()
        assert seeded.stats()['total'] == 4

    def test_min_score_deletes_at_or_above(self, seeded):
        assert seeded.bulk_delete(min_score=80) == 2
        remaining = {lead['id'] for lead in seeded.query()}
        assert remaining == {'fresh_low', 'stale_low'}

    def test_max_age_deletes_older_posts(self, seeded):
        assert seeded.bulk_delete(max_age_days=7) == 2
        remaining = {lead['id'] for lead in seeded.query()}
        assert remaining == {'fresh_high', 'fresh_low'}

    def test_filters_are_combined(self, seeded):
        assert seeded.bulk_delete(min_score=80, max_age_days=7) == 1
        assert seeded.get('stale_high') is None

    def test_status_filter(self, seeded):
        seeded.set_status('fresh_low', 'not_interested')
        assert seeded.bulk_delete(status='not_interested') == 1
        assert seeded.get('fresh_low') is None

    def test_preview_matches_delete_without_deleting(self, seeded):
        assert seeded.preview_bulk_delete(min_score=80) == 2
        assert seeded.stats()['total'] == 4
        assert seeded.bulk_delete(min_score=80) == 2

    def test_negative_age_rejected(self, seeded):
        with pytest.raises(InvalidArgument):
            seeded.bulk_delete(max_age_days=-1)

    def test_no_matches(self, seeded):
        assert seeded.bulk_delete(min_score=100) == 0


# ---------------------------------------------------------------------------
# Read failures
# ---------------------------------------------------------------------------

class TestReadFailures:
    """Database errors on reads surface as StorageFailure, never raw SQLAlchemy errors."""

    @pytest.mark.parametrize('call', [
        lambda store: store.exists('a1'),
        lambda store: store.get('a1'),
        lambda store: store.query(),
        lambda store: store.stats(),
        lambda store: store.status_breakdown(),
        lambda store: store.preview_bulk_delete(min_score=80),
    ])
    def test_raises_storage_failure(self, broken_store, call):
        with pytest.raises(StorageFailure) as exc:
            call(broken_store)
        assert 'database is locked' in str(exc.value)
        broken_store.session.close.assert_called()
