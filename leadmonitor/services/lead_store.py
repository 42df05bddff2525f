"""
Lead store — the only code that writes to the posts table.

Posts are insert-or-ignore by Reddit id; analysis and workflow columns are
updated in place. Every method opens and closes its own session.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from leadmonitor.config import LEAD_STATUSES
from leadmonitor.database import get_session
from leadmonitor.errors import InvalidArgument, StorageFailure
from leadmonitor.models.post import Post
from leadmonitor.models.types import Item, ScoreResult

logger = logging.getLogger('services.lead_store')


def _utcnow():
    return datetime.now(timezone.utc)


def _post_from_item(item: Item, source_keyword: Optional[str]) -> Post:
    now = _utcnow()
    return Post(
        id=item.id,
        title=item.title,
        selftext=item.selftext or '',
        author=item.author,
        subreddit=item.subreddit,
        score=item.score,
        num_comments=item.num_comments,
        created_utc=item.created_utc,
        url=item.url,
        permalink=item.permalink,
        search_query=source_keyword,
        created_at=now,
        updated_at=now,
        analyzed=0,
        lead_status='new',
    )


def validate_status(status):
    if status not in LEAD_STATUSES:
        raise InvalidArgument(f"Status must be one of: {', '.join(LEAD_STATUSES)}")


class LeadStore:
    """Persistence for posts, their analysis and their lead workflow state."""

    def __init__(self, session_factory=None, engine=None):
        self._session_factory = session_factory or get_session
        self._engine = engine

    def _session(self):
        return self._session_factory()

    # ── Writes ────────────────────────────────────────────────────────

    def insert(self, item: Item, source_keyword: Optional[str] = None) -> bool:
        """Store a post unless its id is already present. True iff inserted."""
        return self.insert_many([item], source_keyword) == 1

    def insert_many(self, items: Iterable[Item], source_keyword: Optional[str] = None) -> int:
        """
        Insert-or-ignore a batch in one transaction.

        Returns the number of new rows. Any failure rolls the whole batch back
        and raises StorageFailure.
        """
        items = list(items)
        if not items:
            return 0

        session = self._session()
        try:
            ids = list({item.id for item in items})
            existing = set(session.scalars(select(Post.id).where(Post.id.in_(ids))))
            inserted = 0
            for item in items:
                if item.id in existing:
                    continue
                existing.add(item.id)
                session.add(_post_from_item(item, source_keyword))
                inserted += 1
            session.commit()
            return inserted
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to save %d posts for %r", len(items), source_keyword, exc_info=True)
            raise StorageFailure(f"insert_many failed: {e}") from e
        finally:
            session.close()

    def record_analysis(self, post_id: str, result: ScoreResult) -> bool:
        """Overwrite the analysis columns of a post. False if the id is unknown."""
        session = self._session()
        try:
            post = session.get(Post, post_id)
            if post is None:
                logger.warning("Cannot record analysis: post %s not found", post_id)
                return False
            post.analyzed = 1
            post.ai_score = result.score
            post.ai_reasoning = result.reasoning
            post.ai_recommendation = result.recommendation
            post.ai_should_reach = result.should_reach
            post.ai_pain_points = list(result.pain_points)
            post.ai_urgency = result.urgency
            post.analyzed_at = _utcnow()
            session.commit()
            return True
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to record analysis for post %s", post_id, exc_info=True)
            raise StorageFailure(f"record_analysis failed: {e}") from e
        finally:
            session.close()

    def set_status(self, post_id: str, status: str, notes: Optional[str] = None) -> bool:
        """
        Move a lead to any workflow status.

        Notes replace earlier notes only when given. contacted_at is stamped the
        first time a lead becomes 'contacted' and is never changed afterwards.
        """
        validate_status(status)
        session = self._session()
        try:
            post = session.get(Post, post_id)
            if post is None:
                logger.warning("Cannot update status: post %s not found", post_id)
                return False
            now = _utcnow()
            post.lead_status = status
            if notes is not None:
                post.lead_notes = notes
            if status == 'contacted' and post.contacted_at is None:
                post.contacted_at = now
            post.updated_at = now
            session.commit()
            return True
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to update status for post %s", post_id, exc_info=True)
            raise StorageFailure(f"set_status failed: {e}") from e
        finally:
            session.close()

    # ── Reads ─────────────────────────────────────────────────────────

    def _read(self, label, fn):
        """Run fn(session) in a fresh session; database errors become StorageFailure."""
        session = self._session()
        try:
            return fn(session)
        except SQLAlchemyError as e:
            logger.error("Lead store read failed (%s)", label, exc_info=True)
            raise StorageFailure(f"{label} failed: {e}") from e
        finally:
            session.close()

    def exists(self, post_id: str) -> bool:
        return self._read(
            'exists',
            lambda s: s.scalar(select(Post.id).where(Post.id == post_id)) is not None,
        )

    def get(self, post_id: str) -> Optional[Dict]:
        def _get(session):
            post = session.get(Post, post_id)
            return post.to_dict() if post else None
        return self._read('get', _get)

    def query(self, status: Optional[str] = None, source_keyword: Optional[str] = None,
              partition: Optional[str] = None, min_score: Optional[int] = None,
              analyzed_only: bool = False, limit: Optional[int] = None) -> List[Dict]:
        """
        Filtered lead listing.

        Analyzed listings (analyzed_only, or any status/min_score filter) are
        ordered best score first, newest first within a score. Raw listings
        are newest first. Rows ingested together are ordered by id.
        """
        if status is not None:
            validate_status(status)
        if limit is not None and limit < 1:
            raise InvalidArgument("limit must be a positive integer")

        analyzed_view = analyzed_only or status is not None or min_score is not None

        stmt = select(Post)
        if analyzed_view:
            stmt = stmt.where(Post.analyzed == 1)
        if status is not None:
            stmt = stmt.where(Post.lead_status == status)
        if source_keyword is not None:
            stmt = stmt.where(Post.search_query == source_keyword)
        if partition is not None:
            stmt = stmt.where(Post.subreddit == partition)
        if min_score is not None:
            stmt = stmt.where(Post.ai_score >= min_score)

        if analyzed_view:
            stmt = stmt.order_by(Post.ai_score.desc(), Post.created_at.desc(), Post.id)
        else:
            stmt = stmt.order_by(Post.created_at.desc(), Post.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        return self._read('query', lambda s: [post.to_dict() for post in s.scalars(stmt)])

    def stats(self) -> Dict:
        total, analyzed, avg_score = self._read('stats', lambda s: s.execute(
            select(
                func.count(Post.id),
                func.coalesce(func.sum(Post.analyzed), 0),
                func.avg(Post.ai_score),
            )
        ).one())
        return {
            'total': int(total or 0),
            'analyzed': int(analyzed or 0),
            'pending': int(total or 0) - int(analyzed or 0),
            'avg_score': round(float(avg_score), 1) if avg_score is not None else None,
        }

    def status_breakdown(self) -> Dict[str, int]:
        """Count of analyzed leads per workflow status (every status present)."""
        rows = self._read('status_breakdown', lambda s: s.execute(
            select(Post.lead_status, func.count(Post.id))
            .where(Post.analyzed == 1)
            .group_by(Post.lead_status)
        ).all())
        breakdown = {status: 0 for status in LEAD_STATUSES}
        breakdown.update({status: count for status, count in rows})
        return breakdown

    # ── Bulk delete ───────────────────────────────────────────────────

    def _bulk_filter(self, stmt, min_score, max_age_days, status):
        if min_score is None and max_age_days is None and status is None:
            raise InvalidArgument("At least one of min_score, max_age_days or status is required")
        if status is not None:
            validate_status(status)
            stmt = stmt.where(Post.lead_status == status)
        if min_score is not None:
            stmt = stmt.where(Post.ai_score >= min_score)
        if max_age_days is not None:
            if max_age_days < 0:
                raise InvalidArgument("max_age_days must not be negative")
            cutoff = int((_utcnow() - timedelta(days=max_age_days)).timestamp())
            stmt = stmt.where(Post.created_utc < cutoff)
        return stmt

    def preview_bulk_delete(self, min_score: Optional[int] = None,
                            max_age_days: Optional[float] = None,
                            status: Optional[str] = None) -> int:
        stmt = self._bulk_filter(select(func.count(Post.id)), min_score, max_age_days, status)
        return self._read('preview_bulk_delete', lambda s: int(s.scalar(stmt) or 0))

    def bulk_delete(self, min_score: Optional[int] = None,
                    max_age_days: Optional[float] = None,
                    status: Optional[str] = None) -> int:
        """Delete posts matching every given filter. Refuses an empty filter set."""
        stmt = self._bulk_filter(select(Post.id), min_score, max_age_days, status)
        session = self._session()
        try:
            ids = list(session.scalars(stmt))
            if ids:
                session.query(Post).filter(Post.id.in_(ids)).delete(synchronize_session=False)
            session.commit()
            logger.info("Bulk delete removed %d posts (min_score=%s max_age_days=%s status=%s)",
                        len(ids), min_score, max_age_days, status)
            return len(ids)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Bulk delete failed", exc_info=True)
            raise StorageFailure(f"bulk_delete failed: {e}") from e
        finally:
            session.close()

    def close(self):
        """Release pooled connections."""
        if self._engine is None:
            from leadmonitor.database import engine
            self._engine = engine
        self._engine.dispose()
