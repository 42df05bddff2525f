"""
Post model — one row per Reddit post id, carrying the AI analysis and the
lead workflow columns. Analysis columns stay NULL until the post is scored.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, Index
from sqlalchemy.sql import func

from leadmonitor.database import Base


class Post(Base):
    __tablename__ = 'posts'

    # Item
    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    selftext = Column(Text, default='')
    author = Column(Text, default='')
    subreddit = Column(Text, default='')
    score = Column(Integer, default=0)
    num_comments = Column(Integer, default=0)
    created_utc = Column(Integer, nullable=True)  # epoch seconds, best effort
    url = Column(Text, default='')
    permalink = Column(Text, default='')
    search_query = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Analysis
    analyzed = Column(Integer, default=0, nullable=False)
    ai_score = Column(Integer, nullable=True)
    ai_reasoning = Column(Text, nullable=True)
    ai_recommendation = Column(Text, nullable=True)
    ai_should_reach = Column(Text, nullable=True)
    ai_pain_points = Column(JSON, nullable=True)
    ai_urgency = Column(Text, nullable=True)
    analyzed_at = Column(DateTime(timezone=True), nullable=True)

    # Lead workflow
    lead_status = Column(Text, default='new', nullable=False)
    lead_notes = Column(Text, nullable=True)
    contacted_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_analyzed', 'analyzed'),
        Index('idx_ai_score', 'ai_score'),
        Index('idx_search_query', 'search_query'),
        Index('idx_subreddit', 'subreddit'),
        Index('idx_lead_status', 'lead_status'),
        Index('idx_created_at', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'selftext': self.selftext,
            'author': self.author,
            'subreddit': self.subreddit,
            'score': self.score,
            'num_comments': self.num_comments,
            'created_utc': self.created_utc,
            'url': self.url,
            'permalink': self.permalink,
            'search_query': self.search_query,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'analyzed': bool(self.analyzed),
            'ai_score': self.ai_score,
            'ai_reasoning': self.ai_reasoning,
            'ai_recommendation': self.ai_recommendation,
            'ai_should_reach': self.ai_should_reach,
            'ai_pain_points': self.ai_pain_points or [],
            'ai_urgency': self.ai_urgency,
            'analyzed_at': self.analyzed_at.isoformat() if self.analyzed_at else None,
            'lead_status': self.lead_status,
            'lead_notes': self.lead_notes,
            'contacted_at': self.contacted_at.isoformat() if self.contacted_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
