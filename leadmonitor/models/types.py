"""
Plain value objects that flow through the pipeline.

Item is what the source client produces, ScoreResult is what the scoring
client produces, QualifyingLeadEvent is what the scheduler publishes.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


REACH_VALUES = ('yes', 'maybe', 'no', 'unknown')
URGENCY_VALUES = ('high', 'medium', 'low')

NEUTRAL_SCORE = 50


@dataclass(frozen=True)
class Item:
    """A single Reddit post, normalized from a search listing."""
    id: str
    title: str
    author: str = ''
    subreddit: str = ''
    selftext: str = ''
    score: int = 0
    num_comments: int = 0
    created_utc: Optional[int] = None
    url: str = ''
    permalink: str = ''
    link: Optional[str] = None
    domain: Optional[str] = None
    flair: Optional[str] = None
    nsfw: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ScoreResult:
    """Normalized model verdict for one Item."""
    score: int = NEUTRAL_SCORE
    reasoning: str = ''
    recommendation: str = ''
    should_reach: str = 'unknown'
    pain_points: List[str] = field(default_factory=list)
    urgency: str = 'medium'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def neutral(cls, reasoning: str, recommendation: str = 'Manual review recommended') -> 'ScoreResult':
        return cls(
            score=NEUTRAL_SCORE,
            reasoning=reasoning,
            recommendation=recommendation,
            should_reach='unknown',
            pain_points=[],
            urgency='medium',
        )


def _utc_isoformat():
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QualifyingLeadEvent:
    """Broadcast when an item's score clears the configured threshold."""
    item: Item
    analysis: ScoreResult
    type: str = 'NEW_LEAD'
    analyzed_at: str = field(default_factory=_utc_isoformat)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'data': {
                **self.item.to_dict(),
                'ai_analysis': {**self.analysis.to_dict(), 'analyzed_at': self.analyzed_at},
            },
        }
