"""
Lead scoring — asks an OpenAI chat model how good a Reddit post is as a sales
lead for an AI mock-interview product.

Scoring never raises. With no API key the client runs in a disabled mode that
returns a neutral verdict; any failure while enabled is folded into a neutral
verdict whose reasoning carries the error.
"""
import json
import logging
import re
import time
from typing import Callable, List, Optional, Tuple

from leadmonitor.config import OPENAI_MODEL, SCORING_MIN_INTERVAL
from leadmonitor.errors import ScoringDegraded
from leadmonitor.models.types import (
    Item, ScoreResult, NEUTRAL_SCORE, REACH_VALUES, URGENCY_VALUES,
)

logger = logging.getLogger('services.scorer')

MAX_BODY_CHARS = 2000
TRUNCATION_MARKER = '...[truncated]'

_FENCE_RE = re.compile(r'```(?:json)?\s*\n?', re.IGNORECASE)

PROMPT_TEMPLATE = """You are an expert sales analyst for an AI Interview Preparation SaaS product that helps people practice mock interviews with AI.

Analyze this Reddit post and determine if the poster is a good lead to pitch our AI Interview Prep tool to:

**Post Title:** {title}

**Post Content:** {content}

**Subreddit:** r/{subreddit}

**Author:** u/{author}

**Engagement:** {score} upvotes, {num_comments} comments

Provide a JSON response with:
1. "score" (0-100): How good of a lead is this?
   - 90-100: Excellent lead (explicitly asking for interview prep help)
   - 70-89: Good lead (interview-related, likely to be interested)
   - 50-69: Moderate lead (tangentially related)
   - 0-49: Poor lead (not relevant)

2. "reasoning" (1-2 sentences): Why this score?

3. "recommendation" (1-2 sentences): How should you pitch to this person?

4. "shouldReach" ("yes" | "maybe" | "no"): Should you reach out?

5. "painPoints" (array): What specific pain points did they mention?

6. "urgency" ("high" | "medium" | "low"): How urgent is their need?

Respond ONLY with valid JSON, no other text."""


def sanitize_item(item: Item) -> dict:
    """Project an Item down to what the model needs, body capped at 2000 chars."""
    body = item.selftext or ''
    if len(body) > MAX_BODY_CHARS:
        body = body[:MAX_BODY_CHARS] + TRUNCATION_MARKER
    return {
        'id': item.id,
        'title': item.title,
        'content': body,
        'subreddit': item.subreddit,
        'author': item.author,
        'score': item.score,
        'num_comments': item.num_comments,
    }


def build_prompt(item: Item) -> str:
    clean = sanitize_item(item)
    return PROMPT_TEMPLATE.format(
        title=clean['title'],
        content=clean['content'] or 'No content, just title',
        subreddit=clean['subreddit'],
        author=clean['author'],
        score=clean['score'],
        num_comments=clean['num_comments'],
    )


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub('', text or '').replace('```', '').strip()


def _coerce_score(value) -> int:
    if value is None or isinstance(value, bool):
        return NEUTRAL_SCORE
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    return max(0, min(100, score))


def parse_score_payload(text: str) -> ScoreResult:
    """
    Turn raw model text into a validated ScoreResult.

    Raises ScoringDegraded when the text is not a JSON object.
    """
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise ScoringDegraded(f"unparsable model response: {e}") from e
    if not isinstance(data, dict):
        raise ScoringDegraded("model response is not a JSON object")

    reach = str(data.get('shouldReach') or data.get('should_reach') or 'maybe').lower()
    if reach not in REACH_VALUES:
        reach = 'maybe'

    urgency = str(data.get('urgency') or 'medium').lower()
    if urgency not in URGENCY_VALUES:
        urgency = 'medium'

    pain_points = data.get('painPoints', data.get('pain_points')) or []
    if isinstance(pain_points, str):
        pain_points = [pain_points]
    elif not isinstance(pain_points, list):
        pain_points = []

    return ScoreResult(
        score=_coerce_score(data.get('score')),
        reasoning=str(data.get('reasoning') or ''),
        recommendation=str(data.get('recommendation') or ''),
        should_reach=reach,
        pain_points=[str(p) for p in pain_points if p not in (None, '')],
        urgency=urgency,
    )


class ScoringClient:
    """
    Wraps the chat completion call with inter-call spacing and soft failure.

    `min_interval` is enforced between the start of consecutive calls, so the
    client stays under the model's per-minute ceiling no matter who calls it.
    """

    def __init__(self, client=None, model=OPENAI_MODEL, breaker=None,
                 min_interval=SCORING_MIN_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.model = model
        self.breaker = breaker
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._last_call_at: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _throttle(self):
        if self._last_call_at is not None:
            wait = self.min_interval - (self._clock() - self._last_call_at)
            if wait > 0:
                self._sleep(wait)
        self._last_call_at = self._clock()

    def _complete(self, prompt: str) -> str:
        kwargs = dict(
            model=self.model,
            messages=[{'role': 'user', 'content': prompt}],
            response_format={'type': 'json_object'},
            temperature=0.2,
        )
        create = self.client.chat.completions.create
        if self.breaker is not None:
            response = self.breaker.call(create, **kwargs)
        else:
            response = create(**kwargs)
        return response.choices[0].message.content or ''

    def score(self, item: Item) -> ScoreResult:
        if not self.enabled:
            return ScoreResult.neutral(
                'AI analysis disabled - add OPENAI_API_KEY to the environment',
                recommendation='Configure the OpenAI API key for AI-powered lead scoring',
            )

        self._throttle()
        try:
            result = parse_score_payload(self._complete(build_prompt(item)))
        except Exception as e:
            logger.error("Scoring failed for post %s: %s", item.id, e)
            return ScoreResult.neutral(f'Analysis failed: {e}')

        logger.debug("Post %s scored %d (%s)", item.id, result.score, result.should_reach)
        return result

    def score_batch(self, items: List[Item],
                    on_progress: Optional[Callable[[int, int], None]] = None) -> List[Tuple[Item, ScoreResult]]:
        """Score items one at a time (never in parallel), best score first."""
        if not self.enabled:
            logger.info("AI analysis disabled - returning neutral scores for %d posts", len(items))

        scored = []
        for i, item in enumerate(items, 1):
            scored.append((item, self.score(item)))
            if on_progress:
                on_progress(i, len(items))

        return sorted(scored, key=lambda pair: pair[1].score, reverse=True)
