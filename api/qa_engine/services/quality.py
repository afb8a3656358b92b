"""Answer Quality Score (AQS) calculator.

Pure scoring over an answer's signal snapshot. No database access happens here:
the recompute dispatcher (services.recompute) loads the signals and persists
the result, so every rule below can be tested with plain table-driven cases.

Scoring rules (default weights, all tunable via AQSWeights / settings.aqs):
- Every answer starts from a small baseline so that "new" is distinguishable
  from "bad" (a fresh answer never scores 0).
- Body length adds a content bonus. Very short bodies get no bonus and the
  final score is capped one point below the PRO threshold (quality floor).
- Body structure adds small bonuses: bullets, paragraphs, a worked example,
  step-by-step instructions and vocabulary of the question's category. A
  short answer made of generic phrases is penalised.
- Only the question asker's reaction is scoring input: helpful adds, expert
  adds more, not_helpful subtracts. Community reactions of any type are
  display and expertise input only, so piling on votes never moves the score.
- Acceptance is the single largest positive weight.
- An author whose other answers are often accepted gets a track-record bonus,
  once they have enough other answers for the rate to mean something.
- Each active flag subtracts; SPAM and ABUSE are penalised harder than
  MISLEADING, LOW_QUALITY and OTHER.

The maximum reachable positive total is exactly 100 with default weights, so a
flag removal on a top answer is never hidden by the final clamp.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict

from qa_engine.services.signals import AuthorSignals, ContentSignals


class QualityLabel(str, enum.Enum):
    STAR = "STAR"
    PRO = "PRO"
    USEFUL = "USEFUL"
    NORMAL = "NORMAL"


# Flag reasons that count as severe abuse rather than a quality complaint.
SEVERE_FLAG_REASONS = frozenset({"SPAM", "ABUSE"})


class AQSWeights(BaseModel):
    """Tunable AQS constants.

    Loaded from settings.aqs; override individual values with environment
    variables such as AQS__ACCEPTED=40.
    """

    model_config = ConfigDict(frozen=True)

    baseline: int = 15

    short_body_chars: int = 150
    medium_body_chars: int = 400
    long_body_chars: int = 1200
    medium_body_bonus: int = 5
    optimal_body_bonus: int = 10
    long_body_bonus: int = 8

    bullets_bonus: int = 2
    paragraphs_bonus: int = 2
    example_bonus: int = 3
    steps_bonus: int = 3
    domain_bonus: int = 3
    generic_penalty: int = -10

    asker_helpful: int = 8
    asker_expert: int = 15
    asker_not_helpful: int = -10

    accepted: int = 35

    author_min_answers: int = 3
    author_high_rate: float = 0.5
    author_high_bonus: int = 10
    author_medium_rate: float = 0.25
    author_medium_bonus: int = 5

    severe_flag: int = -25
    minor_flag: int = -10

    fast_response_minutes: int = 120
    fast_response_bonus: int = 2

    edit_threshold: int = 2
    edit_penalty: int = -5

    pro_threshold: int = 70
    useful_threshold: int = 40


DEFAULT_WEIGHTS = AQSWeights()


@dataclass(frozen=True)
class AnswerSignals:
    """Snapshot of everything the calculator looks at for one answer.

    helpful_count and expert_badge_count are carried for display; they are not
    scoring input.
    """

    body_length: int
    is_accepted: bool = False
    asker_reaction: Optional[str] = None
    helpful_count: int = 0
    expert_badge_count: int = 0
    flag_reasons: tuple[str, ...] = ()
    edit_count: int = 0
    response_minutes: Optional[float] = None
    content: ContentSignals = ContentSignals()
    author: AuthorSignals = AuthorSignals()


@dataclass(frozen=True)
class AQSResult:
    aqs: int
    label: QualityLabel
    breakdown: dict[str, int] = field(default_factory=dict)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def is_short_body(body_length: int, weights: AQSWeights = DEFAULT_WEIGHTS) -> bool:
    return body_length < weights.short_body_chars


def length_bonus(body_length: int, weights: AQSWeights = DEFAULT_WEIGHTS) -> int:
    """Content bonus for the answer body length."""
    if body_length < weights.short_body_chars:
        return 0
    if body_length < weights.medium_body_chars:
        return weights.medium_body_bonus
    if body_length < weights.long_body_chars:
        return weights.optimal_body_bonus
    return weights.long_body_bonus


def structure_bonus(content: ContentSignals, weights: AQSWeights = DEFAULT_WEIGHTS) -> int:
    bonus = 0
    if content.has_bullets:
        bonus += weights.bullets_bonus
    if content.has_paragraphs:
        bonus += weights.paragraphs_bonus
    return bonus


def asker_reaction_bonus(asker_reaction: Optional[str], weights: AQSWeights = DEFAULT_WEIGHTS) -> int:
    return {
        "helpful": weights.asker_helpful,
        "expert": weights.asker_expert,
        "not_helpful": weights.asker_not_helpful,
    }.get(asker_reaction, 0)


def author_bonus(author: AuthorSignals, weights: AQSWeights = DEFAULT_WEIGHTS) -> int:
    """Track-record bonus from the acceptance rate of the author's other answers."""
    if author.other_answers < weights.author_min_answers:
        return 0
    if author.acceptance_rate >= weights.author_high_rate:
        return weights.author_high_bonus
    if author.acceptance_rate >= weights.author_medium_rate:
        return weights.author_medium_bonus
    return 0


def flag_penalty(flag_reasons: tuple[str, ...], weights: AQSWeights = DEFAULT_WEIGHTS) -> int:
    """Sum of per-flag penalties (always <= 0)."""
    penalty = 0
    for reason in flag_reasons:
        if reason in SEVERE_FLAG_REASONS:
            penalty += weights.severe_flag
        else:
            penalty += weights.minor_flag
    return penalty


def get_quality_label(
    aqs: int,
    *,
    is_accepted: bool = False,
    active_flags: int = 0,
    short_body: bool = False,
    weights: AQSWeights = DEFAULT_WEIGHTS,
) -> QualityLabel:
    """Map a score plus acceptance state to a quality label.

    STAR is reserved for accepted, unflagged, substantive answers; it does not
    depend on reaction volume. The other labels are plain score thresholds.
    """
    if is_accepted and active_flags == 0 and not short_body and aqs >= weights.useful_threshold:
        return QualityLabel.STAR
    if aqs >= weights.pro_threshold:
        return QualityLabel.PRO
    if aqs >= weights.useful_threshold:
        return QualityLabel.USEFUL
    return QualityLabel.NORMAL


def compute_aqs(signals: AnswerSignals, weights: AQSWeights = DEFAULT_WEIGHTS) -> AQSResult:
    """Compute the Answer Quality Score and label for one signal snapshot.

    Args:
        signals: The answer's current signals (see AnswerSignals).
        weights: Scoring constants; defaults to DEFAULT_WEIGHTS.

    Returns:
        AQSResult with an integer aqs in [0, 100], the label, and a per-rule
        breakdown stored alongside the metric for the admin debug view.
    """
    content = signals.content
    breakdown = {
        "baseline": weights.baseline,
        "length": length_bonus(signals.body_length, weights),
        "structure": structure_bonus(content, weights),
        "example": weights.example_bonus if content.has_example else 0,
        "steps": weights.steps_bonus if content.has_steps else 0,
        "domain": weights.domain_bonus if content.has_domain_keywords else 0,
        "generic": weights.generic_penalty if content.is_generic else 0,
        "asker_reaction": asker_reaction_bonus(signals.asker_reaction, weights),
        "accepted": weights.accepted if signals.is_accepted else 0,
        "author_acceptance": author_bonus(signals.author, weights),
        "flags": flag_penalty(signals.flag_reasons, weights),
        "response_time": 0,
        "edits": 0,
    }

    if (
        signals.response_minutes is not None
        and signals.response_minutes <= weights.fast_response_minutes
    ):
        breakdown["response_time"] = weights.fast_response_bonus

    if signals.edit_count > weights.edit_threshold:
        breakdown["edits"] = weights.edit_penalty

    aqs = clamp(sum(breakdown.values()), 0, 100)

    short_body = is_short_body(signals.body_length, weights)
    if short_body:
        # Quality floor: short bodies never reach PRO, whatever the reactions.
        aqs = min(aqs, weights.pro_threshold - 1)

    label = get_quality_label(
        aqs,
        is_accepted=signals.is_accepted,
        active_flags=len(signals.flag_reasons),
        short_body=short_body,
        weights=weights,
    )
    return AQSResult(aqs=aqs, label=label, breakdown=breakdown)
