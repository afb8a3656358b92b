from .base import Base
from .answer import Answer
from .badge import Badge, BadgeCategory, BadgeSource, UserBadge
from .expertise import UserDomainExpertise, UserExpertiseStats
from .flag import AnswerFlag, FlagReason
from .quality import AnswerQualityMetric
from .question import Question
from .reaction import AnswerReaction, ReactionType
from .user import User

__all__ = [
    "Base",
    "Answer",
    "AnswerFlag",
    "AnswerQualityMetric",
    "AnswerReaction",
    "Badge",
    "BadgeCategory",
    "BadgeSource",
    "FlagReason",
    "Question",
    "ReactionType",
    "User",
    "UserBadge",
    "UserDomainExpertise",
    "UserExpertiseStats",
]
