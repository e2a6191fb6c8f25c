from dreamcatcher.models.user import User
from dreamcatcher.models.user_subscription import UserSubscription
from dreamcatcher.models.usage_counter import UsageCounter
from dreamcatcher.models.dream import Dream
from dreamcatcher.models.analysis import Analysis
from dreamcatcher.models.mood import MoodEntry

__all__ = [
    "User",
    "UserSubscription",
    "UsageCounter",
    "Dream",
    "Analysis",
    "MoodEntry",
]
