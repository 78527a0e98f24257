# island_tracker/models/__init__.py
from island_tracker.models.users import User
from island_tracker.models.challenge import ChallengeRow, ChallengeDayRow
