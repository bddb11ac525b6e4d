"""Database models."""
from teamy.models.base import Base, init_db
from teamy.models.user import User
from teamy.models.team import Subteam, Team
from teamy.models.membership import Membership
from teamy.models.event import ConflictGroup, ConflictGroupEvent, Event
from teamy.models.roster import RosterAssignment
from teamy.models.tournament import (
    Tournament,
    TournamentAdmin,
    TournamentEventSelection,
    TournamentHostingRequest,
    TournamentRegistration,
)
from teamy.models.logs import ActivityLog, ApiLog, ErrorLog
from teamy.models.assessment import (  # noqa: F401 - for metadata
    AttemptAnswer,
    Question,
    QuestionOption,
    Test,
    TestAssignment,
    TestAttempt,
)

__all__ = [
    "Base",
    "User",
    "Team",
    "Subteam",
    "Membership",
    "Event",
    "ConflictGroup",
    "ConflictGroupEvent",
    "RosterAssignment",
    "Tournament",
    "TournamentAdmin",
    "TournamentRegistration",
    "TournamentEventSelection",
    "TournamentHostingRequest",
    "ActivityLog",
    "ApiLog",
    "ErrorLog",
    "Test",
    "TestAssignment",
    "Question",
    "QuestionOption",
    "TestAttempt",
    "AttemptAnswer",
    "init_db",
]
