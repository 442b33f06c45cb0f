"""
Canonical enums for the Compliance Posture engine.

Stored values are the enum ``value`` strings; the database models mirror these
sets in ``db/models.py``.
"""

from enum import Enum


class ImplementationStatus(str, Enum):
    """Implementation status of a control within an organization."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    EXEMPT = "exempt"


class RiskTier(str, Enum):
    """Vendor risk tier derived from the questionnaire score."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RiskLevel(str, Enum):
    """Qualitative level of a register risk (impact x likelihood)."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RiskStatus(str, Enum):
    """Lifecycle status of a register risk."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    MITIGATED = "Mitigated"
    CLOSED = "Closed"
    ACCEPTED = "Accepted"


class YesNo(str, Enum):
    YES = "yes"
    NO = "no"


class Presence(str, Enum):
    """Whether a piece of supporting material was supplied."""

    PROVIDED = "provided"
    ABSENT = "absent"


class Disclosure(str, Enum):
    """Willingness to share financial statements."""

    YES = "yes"
    NO = "no"
    UPON_REQUEST = "upon_request"


class AgreementWillingness(str, Enum):
    """Willingness to sign the standard vendor agreement."""

    YES = "yes"
    NO = "no"
    WITH_MODIFICATIONS = "with_modifications"


class SuggestionStatus(str, Enum):
    """Outcome of a policy-to-control suggestion request."""

    OK = "ok"
    NO_EMBEDDING = "no_embedding"


class ActorKind(str, Enum):
    """Types of actors recorded in the audit log."""

    HUMAN = "human"
    AGENT = "agent"
    SYSTEM = "system"
