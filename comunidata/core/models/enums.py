"""
Fixed vocabularies for citizen reports.

Each enum's value is its display name; ``from_string`` maps the spellings
seen in uploaded files (Spanish and English, with or without accents) to a
member, returning None for anything unrecognized.
"""

from enum import Enum


class _Vocabulary(str, Enum):
    """Enum whose members are looked up through a synonym table."""

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def _synonyms(cls) -> dict[str, "_Vocabulary"]:
        raise NotImplementedError

    @classmethod
    def from_string(cls, value: str | None):
        """
        Case-insensitive lookup of a raw value.

        Args:
            value: Raw text from a CSV cell or a provider response

        Returns:
            Matching member, or None when the value is empty or unknown
        """
        if value is None or not value.strip():
            return None
        return cls._synonyms().get(value.strip().lower())


class ProblemCategory(_Vocabulary):
    HEALTH = "Health"
    EDUCATION = "Education"
    ENVIRONMENT = "Environment"
    SECURITY = "Security"

    @classmethod
    def _synonyms(cls):
        return _CATEGORY_SYNONYMS


class UrgencyLevel(_Vocabulary):
    URGENT = "Urgent"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def _synonyms(cls):
        return _URGENCY_SYNONYMS


class Zone(_Vocabulary):
    RURAL = "Rural"
    URBAN = "Urban"

    @classmethod
    def _synonyms(cls):
        return _ZONE_SYNONYMS

    @classmethod
    def from_rural_flag(cls, is_rural: bool | None) -> "Zone | None":
        if is_rural is None:
            return None
        return cls.RURAL if is_rural else cls.URBAN


class ProcessingStatus(str, Enum):
    """
    Report lifecycle.

    Stages advance in declaration order; ERROR can be entered from any
    non-terminal stage. COMPLETED and ERROR are never left.
    """

    PENDING = "Pending"
    VALIDATING = "Validating"
    VALIDATED = "Validated"
    EMBEDDING = "Embedding"
    COMPLETED = "Completed"
    ERROR = "Error"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.ERROR)

    def can_transition_to(self, target: "ProcessingStatus") -> bool:
        if self.is_terminal:
            return target is self
        if target is ProcessingStatus.ERROR:
            return True
        return target.rank >= self.rank


class BatchState(str, Enum):
    """Overall state of one uploaded batch, derived from its reports."""

    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    COMPLETED_WITH_ERRORS = "CompletedWithErrors"


_STATUS_ORDER = [
    ProcessingStatus.PENDING,
    ProcessingStatus.VALIDATING,
    ProcessingStatus.VALIDATED,
    ProcessingStatus.EMBEDDING,
    ProcessingStatus.COMPLETED,
    ProcessingStatus.ERROR,
]

_CATEGORY_SYNONYMS = {
    "salud": ProblemCategory.HEALTH,
    "health": ProblemCategory.HEALTH,
    "educacion": ProblemCategory.EDUCATION,
    "educación": ProblemCategory.EDUCATION,
    "education": ProblemCategory.EDUCATION,
    "medio ambiente": ProblemCategory.ENVIRONMENT,
    "medioambiente": ProblemCategory.ENVIRONMENT,
    "environment": ProblemCategory.ENVIRONMENT,
    "seguridad": ProblemCategory.SECURITY,
    "security": ProblemCategory.SECURITY,
}

_URGENCY_SYNONYMS = {
    "urgente": UrgencyLevel.URGENT,
    "urgent": UrgencyLevel.URGENT,
    "crítico": UrgencyLevel.URGENT,
    "critico": UrgencyLevel.URGENT,
    "alta": UrgencyLevel.HIGH,
    "high": UrgencyLevel.HIGH,
    "media": UrgencyLevel.MEDIUM,
    "medium": UrgencyLevel.MEDIUM,
    "moderada": UrgencyLevel.MEDIUM,
    "baja": UrgencyLevel.LOW,
    "low": UrgencyLevel.LOW,
}

_ZONE_SYNONYMS = {
    "rural": Zone.RURAL,
    "urbana": Zone.URBAN,
    "urbano": Zone.URBAN,
    "urban": Zone.URBAN,
}
