"""
RawCsvRow model representing one data line exactly as read (ephemeral).
"""

from pydantic import BaseModel


class RawCsvRow(BaseModel):
    """
    Positional string fields of one uploaded row.

    Column order: ID, name, age, gender, city, comment, category, urgency,
    date, internet access, government attention, rural zone. Name, gender and
    internet access are read but never carried into a report.
    """

    id: str | None = None
    name: str | None = None
    age: str | None = None
    gender: str | None = None
    city: str | None = None
    comment: str | None = None
    category: str | None = None
    urgency: str | None = None
    report_date: str | None = None
    internet_access: str | None = None
    government_attention: str | None = None
    rural_zone: str | None = None

    @classmethod
    def from_fields(cls, fields: list[str]) -> "RawCsvRow":
        """Build a row from split cells; missing trailing cells become None."""
        names = list(cls.model_fields)
        return cls(**{name: fields[i] if i < len(fields) else None for i, name in enumerate(names)})
