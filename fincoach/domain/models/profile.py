"""User profile models.

The profile is sparse and filled in incrementally. Merging never erases a
known non-empty field with an absent one: incoming values overwrite only
where they are present.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import Field

from fincoach.domain.models.base import CamelModel

LIFESTYLE_CATEGORIES: List[str] = [
    "housing",
    "food",
    "transport",
    "fitness",
    "entertainment",
    "subscriptions",
    "travel",
]

IncomeFrequency = Literal["annual", "monthly", "biweekly", "weekly", "daily", "hourly"]


class LifestyleEntry(CamelModel):
    """What the client said about one lifestyle category."""

    preference: str = ""
    details: str = ""
    cost: Optional[float] = None

    def is_populated(self) -> bool:
        return bool(self.preference or self.details)

    def is_empty(self) -> bool:
        return not self.is_populated() and self.cost is None

    def merge(self, other: "LifestyleEntry") -> "LifestyleEntry":
        return LifestyleEntry(
            preference=other.preference or self.preference,
            details=other.details or self.details,
            cost=other.cost if other.cost is not None else self.cost,
        )


class LifestyleProfile(CamelModel):
    """The fixed lifestyle taxonomy; every slot always exists."""

    housing: LifestyleEntry = Field(default_factory=LifestyleEntry)
    food: LifestyleEntry = Field(default_factory=LifestyleEntry)
    transport: LifestyleEntry = Field(default_factory=LifestyleEntry)
    fitness: LifestyleEntry = Field(default_factory=LifestyleEntry)
    entertainment: LifestyleEntry = Field(default_factory=LifestyleEntry)
    subscriptions: LifestyleEntry = Field(default_factory=LifestyleEntry)
    travel: LifestyleEntry = Field(default_factory=LifestyleEntry)

    def entry(self, category: str) -> LifestyleEntry:
        return getattr(self, category)

    def populated_categories(self) -> List[str]:
        return [c for c in LIFESTYLE_CATEGORIES if self.entry(c).is_populated()]

    def merge(self, other: "LifestyleProfile") -> "LifestyleProfile":
        merged = {}
        for category in LIFESTYLE_CATEGORIES:
            merged[category] = self.entry(category).merge(other.entry(category))
        return LifestyleProfile(**merged)


class IncomeInfo(CamelModel):
    amount: Optional[float] = None
    frequency: Optional[IncomeFrequency] = None


class UserProfile(CamelModel):
    """Client profile inferred from conversation and explicit updates."""

    name: Optional[str] = None
    age: Optional[int] = None
    location: Optional[str] = None
    occupation: Optional[str] = None
    income: Optional[IncomeInfo] = None
    lifestyle: LifestyleProfile = Field(default_factory=LifestyleProfile)

    def merge(self, updates: Union["UserProfile", Dict[str, Any]]) -> "UserProfile":
        """
        Shallow-merge a partial update into a new profile.

        Fields present and non-null in ``updates`` overwrite; absent fields
        keep their current value. Lifestyle slots merge per category so an
        empty incoming slot never clears a known one.

        Args:
            updates: Partial profile (model or dict in either naming style)

        Returns:
            A new UserProfile; self is not modified
        """
        if not isinstance(updates, UserProfile):
            updates = UserProfile.model_validate(updates)

        incoming = updates.model_dump(
            exclude_unset=True, exclude_none=True, exclude={"lifestyle"}
        )
        data = self.model_dump(exclude={"lifestyle"})
        data.update(incoming)

        merged = UserProfile(**data)
        merged.lifestyle = self.lifestyle.merge(updates.lifestyle)
        return merged
