"""Data models for GEDCOM import, duplicate review and export."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Gender = Literal["male", "female", "other", "unknown"]
MergeDecision = Literal["skip", "merge", "create"]


class CamelModel(BaseModel):
    """Base for import-side records, exchanged with the frontend in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Parse Results
# ============================================================================

class ParsedIndividual(CamelModel):
    """One INDI record read from a GEDCOM file."""
    id: str = Field(description="GEDCOM pointer without the @ delimiters, e.g. 'I1'.")
    first_name: str = ""
    last_name: str = ""
    maiden_name: str | None = None
    gender: Gender = "unknown"
    birth_date: str | None = Field(default=None, description="ISO date (YYYY-MM-DD).")
    birth_place: str | None = None
    death_date: str | None = Field(default=None, description="ISO date (YYYY-MM-DD).")
    death_place: str | None = None
    occupation: str | None = None
    notes: str | None = None


class ParsedFamily(CamelModel):
    """One FAM record read from a GEDCOM file."""
    id: str
    husband_id: str | None = None
    wife_id: str | None = None
    children_ids: list[str] = Field(default_factory=list)
    marriage_date: str | None = None
    marriage_place: str | None = None
    divorce_date: str | None = None


class ParseResult(CamelModel):
    individuals: list[ParsedIndividual] = Field(default_factory=list)
    families: list[ParsedFamily] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ============================================================================
# Existing Tree Records (rows from the family tree tables)
# ============================================================================

class ExistingPerson(BaseModel):
    """A person already stored in the user's tree."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    first_names: str | None = None
    last_name: str | None = None
    maiden_name: str | None = None
    gender: str | None = None
    birth_date: str | None = None
    birth_place: str | None = None


class FamilyTree(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str = ""


class FamilyPerson(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    first_names: str = ""
    last_name: str = ""
    maiden_name: str | None = None
    gender: Gender | None = None
    birth_date: str | None = None
    birth_place: str | None = None
    death_date: str | None = None
    death_place: str | None = None
    burial_date: str | None = None
    burial_place: str | None = None
    is_alive: bool = True
    occupation: str | None = None
    nationality: str | None = None
    biography: str | None = None


class ParentChildRelationship(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    parent_id: str
    child_id: str
    union_id: str | None = None


class FamilyUnion(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    person1_id: str
    person2_id: str
    start_date: str | None = None
    start_place: str | None = None
    end_date: str | None = None


class TreeExport(BaseModel):
    """Everything needed to write a tree out as GEDCOM."""
    tree: FamilyTree
    persons: list[FamilyPerson] = Field(default_factory=list)
    relationships: list[ParentChildRelationship] = Field(default_factory=list)
    unions: list[FamilyUnion] = Field(default_factory=list)


# ============================================================================
# Duplicate Review
# ============================================================================

class DuplicateMatch(CamelModel):
    imported_person: ParsedIndividual
    existing_person: ExistingPerson
    confidence: int = Field(ge=0, le=100)
    match_reasons: list[str] = Field(default_factory=list)


class DuplicateCheckResult(CamelModel):
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    unique_persons: list[ParsedIndividual] = Field(default_factory=list)


class DuplicateResolution(CamelModel):
    """The user's decision for one flagged duplicate."""
    imported_id: str
    existing_id: str | None = None
    decision: MergeDecision


class ImportPlan(CamelModel):
    """What the persistence layer should commit once duplicates are resolved."""
    individuals: list[ParsedIndividual] = Field(default_factory=list)
    families: list[ParsedFamily] = Field(default_factory=list)
    skipped: dict[str, str | None] = Field(
        default_factory=dict,
        description="Imported id -> existing person id for every skipped duplicate.",
    )
