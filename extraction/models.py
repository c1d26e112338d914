"""Pydantic models for book cast extraction."""
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional

import config


class WireModel(BaseModel):
    """Base model speaking the camelCase JSON the LLM and formatters use."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CharacterRole(str, Enum):
    MAIN_CHARACTER = "main_character"
    PROTAGONIST = "protagonist"
    LOVE_INTEREST = "love_interest"
    ANTAGONIST = "antagonist"
    SUPPORTING = "supporting"
    MENTOR = "mentor"
    RIVAL = "rival"

    @classmethod
    def normalize(cls, value: Any) -> "CharacterRole":
        """Map loose role text ("Love Interest", "main-character") onto the enum.

        Unknown roles fall back to SUPPORTING.
        """
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return cls.SUPPORTING


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(_as_text(v) for v in value)
    return str(value)


def _as_text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [_as_text(v) for v in value if v is not None]
    return [_as_text(value)]


def _as_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    if isinstance(value, (int, float)):
        return bool(value)
    return False


class PipelinePolicy(BaseModel):
    """Retry, continuation and reduction bounds shared by every phase."""
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=config.MAX_RETRIES, ge=1)
    max_continuations: int = Field(default=config.MAX_CONTINUATIONS, ge=0)
    max_reduction_passes: int = Field(default=config.MAX_REDUCTION_PASSES, ge=0)


class CharacterSummary(WireModel):
    """Roster entry produced by the extraction phase."""
    model_config = ConfigDict(frozen=True)

    name: str
    role: CharacterRole
    brief_description: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, v):
        return CharacterRole.normalize(v)

    @field_validator("brief_description", mode="before")
    @classmethod
    def _text(cls, v):
        return _as_text(v)


class WorldEntry(WireModel):
    """One lorebook entry: a location, faction, item or concept."""
    name: str
    description: str = ""
    keywords: List[str] = Field(default_factory=list)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _text(cls, v):
        return _as_text(v)

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords(cls, v):
        return _as_text_list(v)


def _entries(value: Any) -> List[Any]:
    """Keep well-formed entries only; entries without a name are dropped."""
    if not isinstance(value, list):
        return []
    kept = []
    for entry in value:
        if isinstance(entry, WorldEntry):
            kept.append(entry)
        elif isinstance(entry, dict) and _as_text(entry.get("name")).strip():
            kept.append(entry)
    return kept


class WorldInfo(WireModel):
    """Setting description plus structured lore."""
    setting: str = ""
    locations: List[WorldEntry] = Field(default_factory=list)
    factions: List[WorldEntry] = Field(default_factory=list)
    items: List[WorldEntry] = Field(default_factory=list)
    concepts: List[WorldEntry] = Field(default_factory=list)

    @field_validator("setting", mode="before")
    @classmethod
    def _setting(cls, v):
        return _as_text(v)

    @field_validator("locations", "factions", "items", "concepts", mode="before")
    @classmethod
    def _entry_list(cls, v):
        return _entries(v)

    @property
    def entry_count(self) -> int:
        return len(self.locations) + len(self.factions) + len(self.items) + len(self.concepts)


class Roster(WireModel):
    """Validated extraction phase output."""
    book_title: str
    characters: List[CharacterSummary]
    world_info: WorldInfo = Field(default_factory=WorldInfo)


class CharacterDetail(WireModel):
    """Full profile for one character."""
    name: str
    role: CharacterRole = CharacterRole.SUPPORTING
    background: str = ""
    physical_description: str = ""
    personality: str = ""
    common_phrases: List[str] = Field(default_factory=list)
    scenario: str = ""
    first_messages: List[str] = Field(default_factory=list)
    example_dialogue: str = ""
    tags: List[str] = Field(default_factory=list)
    can_be_persona: bool = False

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, v):
        return CharacterRole.normalize(v)

    @field_validator(
        "background", "physical_description", "personality", "scenario", "example_dialogue",
        mode="before"
    )
    @classmethod
    def _text(cls, v):
        return _as_text(v)

    @field_validator("common_phrases", "first_messages", "tags", mode="before")
    @classmethod
    def _text_list(cls, v):
        return _as_text_list(v)

    @field_validator("can_be_persona", mode="before")
    @classmethod
    def _flag(cls, v):
        return _as_flag(v)


class AnalysisResult(WireModel):
    """Final pipeline output handed to card and lorebook formatters."""
    book_title: str
    characters: List[CharacterDetail]
    world_info: WorldInfo = Field(default_factory=WorldInfo)
    model: Optional[str] = None
