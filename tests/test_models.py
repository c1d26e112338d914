"""Test Pydantic models."""
import pytest
from extraction.models import (
    AnalysisResult,
    CharacterDetail,
    CharacterRole,
    CharacterSummary,
    PipelinePolicy,
    WorldInfo,
)


def test_character_summary_from_wire_json():
    """Test creating a roster entry from camelCase model output."""
    summary = CharacterSummary.model_validate(
        {"name": "John Doe", "role": "Love Interest", "briefDescription": "A detective"}
    )

    assert summary.name == "John Doe"
    assert summary.role == CharacterRole.LOVE_INTEREST
    assert summary.brief_description == "A detective"


@pytest.mark.parametrize("raw,expected", [
    ("main-character", CharacterRole.MAIN_CHARACTER),
    ("ANTAGONIST", CharacterRole.ANTAGONIST),
    (" mentor ", CharacterRole.MENTOR),
    ("comic relief", CharacterRole.SUPPORTING),
    (None, CharacterRole.SUPPORTING),
])
def test_role_normalization(raw, expected):
    assert CharacterRole.normalize(raw) == expected


def test_character_detail_defaults():
    """Test that a sparse profile is filled with safe empty defaults."""
    detail = CharacterDetail.model_validate({"name": "Jane", "background": None, "tags": None})

    assert detail.background == ""
    assert detail.common_phrases == []
    assert detail.first_messages == []
    assert detail.tags == []
    assert detail.can_be_persona is False
    assert detail.role == CharacterRole.SUPPORTING


def test_character_detail_coercion():
    detail = CharacterDetail.model_validate({
        "name": "Jane",
        "commonPhrases": "Just one phrase",
        "canBePersona": "true",
        "personality": ["Brave", "Kind"],
    })

    assert detail.common_phrases == ["Just one phrase"]
    assert detail.can_be_persona is True
    assert detail.personality == "Brave\nKind"


def test_world_info_keeps_keywords_and_drops_nameless_entries():
    """Test world info model."""
    world = WorldInfo.model_validate({
        "setting": "Noir city",
        "locations": [
            {"name": "Detective's Office", "description": "Cluttered", "keywords": ["Office", "HQ", "the desk"]},
            {"description": "no name"},
            "not an entry",
        ],
        "factions": None,
    })

    assert [loc.name for loc in world.locations] == ["Detective's Office"]
    assert world.locations[0].keywords == ["Office", "HQ", "the desk"]
    assert world.factions == []
    assert world.entry_count == 1


def test_analysis_result_serializes_camel_case():
    """Test creating a complete result."""
    result = AnalysisResult(
        book_title="Test Novel",
        characters=[CharacterDetail(name="John", role="protagonist", can_be_persona=True)],
        world_info=WorldInfo(setting="Modern day"),
    )

    data = result.model_dump(mode="json", by_alias=True)
    assert data["bookTitle"] == "Test Novel"
    assert data["worldInfo"]["setting"] == "Modern day"
    assert data["characters"][0]["canBePersona"] is True
    assert data["characters"][0]["role"] == "protagonist"
    assert "physicalDescription" in data["characters"][0]


def test_policy_is_frozen():
    policy = PipelinePolicy(max_retries=2, max_continuations=1, max_reduction_passes=3)
    with pytest.raises(Exception):
        policy.max_retries = 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
