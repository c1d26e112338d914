"""LLM prompt templates for book cast extraction."""
import json
from typing import List

from extraction.models import CharacterSummary, CharacterRole

ROLE_CHOICES = "|".join(role.value for role in CharacterRole)


def summarize_chunk_prompt(text: str) -> str:
    """Prompt for condensing one excerpt during reduction."""
    return f"""Summarize this excerpt from a book, focusing on characters, plot events, world-building details, and key information:

{text}"""


def roster_prompt(text: str) -> str:
    """Generate prompt for the character roster and world information.

    Args:
        text: Book text or its reduced summary

    Returns:
        Formatted prompt string
    """
    return f"""Analyze this book text and identify its main characters and world.

CRITICAL: Return ONLY valid JSON. No markdown, no explanations, no code blocks. Just raw JSON starting with {{ and ending with }}.
Ensure all quotes inside strings are properly escaped with backslashes.

Book Text:
{text}

Return a JSON object with this structure:
{{
  "bookTitle": "Title of the book",
  "characters": [
    {{
      "name": "Character Name",
      "role": "{ROLE_CHOICES}",
      "briefDescription": "One sentence on who they are in the story"
    }}
  ],
  "worldInfo": {{
    "setting": "Detailed world/universe description (2-3 paragraphs covering geography, society, rules, tone)",
    "locations": [{{"name": "Location Name", "description": "Detailed description of this place, its significance, and what happens there", "keywords": ["alias", "nickname", "related terms that should trigger this entry"]}}],
    "factions": [{{"name": "Faction Name", "description": "Who they are, their goals, structure, and role in the story", "keywords": ["alias", "abbreviation", "leader name", "related terms"]}}],
    "items": [{{"name": "Item Name", "description": "What it is, its properties, significance, and who uses it", "keywords": ["alias", "nickname", "related terms"]}}],
    "concepts": [{{"name": "Concept Name", "description": "Explanation of this magic system, technology, social concept, etc.", "keywords": ["alias", "related terms", "slang used in-universe"]}}]
  }}
}}

Instructions:
- List 3-10 main characters, most important first
- For worldInfo entries: include 3-6 keywords per entry (aliases, nicknames, abbreviations, related terms that should trigger the entry in a chatbot lorebook)
- Write worldInfo descriptions as detailed context an AI would need to roleplay accurately in this setting
- Return ONLY JSON, no other text"""


def character_detail_prompt(
    character: CharacterSummary,
    roster: List[CharacterSummary],
    text: str
) -> str:
    """Generate prompt for one character's full profile.

    Args:
        character: Roster entry to expand
        roster: Whole roster, for relationship context
        text: Book text or its reduced summary

    Returns:
        Formatted prompt string
    """
    others = "\n".join(
        f"- {c.name} ({c.role.value}): {c.brief_description}"
        for c in roster if c.name != character.name
    ) or "- (none)"

    return f"""Write a detailed character profile for {character.name} from the book below.

{character.name} is a {character.role.value}: {character.brief_description}

Other characters in the story:
{others}

CRITICAL: Return ONLY valid JSON. No markdown, no explanations, no code blocks. Just raw JSON starting with {{ and ending with }}.
Ensure all quotes inside strings are properly escaped with backslashes.

Book Text:
{text}

Return a JSON object with this structure:
{{
  "name": {json.dumps(character.name)},
  "role": "{character.role.value}",
  "background": "1-2 paragraph background covering history, relationships, what shaped them",
  "physicalDescription": "1 paragraph: height, build, age, hair, eyes, distinctive features, clothing",
  "personality": "1-2 paragraphs: core traits, quirks, motivations, values, strengths, weaknesses",
  "commonPhrases": ["3-5 distinctive phrases or expressions they use"],
  "scenario": "Describe the scenario of when this character first meets {{{{user}}}} (1 paragraph). Set the scene with key details: setting, circumstances, mood, what brings them together.",
  "firstMessages": [
    "First message option 1 - Opening message when meeting {{{{user}}}}. 1-3 paragraphs with backstory, scene-setting and their greeting or first action.",
    "First message option 2 - Different opening showing another personality aspect.",
    "First message option 3 - Another variation (emotional, action-packed, humorous, or intimate)."
  ],
  "exampleDialogue": "4-6 short exchanges. Use {{{{user}}}} for other person. Use quotes for speech, asterisks for actions",
  "tags": ["5-15 tags: gender, genre, personality, role"],
  "canBePersona": true
}}

Instructions:
- Aim for ~3000 tokens
- Replace interaction partner names with {{{{user}}}} in scenario, messages and dialogue
- Use quotes for dialogue, asterisks for actions in messages
- Set canBePersona to true only for main characters a reader could play as
- Return ONLY JSON, no other text"""


def continuation_prompt(original_prompt: str, partial_reply: str) -> str:
    """Ask the model to resume a reply that was cut off."""
    return f"""{original_prompt}

---

Your previous reply was cut off by the output limit. Here it is exactly as received:

{partial_reply}

Continue EXACTLY where the reply stops. Output only the missing remainder, starting with the next character. Do not repeat anything already written, do not restart the JSON, and do not add commentary."""
