"""Practice drill generation: fill-in-the-blank exercises for new vocabulary.

The generator is an optional collaborator of the session planner. It may fail
or be slow; the planner treats any failure as "no practice items".
"""

from __future__ import annotations

import json
import logging
import unicodedata
from dataclasses import asdict, dataclass, field
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from backend.config import settings
from backend.llm_client import LLMClient, get_llm_client
from backend.srs.errors import DrillGenerationError

logger = logging.getLogger(__name__)

DRILL_SYSTEM_PROMPT = """\
You are an English vocabulary exercise generator for Chinese-speaking learners. \
Create fill-in-the-blank exercises that test active recall of practical vocabulary.

Rules:
- Write one natural English sentence per exercise with the target word replaced by "____"
- The correct answer is the target word or phrase
- Provide exactly 4 options including the correct answer
- Wrong options should be plausible but clearly wrong to someone who knows the word"""

DRILL_USER_PROMPT = """\
Create {count} fill-in-the-blank exercises using these vocabulary words:
{word_list}

Respond ONLY with valid JSON:
{{
  "exercises": [
    {{
      "type": "fill_in_blank",
      "sentence": "Please have your ____ ready before boarding.",
      "answer": "boarding pass",
      "options": ["boarding pass", "passport", "ticket", "luggage tag"],
      "vocabulary_id": 12,
      "word": "boarding pass"
    }}
  ]
}}"""


@dataclass
class DrillWord:
    """A vocabulary item offered to the generator."""

    vocabulary_id: int
    word: str
    definition: str


@dataclass
class PracticeDrill:
    """A synthesized fill-in-the-blank exercise."""

    sentence: str  # contains "____" where the word goes
    answer: str
    options: list[str] = field(default_factory=list)
    vocabulary_id: int = 0
    word: str = ""
    type: str = "fill_in_blank"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> PracticeDrill:
        return cls(
            sentence=data["sentence"],
            answer=data["answer"],
            options=list(data.get("options", [])),
            vocabulary_id=int(data["vocabulary_id"]),
            word=data.get("word", ""),
            type=data.get("type", "fill_in_blank"),
        )


class _DrillPayload(BaseModel):
    type: Literal["fill_in_blank"] = "fill_in_blank"
    sentence: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    options: list[str]
    vocabulary_id: int
    word: str


class _DrillResponse(BaseModel):
    exercises: list[_DrillPayload]


class DrillGenerator:
    """Generates practice drills with the LLM."""

    def __init__(self, llm: LLMClient | None = None) -> None:
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = get_llm_client()
        return self._llm

    def cost_estimate(self) -> dict[str, float] | None:
        """Token usage so far, or None before any LLM client is attached."""
        if self._llm is None:
            return None
        return self._llm.get_cost_estimate()

    def generate(self, words: list[DrillWord], count: int) -> list[PracticeDrill]:
        """Generate up to ``count`` drills for the given words.

        Raises:
            DrillGenerationError: The response could not be parsed or validated.
            anthropic.APIError: The API call failed after retries.
        """
        if not words or count <= 0:
            return []

        word_list = "\n".join(
            f'- "{w.word}" ({w.definition}) [id: {w.vocabulary_id}]' for w in words
        )
        prompt = DRILL_USER_PROMPT.format(count=count, word_list=word_list)
        response = self.llm.create_message(
            prompt=prompt,
            system=DRILL_SYSTEM_PROMPT,
            max_tokens=2048,
            temperature=0.7,
        )
        drills = parse_drill_response(response)
        logger.info("Generated %d drills for %d words", len(drills), len(words))
        return drills[:count]


def parse_drill_response(response: str) -> list[PracticeDrill]:
    """Parse and validate the LLM response into drills."""
    text = response.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()

    try:
        payload = _DrillResponse.model_validate(json.loads(text))
    except json.JSONDecodeError as exc:
        raise DrillGenerationError("Drill response is not valid JSON") from exc
    except ValidationError as exc:
        raise DrillGenerationError(f"Drill response failed validation: {exc}") from exc

    drills = []
    for entry in payload.exercises:
        if "____" not in entry.sentence:
            logger.warning("Skipping drill without a blank: %s", entry.sentence)
            continue
        options = entry.options if entry.answer in entry.options else [entry.answer, *entry.options]
        drills.append(
            PracticeDrill(
                sentence=entry.sentence,
                answer=entry.answer,
                options=options,
                vocabulary_id=entry.vocabulary_id,
                word=entry.word,
            )
        )
    return drills


def normalize_answer(text: str) -> str:
    """Normalize an answer for comparison: NFC, case, whitespace and punctuation."""
    text = unicodedata.normalize("NFC", text.strip()).lower()
    for char in [".", ",", "!", "?", ";", ":", "'", '"', "(", ")"]:
        text = text.replace(char, "")
    return " ".join(text.split())


def check_drill_answer(drill: PracticeDrill, response: str) -> bool:
    """Return True if the response fills the blank correctly."""
    return normalize_answer(response) == normalize_answer(drill.answer)


def default_drill_generator() -> DrillGenerator | None:
    """Return an LLM-backed generator when an API key is configured, else None."""
    if not settings.anthropic_api_key:
        logger.debug("No Anthropic API key configured; practice drills disabled")
        return None
    return DrillGenerator()
