"""
Question Synthesizer: asks the LLM for a batch of multiple-choice chemistry
questions, validates their structure and falls back to a fixed offline batch
whenever the model cannot deliver.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modules.llm_client import LLMClient, LLMError, LLMUnavailable

logger = logging.getLogger(__name__)


SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"

REASON_MISSING_CREDENTIALS = "missing_credentials"
REASON_UPSTREAM_ERROR = "upstream_error"
REASON_INVALID_JSON = "invalid_json"
REASON_NO_VALID_DRAFTS = "no_valid_drafts"

KNOWN_TEXT_CLIP = 100
OPTIONS_PER_QUESTION = 5


SYSTEM_PROMPT = """Você é um professor de Química que mantém um banco de questões no nível ENEM.

Sua tarefa: gerar {count} questão(ões) inédita(s) de múltipla escolha sobre "{topic}".

REGRAS:
1. NUNCA repita o enunciado ou a resposta de nenhuma das amostras existentes listadas pelo usuário.
2. Explore subtemas diferentes dentro de "{topic}".
3. Cada questão tem EXATAMENTE 5 alternativas e "correctAnswer" é o índice (0 a 4) da alternativa correta.
4. A explicação deve justificar a resposta de forma técnica e objetiva.

RESPONDA APENAS COM ESTE JSON (sem texto extra):
{{"questions": [{{"topic": "{topic}", "text": "...", "options": ["A", "B", "C", "D", "E"], "correctAnswer": 0, "explanation": "..."}}]}}"""

USER_PROMPT = """TEMA: {topic}
{hint_line}
AMOSTRAS EXISTENTES NO BANCO (NÃO REPETIR):
{samples}

Gere {count} nova(s) questão(ões)."""


FALLBACK_QUESTION = {
    "text": "(Modo Offline) Qual a massa de 1 mol de átomos de Carbono?",
    "options": ["10 g", "12 g", "14 g", "6 g", "24 g"],
    "correctAnswer": 1,
    "explanation": "A massa molar do Carbono na tabela periódica é 12 g/mol.",
}


class QuestionDraft(BaseModel):
    """A generated question that has not been written to the cache yet."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    topic: str = ""
    text: str = Field(min_length=1)
    options: list[str] = Field(min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION)
    correct_answer: int = Field(alias="correctAnswer", ge=0, le=OPTIONS_PER_QUESTION - 1)
    explanation: Optional[str] = ""


@dataclass
class SynthesisResult:
    drafts: list[QuestionDraft] = field(default_factory=list)
    source: str = SOURCE_AI
    reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK


def fallback_drafts(topic: str, count: int) -> list[QuestionDraft]:
    """Deterministic offline batch: `count` copies of one well-known fact."""
    return [
        QuestionDraft(topic=topic, **FALLBACK_QUESTION)
        for _ in range(max(1, count))
    ]


def _strip_markup(raw: str) -> str:
    """Remove markdown code fences and any chatter around the JSON body."""
    text = raw.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL | re.IGNORECASE)
    if fenced:
        text = fenced.group(1).strip()
    if not text.startswith(("{", "[")):
        start = text.find("{")
        end = text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
    return text


def decode_payload(raw: str) -> Optional[list[Any]]:
    """
    Decode the model output into a list of candidate drafts.

    Accepted shapes, tried in order:
        {"questions": [...]}  → the list
        {...}                 → a single draft
        [...]                 → the list
    Anything else (including non-JSON) → None.
    """
    try:
        data = json.loads(_strip_markup(raw))
    except (json.JSONDecodeError, TypeError):
        return None

    if isinstance(data, dict):
        questions = data.get("questions")
        if isinstance(questions, list):
            return questions
        return [data]
    if isinstance(data, list):
        return data
    return None


def validate_drafts(candidates: list[Any], topic: str) -> list[QuestionDraft]:
    """Keep only structurally valid drafts; invalid ones are dropped, not repaired."""
    drafts: list[QuestionDraft] = []
    for item in candidates:
        if not isinstance(item, dict):
            continue
        try:
            draft = QuestionDraft.model_validate(item)
        except ValidationError as e:
            logger.debug("[SYNTH] Dropping invalid draft: %s", e.errors()[:1])
            continue
        # Cached rows are filed under the requested topic.
        draft.topic = topic
        drafts.append(draft)
    return drafts


class QuestionSynthesizer:
    def __init__(
        self,
        llm: LLMClient,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        known_texts_sample: int = 10,
    ):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.known_texts_sample = known_texts_sample

    def build_prompts(self, topic: str, hint: str, count: int, known_texts: list[str]) -> tuple[str, str]:
        sample = known_texts[: self.known_texts_sample]
        samples = (
            "\n".join(f"- {t[:KNOWN_TEXT_CLIP]}..." for t in sample)
            if sample else "Nenhuma amostra anterior."
        )
        hint_line = f"INSTRUÇÕES EXTRAS: {hint.strip()}\n" if hint and hint.strip() else ""
        system = SYSTEM_PROMPT.format(topic=topic, count=count)
        user = USER_PROMPT.format(topic=topic, hint_line=hint_line, samples=samples, count=count)
        return system, user

    def synthesize(
        self,
        topic: str,
        hint: str,
        count: int,
        known_texts: Optional[list[str]] = None,
    ) -> SynthesisResult:
        """
        Generate up to `count` question drafts on `topic`.

        Never raises for upstream trouble: every failure turns into a fallback
        batch of exactly `count` drafts tagged with the reason.
        """
        count = max(1, count)
        system, user = self.build_prompts(topic, hint, count, list(known_texts or []))

        try:
            raw = self.llm.call_llm(
                user,
                system_prompt=system,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                json_mode=True,
            )
        except LLMUnavailable:
            return self._fallback(topic, count, REASON_MISSING_CREDENTIALS)
        except LLMError:
            return self._fallback(topic, count, REASON_UPSTREAM_ERROR)

        candidates = decode_payload(raw)
        if candidates is None:
            return self._fallback(topic, count, REASON_INVALID_JSON)

        drafts = validate_drafts(candidates, topic)
        if not drafts:
            return self._fallback(topic, count, REASON_NO_VALID_DRAFTS)

        if len(drafts) < count:
            logger.info("[SYNTH] Model produced %d/%d valid drafts for %r", len(drafts), count, topic)
        return SynthesisResult(drafts=drafts[:count], source=SOURCE_AI)

    def _fallback(self, topic: str, count: int, reason: str) -> SynthesisResult:
        logger.warning("[SYNTH] Using offline fallback for %r (%s)", topic, reason)
        return SynthesisResult(
            drafts=fallback_drafts(topic, count),
            source=SOURCE_FALLBACK,
            reason=reason,
        )
