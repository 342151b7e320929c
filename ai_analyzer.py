import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dotenv import load_dotenv
from openai import OpenAI

from analyzer import KeywordInsight, KeywordSource
from skills import RequirementTier, canonical_key, normalize_term

load_dotenv()

logger = logging.getLogger(__name__)

CAPABILITY_IDS = ("technical", "delivery", "communication")
CAPABILITY_TITLES = {
    "technical": "Technical & Engineering Expertise",
    "delivery": "Delivery, Execution & Systems Knowledge",
    "communication": "Communication, Leadership & Collaboration",
}
SEMANTIC_KEYWORD_MIN_IMPORTANCE = 0.4
SEMANTIC_KEYWORD_COVERAGE = 0.1
MIN_JD_CHARS_FOR_KEYWORDS = 40
MAX_SUMMARY_KEYWORDS = 14
MAX_THEMES = 4
MAX_REQUIREMENTS = 18
MAX_QUESTIONS = 10


@dataclass(frozen=True)
class CapabilityAssessment:
    id: str
    title: str
    score: int
    summary: str = ""
    strengths: List[str] = field(default_factory=list)
    gaps: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SemanticAssessment:
    score: int
    summary: str
    aligned_themes: List[str] = field(default_factory=list)
    missing_themes: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    capability_breakdown: List[CapabilityAssessment] = field(default_factory=list)


@dataclass(frozen=True)
class SemanticRequirement:
    label: str
    priority: RequirementTier
    rationale: str = ""
    weight_percent: float = 0.0
    synonyms: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class InterviewQuestion:
    question: str
    answer: str


@dataclass(frozen=True)
class SemanticKeywordExtraction:
    requirements: List[SemanticRequirement] = field(default_factory=list)
    questions: List[InterviewQuestion] = field(default_factory=list)


def _default_client() -> Optional[OpenAI]:
    api_key = os.getenv("OPENAI_API_KEY") or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        logger.warning("Semantic layer disabled: set OPENAI_API_KEY or OPENROUTER_API_KEY to enable it.")
        return None

    base_url = os.getenv("OPENAI_BASE_URL") or None
    try:
        client = OpenAI(api_key=api_key, base_url=base_url)
        logger.info("Semantic layer: initialized OpenAI-compatible client (base_url=%s)", base_url or "default")
        return client
    except Exception as exc:  # pragma: no cover - best effort logging
        logger.exception("Semantic layer: failed to initialize client: %s", exc)
        return None


CLIENT = _default_client()
MODEL_NAME = os.getenv("SEMANTIC_MODEL", "gpt-4o-mini")
SEMANTIC_WEIGHT = float(os.getenv("SEMANTIC_WEIGHT", "0.6"))


SCORE_PROMPT = """You are an HR screening assistant. Score how well the resume aligns with the job description.
Return a JSON object with:
- semanticScore: 0-100 integer, holistic probability of success.
- summary: 1 sentence explaining the score.
- alignedThemes: up to 4 short phrases where the resume clearly aligns with the JD.
- missingThemes: up to 4 short phrases capturing gaps.
- suggestions: up to 4 resume improvements grounded in the JD.
- capabilityBreakdown: exactly 3 objects describing (1) Technical & Engineering Expertise, (2) Delivery, Execution & Systems Knowledge, and (3) Communication, Leadership & Collaboration. For each, include id (technical|delivery|communication), title, score 0-100, summary (match quality), strengths (<=3 concrete wins), gaps (<=3 missing signals).

Be strict. Penalize irrelevant experience when the JD is focused on a different domain. Only use evidence from the provided texts."""

KEYWORD_PROMPT = """You are an HR analyst. Extract the most important hiring requirements from the job description.
Return a JSON object with:
- requirements: array of up to 18 items, each { label, priority (must-have | responsibility | preferred | baseline), rationale, weightPercent (0-100), synonyms[] }.
- questions: exactly 10 interview prompts tailored to the JD. For each include { question, answer } with answers grounded in the JD.

Focus on concrete skills, systems, certifications, and responsibilities. Use the JD structure (Requirements vs Responsibilities) to set priority."""

JSON_REMINDER = (
    "Reminder: respond strictly with the requested JSON object. "
    "Do not include any markdown, explanations, or surrounding text."
)


def truncate_for_model(text: str, max_chars: int = 3500) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}... [truncated]"


def format_keyword_summary(keywords: Sequence[KeywordInsight]) -> str:
    if not keywords:
        return "No keyword metadata provided."
    lines = []
    for keyword in keywords[:MAX_SUMMARY_KEYWORDS]:
        weight = f"{round(keyword.importance * 100)}%" if keyword.importance else "n/a"
        lines.append(f"- {keyword.label or keyword.canonical} (weight {weight}, section {keyword.section.value})")
    return "\n".join(lines)


def assess_resume(
    jd_text: str,
    resume_text: str,
    keywords: Sequence[KeywordInsight],
    *,
    client: Optional[OpenAI] = None,
) -> Optional[SemanticAssessment]:
    """Ask the language model for a holistic resume assessment.

    Returns ``None`` whenever the semantic layer is unavailable so callers can
    keep the heuristic analysis as-is.
    """
    if not jd_text.strip() or not resume_text.strip():
        return None

    llm_client = client or CLIENT
    if llm_client is None:
        return None

    user_text = "\n".join(
        [
            "--- JOB DESCRIPTION ---",
            truncate_for_model(jd_text),
            "",
            "--- KEYWORD SUMMARY ---",
            format_keyword_summary(keywords),
            "",
            "--- RESUME ---",
            truncate_for_model(resume_text),
        ]
    )

    try:
        payload = _call_llm_with_retries(llm_client, _build_request(SCORE_PROMPT, user_text), "semantic-score")
    except Exception as exc:
        logger.exception("Semantic scoring failed: %s", exc)
        return None

    return _normalise_assessment(payload)


def extract_semantic_keywords(
    jd_text: str,
    *,
    client: Optional[OpenAI] = None,
) -> Optional[SemanticKeywordExtraction]:
    """Ask the language model for prioritised requirements and interview prompts."""
    if len(jd_text.strip()) < MIN_JD_CHARS_FOR_KEYWORDS:
        return None

    llm_client = client or CLIENT
    if llm_client is None:
        return None

    try:
        payload = _call_llm_with_retries(
            llm_client,
            _build_request(KEYWORD_PROMPT, truncate_for_model(jd_text, 5000)),
            "semantic-keywords",
        )
    except Exception as exc:  # pragma: no cover - network/runtime failure path
        logger.exception("Semantic keyword extraction failed: %s", exc)
        return None

    return _normalise_keyword_extraction(payload)


def keywords_from_semantic(requirements: Sequence[SemanticRequirement]) -> List[KeywordInsight]:
    """Turn semantic requirements into keyword records usable by analyze_resume."""
    keywords: List[KeywordInsight] = []
    seen = set()
    for requirement in requirements:
        canonical = canonical_key(requirement.label)
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        variants = {normalize_term(synonym) for synonym in requirement.synonyms}
        variants.discard("")
        importance = max(requirement.weight_percent / 100, SEMANTIC_KEYWORD_MIN_IMPORTANCE)
        keywords.append(
            KeywordInsight(
                canonical=canonical,
                label=requirement.label,
                occurrences=1,
                importance=round(min(importance, 1.0), 3),
                section=requirement.priority,
                source=KeywordSource.PHRASE,
                variants=sorted(variants),
                coverage=SEMANTIC_KEYWORD_COVERAGE,
            )
        )
    return keywords


def blend_scores(heuristic: int, semantic: Optional[float], semantic_weight: float = SEMANTIC_WEIGHT) -> int:
    """Blend the heuristic score with a semantic opinion; ``None`` leaves it unchanged."""
    if semantic is None:
        return heuristic
    weight = max(0.0, min(1.0, semantic_weight))
    blended = round(heuristic * (1 - weight) + float(semantic) * weight)
    return max(0, min(100, int(blended)))


def _build_request(system_prompt: str, user_text: str) -> Dict[str, Any]:
    return {
        "model": MODEL_NAME,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_text},
        ],
        "response_format": {"type": "json_object"},
    }


def _call_llm_with_retries(
    llm_client: OpenAI,
    request_kwargs: Dict[str, Any],
    purpose: str,
    max_attempts: int = 2,
) -> Dict[str, Any]:
    base_messages = request_kwargs.get("messages", [])
    for attempt in range(max_attempts):
        response = llm_client.chat.completions.create(**request_kwargs)
        raw = response.choices[0].message.content or ""
        logger.debug("Semantic raw response (%s, attempt %s): %s", purpose, attempt + 1, raw)
        try:
            parsed = json.loads(_extract_json_from_response(raw))
        except ValueError as exc:
            logger.warning("JSON extraction failed for %s (attempt %s): %s", purpose, attempt + 1, exc)
            if attempt == max_attempts - 1:
                raise
            request_kwargs = dict(request_kwargs)
            request_kwargs["messages"] = base_messages + [{"role": "system", "content": JSON_REMINDER}]
            continue
        if not isinstance(parsed, dict):
            raise ValueError("LLM response JSON was not an object.")
        return parsed
    raise RuntimeError("LLM retry loop exhausted.")  # pragma: no cover


def _extract_json_from_response(raw: str) -> str:
    """Best-effort extraction of a JSON object from LLM output."""
    if not raw:
        raise ValueError("Empty response from LLM.")

    text = raw.strip()
    if text.startswith("```"):
        lines = [line for line in text.splitlines() if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()

    if text.startswith("{") and text.endswith("}"):
        return text

    start = text.find("{")
    end = text.rfind("}")
    while start != -1 and end != -1 and start < end:
        candidate = text[start : end + 1]
        try:
            json.loads(candidate)
            return candidate
        except ValueError:
            end = text.rfind("}", 0, end)

    raise ValueError("LLM response did not contain a valid JSON object.")


def _normalise_assessment(payload: Dict[str, Any]) -> SemanticAssessment:
    """Coerce missing keys and types so downstream code can rely on the shape."""
    score = _clamp_score(payload.get("semanticScore"))
    summary = str(payload.get("summary") or "").strip() or "No summary generated."

    by_id: Dict[str, CapabilityAssessment] = {}
    raw_breakdown = payload.get("capabilityBreakdown")
    for item in raw_breakdown if isinstance(raw_breakdown, list) else []:
        if not isinstance(item, dict):
            continue
        capability_id = str(item.get("id") or "").strip().lower()
        if capability_id not in CAPABILITY_IDS or capability_id in by_id:
            continue
        by_id[capability_id] = CapabilityAssessment(
            id=capability_id,
            title=str(item.get("title") or "").strip() or CAPABILITY_TITLES[capability_id],
            score=_clamp_score(item.get("score")),
            summary=str(item.get("summary") or "").strip(),
            strengths=_ensure_list_of_strings(item.get("strengths"))[:3],
            gaps=_ensure_list_of_strings(item.get("gaps"))[:3],
        )

    return SemanticAssessment(
        score=score,
        summary=summary,
        aligned_themes=_ensure_list_of_strings(payload.get("alignedThemes"))[:MAX_THEMES],
        missing_themes=_ensure_list_of_strings(payload.get("missingThemes"))[:MAX_THEMES],
        suggestions=_ensure_list_of_strings(payload.get("suggestions"))[:MAX_THEMES],
        capability_breakdown=[by_id[capability_id] for capability_id in CAPABILITY_IDS if capability_id in by_id],
    )


def _normalise_keyword_extraction(payload: Dict[str, Any]) -> SemanticKeywordExtraction:
    requirements: List[SemanticRequirement] = []
    raw_requirements = payload.get("requirements")
    for item in raw_requirements if isinstance(raw_requirements, list) else []:
        if not isinstance(item, dict):
            continue
        label = str(item.get("label") or "").strip()
        if not label:
            continue
        requirements.append(
            SemanticRequirement(
                label=label,
                priority=RequirementTier.from_priority(str(item.get("priority") or "")),
                rationale=str(item.get("rationale") or "").strip(),
                weight_percent=max(0.0, min(100.0, _coerce_float(item.get("weightPercent")))),
                synonyms=_ensure_list_of_strings(item.get("synonyms")),
            )
        )

    questions: List[InterviewQuestion] = []
    raw_questions = payload.get("questions")
    for item in raw_questions if isinstance(raw_questions, list) else []:
        if not isinstance(item, dict):
            continue
        question = str(item.get("question") or "").strip()
        if question:
            questions.append(InterviewQuestion(question=question, answer=str(item.get("answer") or "").strip()))

    return SemanticKeywordExtraction(
        requirements=requirements[:MAX_REQUIREMENTS],
        questions=questions[:MAX_QUESTIONS],
    )


def _ensure_list_of_strings(payload: Any) -> List[str]:
    if not isinstance(payload, list):
        if isinstance(payload, str):
            return [payload.strip()] if payload.strip() else []
        return []
    output: List[str] = []
    for item in payload:
        if isinstance(item, str):
            stripped = item.strip()
            if stripped:
                output.append(stripped)
    return output


def _coerce_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _clamp_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, score))


def split_requirements(extraction: Optional[SemanticKeywordExtraction]) -> Tuple[List[KeywordInsight], List[InterviewQuestion]]:
    """Keyword records and interview prompts from an extraction, empty when absent."""
    if extraction is None:
        return [], []
    return keywords_from_semantic(extraction.requirements), list(extraction.questions)
