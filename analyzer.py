"""Rule-based keyword extraction and resume scoring engine."""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from skills import (
    CONNECTOR_WORDS,
    HEADING_MAX_LENGTH,
    HEADING_PATTERNS,
    INLINE_PRIORITY_PATTERNS,
    STOP_WORDS,
    SYNONYM_LOOKUP,
    TIER_ORDER,
    TIER_WEIGHTS,
    RequirementTier,
    canonical_key,
    is_filler_word,
    is_generic_term,
    normalize_term,
)

logger = logging.getLogger(__name__)

# --- Constants & Regex helpers -------------------------------------------------

TOKEN_PATTERN = re.compile(r"[a-z0-9+#][a-z0-9+#\-/]*")
LINE_SPLIT_PATTERN = re.compile(r"\r?\n")
# "Requirements: ..." style labels at line start or right after a sentence.
HEADING_LABEL_PATTERN = re.compile(r"(?:^|(?<=[.!?;]))\s*([A-Za-z][^:.!?;]{0,39}?)\s*:")

MIN_TOKEN_LENGTH = 3
BIGRAM_BOOST = 1.1
TRIGRAM_BOOST = 1.15
PHRASE_IMPORTANCE_BOOST = 1.05
DEFAULT_KEYWORD_LIMIT = 28

# Tunable filter heuristics.
COVERAGE_FILTER_MIN_KEYWORDS = 10
COVERAGE_THRESHOLD = 0.45
COVERAGE_IMPORTANCE_EXEMPTION = 0.4
PERCENTILE_FILTER_MIN_KEYWORDS = 12
IMPORTANCE_PERCENTILE = 0.25
IMPORTANCE_FLOOR = 0.25
MIN_KEYWORDS_AFTER_FILTER = 5

COVERAGE_SCORE_WEIGHT = 0.6
DENSITY_SCORE_WEIGHT = 0.3
BREADTH_SCORE_WEIGHT = 0.1

MAX_ADD_SUGGESTIONS = 5
MAX_EXPAND_SUGGESTIONS = 2


class KeywordSource(str, Enum):
    TERM = "term"
    PHRASE = "phrase"


class SuggestionKind(str, Enum):
    ADD = "add"
    EXPAND = "expand"


@dataclass(frozen=True)
class SectionFragment:
    id: int
    content: str
    section: RequirementTier


@dataclass
class KeywordStats:
    canonical: str
    source: KeywordSource
    occurrences: int = 0
    weighted_occurrences: float = 0.0
    section_weights: Dict[RequirementTier, float] = field(
        default_factory=lambda: {tier: 0.0 for tier in TIER_ORDER}
    )
    variants: Set[str] = field(default_factory=set)
    surfaces: Counter = field(default_factory=Counter)
    fragment_ids: Set[int] = field(default_factory=set)


@dataclass(frozen=True)
class KeywordInsight:
    canonical: str
    label: str
    occurrences: int
    importance: float
    section: RequirementTier
    source: KeywordSource
    variants: List[str] = field(default_factory=list)
    coverage: float = 0.0

    @classmethod
    def from_dict(cls, payload: Dict[str, object]) -> "KeywordInsight":
        """Rebuild a keyword posted back by a client."""
        canonical = canonical_key(str(payload.get("canonical") or payload.get("label") or ""))
        if not canonical:
            raise ValueError("Keyword entries need a canonical key or label.")
        try:
            source = KeywordSource(payload.get("source", KeywordSource.TERM.value))
        except ValueError:
            source = KeywordSource.TERM
        importance = float(payload.get("importance", 0.0) or 0.0)
        return cls(
            canonical=canonical,
            label=str(payload.get("label") or canonical),
            occurrences=max(int(payload.get("occurrences", 1) or 1), 1),
            importance=max(0.0, min(1.0, importance)),
            section=RequirementTier.from_priority(str(payload.get("section") or "")),
            source=source,
            variants=sorted(str(item) for item in payload.get("variants") or []),
            coverage=max(0.0, min(1.0, float(payload.get("coverage", 0.0) or 0.0))),
        )


@dataclass(frozen=True)
class KeywordMatch:
    canonical: str
    label: str
    jd_occurrences: int
    resume_hits: int
    importance: float
    section: RequirementTier
    source: KeywordSource


@dataclass(frozen=True)
class Suggestion:
    canonical: str
    label: str
    priority: RequirementTier
    weight: int
    kind: SuggestionKind
    action: str
    detail: str


@dataclass(frozen=True)
class ResumeAnalysis:
    score: int
    matched_keywords: List[KeywordMatch] = field(default_factory=list)
    missing_keywords: List[KeywordMatch] = field(default_factory=list)
    summary: str = ""
    suggestions: List[Suggestion] = field(default_factory=list)
    coverage: float = 0.0
    density: float = 0.0
    breadth: float = 0.0


# --- Segmentation --------------------------------------------------------------

def detect_heading_section(line: str) -> Optional[RequirementTier]:
    if len(line) > HEADING_MAX_LENGTH:
        return None
    for pattern, section in HEADING_PATTERNS:
        if pattern.search(line):
            return section
    return None


def detect_inline_priority(line: str) -> Optional[RequirementTier]:
    for pattern, section in INLINE_PRIORITY_PATTERNS:
        if pattern.search(line):
            return section
    return None


def _split_heading_labels(line: str) -> Optional[List[Tuple[Optional[RequirementTier], str]]]:
    """Break ``Heading: body`` clauses out of a line.

    Returns ``None`` when the line carries no heading label, otherwise a list of
    ``(heading, body)`` pairs where ``heading`` is ``None`` for text preceding the
    first label.
    """
    labels = []
    for match in HEADING_LABEL_PATTERN.finditer(line):
        section = detect_heading_section(match.group(1))
        if section is not None:
            labels.append((match.start(), match.end(), section))
    if not labels:
        return None

    clauses: List[Tuple[Optional[RequirementTier], str]] = []
    lead = line[: labels[0][0]].strip()
    if lead:
        clauses.append((None, lead))
    for index, (_, body_start, section) in enumerate(labels):
        body_end = labels[index + 1][0] if index + 1 < len(labels) else len(line)
        clauses.append((section, line[body_start:body_end].strip()))
    return clauses


def segment(text: str) -> List[SectionFragment]:
    """Split JD text into tier-tagged fragments, one per logical line."""
    if not isinstance(text, str):
        raise TypeError(f"Expected text, got {type(text).__name__}")

    lines = [line.strip() for line in LINE_SPLIT_PATTERN.split(text)]
    fragments: List[SectionFragment] = []
    active_section = RequirementTier.GENERAL

    def emit(content: str, section: RequirementTier) -> None:
        inline_section = detect_inline_priority(content)
        fragments.append(
            SectionFragment(
                id=len(fragments),
                content=content,
                section=inline_section or section,
            )
        )

    for line in lines:
        if not line:
            continue

        clauses = _split_heading_labels(line)
        if clauses is not None:
            # Labels inside long lines only tag their own clause.
            persistent = len(line) <= HEADING_MAX_LENGTH
            clause_section = active_section
            for heading, body in clauses:
                if heading is not None:
                    clause_section = heading
                    if persistent:
                        active_section = heading
                if body:
                    emit(body, clause_section)
            continue

        heading_section = detect_heading_section(line)
        if heading_section is not None:
            active_section = heading_section
            continue
        emit(line, active_section)

    return fragments


def tokenize(text: str) -> List[str]:
    return TOKEN_PATTERN.findall(text.lower())


# --- Term & phrase collection --------------------------------------------------

def should_keep_token(token: str) -> bool:
    return len(token) >= MIN_TOKEN_LENGTH and not is_filler_word(token)


def build_phrase(tokens: Sequence[str], start: int, length: int) -> Optional[str]:
    window = tokens[start : start + length]
    if len(window) < length:
        return None

    if is_filler_word(window[0]) or is_filler_word(window[-1]):
        return None

    meaningful = [token for token in window if not is_filler_word(token)]
    required_meaningful = 1 if length == 2 else min(2, length)
    if not meaningful or len(meaningful) < required_meaningful:
        return None

    if all(token in STOP_WORDS and token not in CONNECTOR_WORDS for token in window):
        return None

    return " ".join(window).strip()


def _record_term(
    term: str,
    source: KeywordSource,
    section: RequirementTier,
    weight: float,
    fragment_id: int,
    stats_map: Dict[str, KeywordStats],
) -> None:
    normalized = normalize_term(term)
    if len(normalized) < MIN_TOKEN_LENGTH or is_generic_term(normalized):
        return

    synonym = SYNONYM_LOOKUP.get(normalized)
    canonical = synonym.canonical if synonym else normalized

    stats = stats_map.get(canonical)
    if stats is None:
        stats = KeywordStats(canonical=canonical, source=source)
        stats_map[canonical] = stats

    stats.occurrences += 1
    stats.weighted_occurrences += weight
    stats.section_weights[section] += weight
    if source is KeywordSource.PHRASE:
        stats.source = KeywordSource.PHRASE
    stats.variants.update(synonym.variants if synonym else (canonical,))
    stats.variants.add(normalized)
    stats.surfaces[term] += 1
    stats.fragment_ids.add(fragment_id)


def _collect_fragment(fragment: SectionFragment, stats_map: Dict[str, KeywordStats]) -> None:
    tokens = tokenize(fragment.content)
    if not tokens:
        return

    weight = TIER_WEIGHTS[fragment.section]
    for token in tokens:
        if should_keep_token(token):
            _record_term(token, KeywordSource.TERM, fragment.section, weight, fragment.id, stats_map)

    for index in range(len(tokens)):
        bigram = build_phrase(tokens, index, 2)
        if bigram:
            _record_term(
                bigram, KeywordSource.PHRASE, fragment.section, weight * BIGRAM_BOOST, fragment.id, stats_map
            )
        trigram = build_phrase(tokens, index, 3)
        if trigram:
            _record_term(
                trigram, KeywordSource.PHRASE, fragment.section, weight * TRIGRAM_BOOST, fragment.id, stats_map
            )


# --- Statistical scoring -------------------------------------------------------

def _dominant_section(section_weights: Dict[RequirementTier, float]) -> RequirementTier:
    return max(TIER_ORDER, key=lambda tier: section_weights.get(tier, 0.0))


def _display_label(stats: KeywordStats) -> str:
    if not stats.surfaces:
        return stats.canonical
    # Counter keeps first-seen order, so max() resolves ties to the earliest surface.
    label, _ = max(stats.surfaces.items(), key=lambda item: item[1])
    return re.sub(r"\s+", " ", label)


def compute_percentile(values: Sequence[float], percentile: float) -> float:
    """Linear-interpolated percentile of already sorted ``values``."""
    if not values:
        return 0.0
    position = (len(values) - 1) * percentile
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return values[lower]
    fraction = position - lower
    return values[lower] * (1 - fraction) + values[upper] * fraction


def _to_insight(stats: KeywordStats, max_weighted: float, total_fragments: int) -> KeywordInsight:
    section = _dominant_section(stats.section_weights)
    phrase_boost = PHRASE_IMPORTANCE_BOOST if stats.source is KeywordSource.PHRASE else 1.0
    importance = min((stats.weighted_occurrences / max_weighted) * TIER_WEIGHTS[section] * phrase_boost, 1.0)
    return KeywordInsight(
        canonical=stats.canonical,
        label=_display_label(stats),
        occurrences=stats.occurrences,
        importance=round(importance, 3),
        section=section,
        source=stats.source,
        variants=sorted(stats.variants),
        coverage=len(stats.fragment_ids) / total_fragments,
    )


def _refine_keywords(keywords: List[KeywordInsight]) -> List[KeywordInsight]:
    refined = list(keywords)

    if len(keywords) > COVERAGE_FILTER_MIN_KEYWORDS:
        coverage_filtered = [
            keyword
            for keyword in keywords
            if keyword.coverage <= COVERAGE_THRESHOLD or keyword.importance >= COVERAGE_IMPORTANCE_EXEMPTION
        ]
        if len(coverage_filtered) >= MIN_KEYWORDS_AFTER_FILTER:
            refined = coverage_filtered

    if len(refined) > PERCENTILE_FILTER_MIN_KEYWORDS:
        importance_values = sorted(keyword.importance for keyword in refined)
        threshold = max(compute_percentile(importance_values, IMPORTANCE_PERCENTILE), IMPORTANCE_FLOOR)
        percentile_filtered = [keyword for keyword in refined if keyword.importance >= threshold]
        if len(percentile_filtered) >= MIN_KEYWORDS_AFTER_FILTER:
            refined = percentile_filtered

    return refined or list(keywords)


def extract_keywords(jd_text: str, limit: int = DEFAULT_KEYWORD_LIMIT) -> List[KeywordInsight]:
    """Extract prioritised keywords from a job description.

    Returns an empty list when the text carries nothing meaningful; callers treat
    that as "no keywords found" and should not go on to score resumes.
    """
    fragments = segment(jd_text)
    stats_map: Dict[str, KeywordStats] = {}
    for fragment in fragments:
        _collect_fragment(fragment, stats_map)

    if not stats_map:
        return []

    total_fragments = max(len(fragments), 1)
    max_weighted = max(stats.weighted_occurrences for stats in stats_map.values())
    keywords = sorted(
        (_to_insight(stats, max_weighted, total_fragments) for stats in stats_map.values()),
        key=lambda keyword: keyword.importance,
        reverse=True,
    )
    refined = _refine_keywords(keywords)
    logger.debug(
        "Extracted %s candidate keywords from %s fragments; %s kept after filtering",
        len(keywords),
        len(fragments),
        len(refined),
    )
    return refined[: max(limit, 0)]


# --- Resume matching -----------------------------------------------------------

def build_ngram_counts(tokens: Sequence[str], size: int) -> Dict[str, int]:
    """Count canonicalised n-grams of ``size`` tokens."""
    counts: Dict[str, int] = {}
    for index in range(len(tokens) - size + 1):
        if size == 1:
            if not should_keep_token(tokens[index]):
                continue
            term = tokens[index]
        else:
            term = build_phrase(tokens, index, size)
            if not term:
                continue
        key = canonical_key(term)
        counts[key] = counts.get(key, 0) + 1
    return counts


def _variant_sizes(keyword: KeywordInsight) -> Set[int]:
    """Token lengths under which a keyword can show up in resume n-gram tables.

    A synonym is filed under its canonical key at its own length ("seo" lands in
    the unigram table as "search engine optimization").
    """
    sizes = {len(keyword.canonical.split(" "))}
    synonym = SYNONYM_LOOKUP.get(keyword.canonical)
    variants = list(keyword.variants) + list(synonym.variants if synonym else ())
    sizes.update(len(variant.split(" ")) for variant in variants if variant)
    return sizes


def _build_summary(coverage: float, density: float, breadth: float) -> str:
    return (
        f"Coverage {round(coverage * 100)}%, depth {round(density * 100)}%, "
        f"breadth {round(breadth * 100)}% vs JD priorities."
    )


def analyze_resume(resume_text: str, keywords: Iterable[KeywordInsight]) -> ResumeAnalysis:
    """Score resume text against a frozen keyword list."""
    if not isinstance(resume_text, str):
        raise TypeError(f"Expected resume text, got {type(resume_text).__name__}")

    keywords = list(keywords)
    tokens = tokenize(resume_text)
    ngram_tables = {size: build_ngram_counts(tokens, size) for size in (1, 2, 3)}

    matches: List[KeywordMatch] = []
    for keyword in keywords:
        hits = max(
            ngram_tables.get(size, {}).get(keyword.canonical, 0) for size in _variant_sizes(keyword)
        )
        matches.append(
            KeywordMatch(
                canonical=keyword.canonical,
                label=keyword.label,
                jd_occurrences=keyword.occurrences,
                resume_hits=hits,
                importance=keyword.importance,
                section=keyword.section,
                source=keyword.source,
            )
        )

    matched = [match for match in matches if match.resume_hits > 0]
    missing = [match for match in matches if match.resume_hits == 0]

    total_importance = sum(keyword.importance for keyword in keywords) or 1
    keyword_count = max(len(keywords), 1)
    coverage = sum(match.importance for match in matched) / total_importance
    density = (
        sum(min(match.resume_hits / max(match.jd_occurrences, 1), 1) for match in matched) / keyword_count
    )
    breadth = len(matched) / keyword_count

    raw_score = round(
        (coverage * COVERAGE_SCORE_WEIGHT + density * DENSITY_SCORE_WEIGHT + breadth * BREADTH_SCORE_WEIGHT) * 100
    )

    return ResumeAnalysis(
        score=max(0, min(int(raw_score), 100)),
        matched_keywords=matched,
        missing_keywords=missing,
        summary=_build_summary(coverage, density, breadth),
        suggestions=build_suggestions(missing, matched),
        coverage=round(coverage, 4),
        density=round(density, 4),
        breadth=round(breadth, 4),
    )


# --- Suggestions ---------------------------------------------------------------

def _suggestion_detail(match: KeywordMatch, weight: int) -> str:
    return f"{match.section.display_name} priority · JD weight {weight}%"


def build_suggestions(missing: Sequence[KeywordMatch], matched: Sequence[KeywordMatch]) -> List[Suggestion]:
    suggestions: List[Suggestion] = []

    prioritized_missing = sorted(missing, key=lambda match: match.importance, reverse=True)
    for match in prioritized_missing[:MAX_ADD_SUGGESTIONS]:
        weight = round(match.importance * 100)
        suggestions.append(
            Suggestion(
                canonical=match.canonical,
                label=match.label,
                priority=match.section,
                weight=weight,
                kind=SuggestionKind.ADD,
                action=(
                    f"Add proof points for {match.label} covering scope, systems/tools, "
                    f"stakeholders, and measurable impact."
                ),
                detail=_suggestion_detail(match, weight),
            )
        )

    under_represented = [match for match in matched if 0 < match.resume_hits < match.jd_occurrences]
    for match in under_represented[:MAX_EXPAND_SUGGESTIONS]:
        weight = round(match.importance * 100)
        suggestions.append(
            Suggestion(
                canonical=match.canonical,
                label=match.label,
                priority=match.section,
                weight=weight,
                kind=SuggestionKind.EXPAND,
                action=(
                    f"Deepen the story for {match.label} to mirror JD emphasis: "
                    f"mention scope, tooling, and outcomes."
                ),
                detail=_suggestion_detail(match, weight),
            )
        )

    return suggestions
