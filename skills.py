# skills.py
# Central vocabulary for keyword extraction and resume matching.

# Every synonym group maps all of its members onto the first entry, which becomes
# the canonical key. Members are normalised with normalize_term before lookup.

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple


class RequirementTier(str, Enum):
    CORE = "core"
    RESPONSIBILITY = "responsibility"
    PREFERRED = "preferred"
    GENERAL = "general"

    @classmethod
    def from_priority(cls, label: Optional[str]) -> "RequirementTier":
        """Map a priority label from the semantic service onto a tier."""
        if not label:
            return cls.GENERAL
        return PRIORITY_LABELS.get(label.strip().lower(), cls.GENERAL)

    @property
    def display_name(self) -> str:
        return TIER_DISPLAY_NAMES[self]


# Order matters: dominant-tier ties resolve to the first entry.
TIER_ORDER: Tuple[RequirementTier, ...] = (
    RequirementTier.CORE,
    RequirementTier.RESPONSIBILITY,
    RequirementTier.PREFERRED,
    RequirementTier.GENERAL,
)

TIER_WEIGHTS: Mapping[RequirementTier, float] = MappingProxyType(
    {
        RequirementTier.CORE: 1.2,
        RequirementTier.RESPONSIBILITY: 1.0,
        RequirementTier.PREFERRED: 0.8,
        RequirementTier.GENERAL: 0.7,
    }
)

TIER_DISPLAY_NAMES: Mapping[RequirementTier, str] = MappingProxyType(
    {
        RequirementTier.CORE: "Must-have",
        RequirementTier.RESPONSIBILITY: "Role scope",
        RequirementTier.PREFERRED: "Preferred",
        RequirementTier.GENERAL: "General",
    }
)

PRIORITY_LABELS: Mapping[str, RequirementTier] = MappingProxyType(
    {
        "must-have": RequirementTier.CORE,
        "must have": RequirementTier.CORE,
        "core": RequirementTier.CORE,
        "responsibility": RequirementTier.RESPONSIBILITY,
        "preferred": RequirementTier.PREFERRED,
        "baseline": RequirementTier.GENERAL,
        "general": RequirementTier.GENERAL,
    }
)

# --- Section detection ----------------------------------------------------------

HEADING_MAX_LENGTH = 80

HEADING_PATTERNS: Tuple[Tuple["re.Pattern[str]", RequirementTier], ...] = (
    (re.compile(r"(must[-\s]?have|requirements?|qualifications?|skills)", re.IGNORECASE), RequirementTier.CORE),
    (re.compile(r"(responsibilit|what you will do|day[-\s]?to[-\s]?day)", re.IGNORECASE), RequirementTier.RESPONSIBILITY),
    (re.compile(r"(preferred|nice to have|bonus|good to have)", re.IGNORECASE), RequirementTier.PREFERRED),
)

INLINE_PRIORITY_PATTERNS: Tuple[Tuple["re.Pattern[str]", RequirementTier], ...] = (
    (re.compile(r"\b(must|required|required experience)\b", re.IGNORECASE), RequirementTier.CORE),
    (re.compile(r"\b(preferred|nice to have|bonus)\b", re.IGNORECASE), RequirementTier.PREFERRED),
)

# --- Word lists -----------------------------------------------------------------

STOP_WORDS = frozenset(
    {
        "and", "the", "for", "with", "that", "have", "this", "from", "your",
        "will", "are", "you", "our", "per", "who", "any", "all", "but", "its",
        "was", "were", "has", "had", "can", "may", "must", "into", "able",
        "make", "made", "than", "over", "each", "via", "very", "much", "also",
        "ever", "every", "then", "once", "keep", "kept", "been", "being",
        "through", "within", "between", "among", "upon", "onto",
    }
)

CONNECTOR_WORDS = frozenset({"and", "or", "to", "of", "in", "on", "for", "with"})

GENERIC_TERMS = frozenset(
    {
        "job", "jobs", "description", "descriptions", "sample", "company",
        "companies", "organization", "organizations", "department",
        "departments", "team", "teams", "employee", "employees", "employment",
        "human", "resource", "resources", "information", "detail", "details",
        "participation", "participate", "candidate", "candidates", "applicant",
        "applicants", "intern", "interns", "internship", "role", "roles",
        "position", "positions", "title", "titles", "sample job",
        "job description", "job title", "reports", "report", "gain",
    }
)

SYNONYM_GROUPS: Tuple[Tuple[str, ...], ...] = (
    # --- Delivery & management ---
    ("project management", "program management", "project manager", "pm"),
    ("stakeholder management", "stakeholder engagement"),
    ("change management", "organizational change"),
    ("people management", "team leadership", "direct reports"),
    ("product management", "product manager", "pm (product)"),
    ("customer success", "client success", "account management"),
    ("business development", "sales development", "bd"),
    # --- Engineering ---
    ("react", "react.js", "reactjs", "react native"),
    ("node", "node.js", "nodejs"),
    ("quality assurance", "qa", "software testing"),
    ("user experience", "ux"),
    ("user interface", "ui"),
    # --- Data & AI ---
    ("data analysis", "data analytics", "data analyst"),
    ("machine learning", "ml", "ml ops", "mlops"),
    ("artificial intelligence", "ai"),
    # --- Marketing ---
    ("search engine optimization", "seo"),
    ("pay per click", "ppc"),
    # --- HR ---
    ("human resources", "hr"),
    ("talent acquisition", "technical recruiting", "recruitment"),
)

_NON_TERM_CHARS = re.compile(r"[^a-z0-9+#/\s-]+")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SynonymInfo:
    canonical: str
    variants: Tuple[str, ...]


def normalize_term(term: str) -> str:
    """Lowercase, collapse anything outside ``[a-z0-9+#/-]`` to single spaces."""
    lowered = _NON_TERM_CHARS.sub(" ", term.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def build_synonym_lookup(groups) -> Mapping[str, SynonymInfo]:
    lookup: Dict[str, SynonymInfo] = {}
    for group in groups:
        normalized: List[str] = [normalize_term(term) for term in group]
        normalized = [term for term in normalized if term]
        if not normalized:
            continue
        unique_variants = tuple(dict.fromkeys(normalized))
        info = SynonymInfo(canonical=normalized[0], variants=unique_variants)
        for variant in unique_variants:
            lookup[variant] = info
    return MappingProxyType(lookup)


SYNONYM_LOOKUP = build_synonym_lookup(SYNONYM_GROUPS)


def canonical_key(term: str) -> str:
    normalized = normalize_term(term)
    if not normalized:
        return ""
    info = SYNONYM_LOOKUP.get(normalized)
    return info.canonical if info else normalized


def is_filler_word(token: str) -> bool:
    if token in SYNONYM_LOOKUP:
        return False
    return token in STOP_WORDS or token in GENERIC_TERMS or token in CONNECTOR_WORDS


def is_generic_term(term: str) -> bool:
    tokens = [token for token in term.split(" ") if token]
    if not tokens:
        return True

    joined = " ".join(tokens)
    if joined in SYNONYM_LOOKUP:
        return False
    if joined in GENERIC_TERMS:
        return True

    filler_count = sum(1 for token in tokens if is_filler_word(token))
    if filler_count == len(tokens):
        return True
    if len(tokens) > 1 and filler_count / len(tokens) >= 0.6:
        return True
    return False
