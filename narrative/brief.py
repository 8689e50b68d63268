"""Executive brief for leadership, optionally written by an LLM.

The LLM only ever sees ``brief_facts(result)``. Anything it returns passes
through the same formatting rules as the fallback and is rejected if it
mentions clinical details that cannot come from the facts packet. Every
failure path ends at the deterministic ``fallback_brief``.
"""

import json
import re
from dataclasses import asdict
from typing import Protocol

from data.errors import UpstreamServiceError
from data.models import Brief, DriftResult
from engine.metrics import round_half_up

LIMITATION_LINE = "Behavioral signal, not clinical correctness."
NOT_AVAILABLE = "Not available in the dataset."

REVIEW_ACTIONS = [
    "• Review top service code share and entropy changes (first vs last period).",
    "• Validate whether changes align with documented operational or case-mix shifts.",
    "• If unexplained, run a light-touch sample review and document findings.",
]

# Terms an answer can only contain if the model invented them
BANNED_TERMS = [
    "mri", "ct", "lower back", "icd", "cpt", "radiation", "referral",
    "guideline", "peer average", "specialist", "clinic", "pain",
    "q1", "q2", "q3", "q4",
]
_BANNED_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(t) for t in BANNED_TERMS) + r")\b",
    re.IGNORECASE,
)


class NarrativeEnricher(Protocol):
    def enrich(self, facts: dict, strict: bool = False) -> str:
        """Return brief text for the facts, or raise UpstreamServiceError."""
        ...


def brief_facts(result: DriftResult) -> dict:
    """The facts packet handed to an enricher, and nothing more."""
    metrics = result.metrics_by_period
    first = asdict(metrics[0]) if metrics else None
    last = asdict(metrics[-1]) if metrics else None
    return {
        "provider_id": result.provider_id,
        "periods": list(result.periods),
        "label": result.label.value,
        "stability_index": result.stability_index,
        "service_mix_drift": result.service_mix_drift,
        "intensity_drift": result.intensity_drift,
        "pos_drift": result.pos_drift,
        "drivers": list(result.drivers),
        "first_period": first,
        "last_period": last,
    }


def build_prompt(facts: dict, strict: bool = False) -> str:
    provider_id = facts["provider_id"]
    packet = json.dumps(facts, indent=2)

    if strict:
        return (
            "Rewrite the brief using ONLY the JSON facts. Remove ANY invented clinical details "
            "(no MRI/CT, no conditions, no guidelines, no referrals, no peer comparisons, no quarters).\n"
            f'If unknown, say: "{NOT_AVAILABLE}"\n\n'
            "Keep the same STRICT format rules.\n\n"
            f"JSON facts:\n{packet}"
        )

    return (
        "Write for non-technical hospital leadership.\n\n"
        "CRITICAL: Use ONLY the facts in the JSON. Do NOT infer diseases, imaging types, referrals, "
        "guidelines, CPT/ICD codes, quarters, peer comparisons, or anything not in JSON.\n"
        f'If a detail is missing, write: "{NOT_AVAILABLE}"\n\n'
        "Output format (STRICT):\n"
        f"- Line 1 exactly: Executive Brief: Provider {provider_id}\n"
        "- 6-9 short sentences, plain text, no headings, no markdown\n"
        '- Then exactly 3 bullets starting with "•"\n'
        f"- Final line exactly: {LIMITATION_LINE}\n\n"
        "You MUST mention:\n"
        "- periods\n"
        "- label + stability_index\n"
        "- service_mix_drift + intensity_drift + pos_drift\n"
        "- top_service_code + top_service_share (first vs last) if present\n"
        "- weighted_allowed_mean (first vs last) if present\n"
        "- top_pos + top_pos_share (first vs last) if present\n"
        "- drivers\n\n"
        f"JSON facts:\n{packet}"
    )


def strip_markdown(text: str) -> str:
    text = (text or "").replace("**", "").replace("\x00", "").replace("\r\n", "\n")
    return re.sub(r"^[ \t]*[-*][ \t]+", "• ", text, flags=re.MULTILINE).strip()


def ensure_three_bullets(text: str) -> str:
    """Keep at most three bullets after the body, padding with review actions."""
    lines = [line.rstrip() for line in text.split("\n")]
    bullets = [line for line in lines if line.strip().startswith("•")][:3]
    body = "\n".join(line for line in lines if not line.strip().startswith("•")).strip()

    while len(bullets) < 3:
        bullets.append(REVIEW_ACTIONS[len(bullets)])

    return "\n".join(part for part in [body, *bullets] if part).strip()


def ensure_limitation_at_end(text: str) -> str:
    cleaned = re.sub(re.escape(LIMITATION_LINE) + r"\s*$", "", text, flags=re.IGNORECASE).strip()
    return f"{cleaned}\n{LIMITATION_LINE}"


def looks_hallucinated(text: str) -> bool:
    return _BANNED_RE.search(text) is not None


def _polish(text: str) -> str:
    return ensure_limitation_at_end(ensure_three_bullets(strip_markdown(text)))


def _pct(value) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{round_half_up(value * 100)}%"


def _num(value) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{round_half_up(value)}"


def fallback_brief(result: DriftResult) -> str:
    """Deterministic brief built straight from the drift result."""
    metrics = result.metrics_by_period
    first = metrics[0] if metrics else None
    last = metrics[-1] if metrics else None

    def get(m, attr):
        return getattr(m, attr) if m is not None else None

    span = "-".join(str(p) for p in result.periods) if result.periods else "selected period"
    drivers = result.drivers[:3]

    lines = [
        f"Executive Brief: Provider {result.provider_id}",
        f"Status: {result.label.value} (Stability Index: {result.stability_index}%) across {span}.",
        f"Drift signals: Service Mix Drift {result.service_mix_drift}%, "
        f"Intensity Drift {result.intensity_drift}%, "
        f"Place-of-Service Drift {result.pos_drift}%.",
        f"Top service code: {get(last, 'top_service_code') or NOT_AVAILABLE}; share changed from "
        f"{_pct(get(first, 'top_service_share'))} to {_pct(get(last, 'top_service_share'))}.",
        f"Service diversity (entropy) changed from {_num(get(first, 'service_entropy'))} "
        f"to {_num(get(last, 'service_entropy'))}.",
        f"Intensity proxy (weighted allowed mean) changed from "
        f"{_num(get(first, 'weighted_allowed_mean'))} to {_num(get(last, 'weighted_allowed_mean'))}.",
        f"Top POS: {get(last, 'top_pos') or NOT_AVAILABLE}; share changed from "
        f"{_pct(get(first, 'top_pos_share'))} to {_pct(get(last, 'top_pos_share'))}.",
        f"Primary drivers: {' '.join(drivers)}" if drivers else f"Primary drivers: {NOT_AVAILABLE}",
        "Interpretation: this is a behavioral pattern shift signal for oversight; "
        "it does not assess clinical correctness.",
        "",
        "• Review top service code share + entropy shift (first vs last period).",
        "• Confirm whether intensity/POS changes align with operational context.",
        "• If unexplained, run a small sample review and document rationale.",
    ]
    return ensure_limitation_at_end(ensure_three_bullets("\n".join(lines)))


def generate_brief(result: DriftResult, enricher: NarrativeEnricher | None = None) -> Brief:
    """Ask the enricher for a brief, falling back whenever it can't be trusted."""
    fallback = fallback_brief(result)
    if enricher is None:
        return Brief(text=fallback, source="fallback")

    facts = brief_facts(result)
    try:
        text = enricher.enrich(facts)
    except UpstreamServiceError as e:
        return Brief(text=fallback, source="fallback",
                     warning=f"Narrative service failed ({e}); served fallback.")

    if not text or not text.strip():
        return Brief(text=fallback, source="fallback",
                     warning="Narrative service returned an empty brief; served fallback.")

    out = _polish(text)

    # One stricter retry before giving up on the model
    if looks_hallucinated(out):
        try:
            retry = enricher.enrich(facts, strict=True)
        except UpstreamServiceError:
            retry = ""
        if retry and retry.strip():
            retried = _polish(retry)
            if not looks_hallucinated(retried):
                out = retried

    if looks_hallucinated(out):
        return Brief(text=fallback, source="fallback",
                     warning="Narrative service introduced details not in the dataset; "
                             "served factual fallback brief.")

    return Brief(text=out, source="ai")
