"""Duplicate detection between imported GEDCOM individuals and an existing tree."""

import logging
import re
import unicodedata

from gedcom_models import (
    DuplicateCheckResult,
    DuplicateMatch,
    DuplicateResolution,
    ExistingPerson,
    ImportPlan,
    ParsedFamily,
    ParsedIndividual,
)

logger = logging.getLogger("familygarden.duplicate_detection")


DEFAULT_THRESHOLD = 50

# Edit distance is only computed below this many normalized characters
LEVENSHTEIN_MAX_LENGTH = 20

KNOWN_GENDERS = ("male", "female", "other")


class UnresolvedDuplicateError(ValueError):
    """Raised when an import plan is requested before every duplicate has a decision."""

    def __init__(self, imported_ids: list[str]):
        self.imported_ids = imported_ids
        super().__init__(f"No decision for imported persons: {', '.join(imported_ids)}")


# ============================================================================
# String Helpers
# ============================================================================

def normalize(value: str | None) -> str:
    """Lowercase, drop diacritics and keep only [a-z0-9]."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]", "", stripped)


def extract_year(date_str: str | None) -> int | None:
    """First 4-digit run in a date string."""
    if not date_str:
        return None
    match = re.search(r"[0-9]{4}", date_str)
    return int(match.group(0)) if match else None


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for insertion, deletion and substitution."""
    previous = list(range(len(a) + 1))
    for i, char_b in enumerate(b, start=1):
        current = [i]
        for j, char_a in enumerate(a, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], current[j - 1], previous[j]) + 1)
        previous = current
    return previous[-1]


def string_similarity(a: str | None, b: str | None) -> float:
    """
    Similarity between two strings, from 0.0 to 1.0.

    - 1.0 when equal after normalization
    - 0.8 when one contains the other
    - 1 - distance / longest length for short strings (both under 20 chars)
    - 0.0 otherwise, or when either side is empty
    """
    norm_a = normalize(a)
    norm_b = normalize(b)

    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0
    if norm_a in norm_b or norm_b in norm_a:
        return 0.8

    if len(norm_a) < LEVENSHTEIN_MAX_LENGTH and len(norm_b) < LEVENSHTEIN_MAX_LENGTH:
        max_len = max(len(norm_a), len(norm_b))
        distance = levenshtein_distance(norm_a, norm_b)
        return max(0.0, 1 - distance / max_len)

    return 0.0


# ============================================================================
# Scoring
# ============================================================================

def calculate_match_score(
    imported: ParsedIndividual,
    existing: ExistingPerson,
) -> tuple[int, list[str]]:
    """
    Score how likely an imported individual is the same as an existing person.

    Points:
    - First name: 30 identical / 20 similar
    - Last name: 30 identical / 20 similar
    - Maiden name matching the imported last name: +15
    - Birth year: 20 same / 10 within two years
    - Birth place: 10 similar
    - Gender: +10 same, -30 different (only when both are known)

    The sum is clamped to 0-100 at the end.

    Returns:
        (score, reasons) where reasons are the labels shown to the user
    """
    score = 0
    reasons: list[str] = []

    first_name_sim = string_similarity(imported.first_name, existing.first_names)
    if first_name_sim >= 0.9:
        score += 30
        reasons.append("Prénom identique")
    elif first_name_sim >= 0.7:
        score += 20
        reasons.append("Prénom similaire")

    last_name_sim = string_similarity(imported.last_name, existing.last_name)
    if last_name_sim >= 0.9:
        score += 30
        reasons.append("Nom identique")
    elif last_name_sim >= 0.7:
        score += 20
        reasons.append("Nom similaire")

    if existing.maiden_name:
        if string_similarity(imported.last_name, existing.maiden_name) >= 0.9:
            score += 15
            reasons.append("Nom de jeune fille correspondant")

    imported_year = extract_year(imported.birth_date)
    existing_year = extract_year(existing.birth_date)
    if imported_year and existing_year:
        if imported_year == existing_year:
            score += 20
            reasons.append("Même année de naissance")
        elif abs(imported_year - existing_year) <= 2:
            score += 10
            reasons.append("Année de naissance proche")

    if imported.birth_place and existing.birth_place:
        if string_similarity(imported.birth_place, existing.birth_place) >= 0.7:
            score += 10
            reasons.append("Lieu de naissance similaire")

    if imported.gender in KNOWN_GENDERS and existing.gender in KNOWN_GENDERS:
        if imported.gender == existing.gender:
            score += 10
            reasons.append("Même genre")
        else:
            # Different gender is a strong negative signal
            score -= 30

    return max(0, min(100, score)), reasons


# ============================================================================
# Detection
# ============================================================================

def detect_duplicates(
    imported_persons: list[ParsedIndividual],
    existing_persons: list[ExistingPerson],
    threshold: int = DEFAULT_THRESHOLD,
) -> DuplicateCheckResult:
    """
    Split imported individuals into likely duplicates and unique persons.

    Each imported individual keeps only its best existing match scoring at
    least `threshold`; on equal scores the first existing person wins.

    Returns:
        DuplicateCheckResult where every imported individual appears exactly
        once, either in `duplicates` or in `unique_persons`
    """
    result = DuplicateCheckResult()

    for imported in imported_persons:
        best_match: DuplicateMatch | None = None

        for existing in existing_persons:
            score, reasons = calculate_match_score(imported, existing)
            if score < threshold:
                continue
            if best_match is None or score > best_match.confidence:
                best_match = DuplicateMatch(
                    imported_person=imported,
                    existing_person=existing,
                    confidence=score,
                    match_reasons=reasons,
                )

        if best_match:
            logger.debug(
                f"Imported {imported.id} matches existing {best_match.existing_person.id} "
                f"({best_match.confidence}%)"
            )
            result.duplicates.append(best_match)
        else:
            result.unique_persons.append(imported)

    logger.info(
        f"Duplicate check: {len(imported_persons)} imported vs {len(existing_persons)} existing, "
        f"{len(result.duplicates)} possible duplicates (threshold {threshold})"
    )
    return result


def apply_resolutions(
    check_result: DuplicateCheckResult,
    families: list[ParsedFamily],
    resolutions: list[DuplicateResolution],
) -> ImportPlan:
    """
    Turn the user's per-duplicate decisions into the list of persons to create.

    Unique persons are always created. A duplicate marked "skip" is left out
    and remembered in `skipped` with the existing person it matched; any other
    decision creates it.

    Raises:
        UnresolvedDuplicateError: if a duplicate has no decision
    """
    decisions = {resolution.imported_id: resolution for resolution in resolutions}

    missing = [
        match.imported_person.id
        for match in check_result.duplicates
        if match.imported_person.id not in decisions
    ]
    if missing:
        raise UnresolvedDuplicateError(missing)

    plan = ImportPlan(individuals=list(check_result.unique_persons), families=list(families))

    for match in check_result.duplicates:
        imported_id = match.imported_person.id
        resolution = decisions[imported_id]

        if resolution.decision == "skip":
            plan.skipped[imported_id] = resolution.existing_id or match.existing_person.id
            continue
        if resolution.decision == "merge":
            # TODO: merge into the existing person once product defines which fields win
            logger.warning(f"Merge requested for {imported_id}; importing as a new person")
        plan.individuals.append(match.imported_person)

    logger.info(
        f"Import plan: {len(plan.individuals)} persons to create, {len(plan.skipped)} skipped"
    )
    return plan
