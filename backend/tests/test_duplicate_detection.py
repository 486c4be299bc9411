"""Tests for duplicate detection and resolution."""

import os
import pytest
import sys

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gedcom_models import (
    DuplicateResolution,
    ExistingPerson,
    ParsedFamily,
    ParsedIndividual,
)
from duplicate_detection import (
    normalize,
    extract_year,
    levenshtein_distance,
    string_similarity,
    calculate_match_score,
    detect_duplicates,
    apply_resolutions,
    UnresolvedDuplicateError,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def jean():
    return ParsedIndividual(
        id="I1",
        first_name="Jean",
        last_name="Martin",
        gender="male",
        birth_date="1920-03-12",
        birth_place="Lyon, France",
    )


@pytest.fixture
def existing_jean():
    return ExistingPerson(
        id="p-1",
        first_names="Jean",
        last_name="Martin",
        gender="male",
        birth_date="1920-03-12",
        birth_place="Lyon, France",
    )


# ============================================================================
# String Helper Tests
# ============================================================================

class TestStringHelpers:
    """Tests for normalization, year extraction and edit distance."""

    def test_normalize(self):
        assert normalize("Élodie") == "elodie"
        assert normalize("Saint-Étienne, France") == "saintetiennefrance"
        assert normalize("  O'Brien ") == "obrien"
        assert normalize(None) == ""
        assert normalize("") == ""

    def test_extract_year(self):
        assert extract_year("1920-03-12") == 1920
        assert extract_year("ABT 1850") == 1850
        assert extract_year("12 MAR") is None
        assert extract_year(None) is None

    def test_levenshtein_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3
        assert levenshtein_distance("martin", "martin") == 0
        assert levenshtein_distance("martin", "martyn") == 1


class TestStringSimilarity:
    """Tests for the 0-1 similarity measure."""

    def test_identical(self):
        assert string_similarity("martin", "martin") == 1

    def test_identical_after_normalization(self):
        assert string_similarity("Hélène", "helene") == 1
        assert string_similarity("Jean-Pierre", "jean pierre") == 1

    def test_containment(self):
        assert string_similarity("martin", "martinez") == 0.8
        assert string_similarity("Lyon", "Lyon, France") == 0.8

    def test_empty(self):
        assert string_similarity("", "anything") == 0
        assert string_similarity("anything", None) == 0
        assert string_similarity("!!!", "abc") == 0

    def test_edit_distance_for_short_strings(self):
        # one substitution over six characters
        assert string_similarity("Martin", "Martyn") == pytest.approx(1 - 1 / 6)

    def test_completely_different(self):
        assert string_similarity("abc", "xyz") == 0

    def test_no_edit_distance_for_long_strings(self):
        a = "abcdefghijklmnopqrst"  # 20 characters
        b = "abcdefghijklmnopqrsx"
        assert string_similarity(a, b) == 0


# ============================================================================
# Scoring Tests
# ============================================================================

class TestMatchScore:
    """Tests for the additive match score."""

    def test_identical_persons(self, jean, existing_jean):
        score, reasons = calculate_match_score(jean, existing_jean)
        # 30 + 30 + 20 + 10 + 10
        assert score == 100
        assert reasons == [
            "Prénom identique",
            "Nom identique",
            "Même année de naissance",
            "Lieu de naissance similaire",
            "Même genre",
        ]

    def test_similar_names_and_close_year(self):
        imported = ParsedIndividual(id="I1", first_name="Jehan", last_name="Martyn",
                                    birth_date="1921-01-01")
        existing = ExistingPerson(first_names="Jean", last_name="Martin", birth_date="1919-05-02")
        score, reasons = calculate_match_score(imported, existing)
        assert score == 20 + 20 + 10
        assert reasons == ["Prénom similaire", "Nom similaire", "Année de naissance proche"]

    def test_birth_year_too_far(self):
        imported = ParsedIndividual(id="I1", first_name="Jean", birth_date="1920-01-01")
        existing = ExistingPerson(first_names="Jean", birth_date="1923-01-01")
        score, reasons = calculate_match_score(imported, existing)
        assert score == 30
        assert reasons == ["Prénom identique"]

    def test_maiden_name_bonus_is_additive(self):
        imported = ParsedIndividual(id="I1", first_name="Marie", last_name="Dupont")
        existing = ExistingPerson(first_names="Marie", last_name="Martin", maiden_name="Dupont")
        score, reasons = calculate_match_score(imported, existing)
        assert score == 30 + 15
        assert "Nom de jeune fille correspondant" in reasons
        assert "Nom identique" not in reasons

    def test_maiden_name_and_last_name_both_count(self):
        imported = ParsedIndividual(id="I1", first_name="Marie", last_name="Dupont")
        existing = ExistingPerson(first_names="Marie", last_name="Dupont", maiden_name="Dupont")
        score, _ = calculate_match_score(imported, existing)
        assert score == 30 + 30 + 15

    def test_gender_mismatch_penalty(self, jean, existing_jean):
        same_score, _ = calculate_match_score(jean, existing_jean)
        other = existing_jean.model_copy(update={"gender": "female"})
        different_score, reasons = calculate_match_score(jean, other)
        assert same_score - different_score >= 30
        assert different_score == 100 - 10 - 30
        assert "Même genre" not in reasons

    def test_unknown_gender_is_neutral(self, jean, existing_jean):
        unknown = jean.model_copy(update={"gender": "unknown"})
        score, reasons = calculate_match_score(unknown, existing_jean)
        assert score == 90
        assert "Même genre" not in reasons

        missing = existing_jean.model_copy(update={"gender": None})
        score, _ = calculate_match_score(jean, missing)
        assert score == 90

    def test_both_unknown_gender_gets_no_bonus(self):
        imported = ParsedIndividual(id="I1", first_name="Alex", gender="unknown")
        existing = ExistingPerson(first_names="Alex", gender="unknown")
        score, _ = calculate_match_score(imported, existing)
        assert score == 30

    def test_score_clamped_at_zero(self):
        imported = ParsedIndividual(id="I1", first_name="Paul", gender="male")
        existing = ExistingPerson(first_names="Zoé", gender="female")
        score, reasons = calculate_match_score(imported, existing)
        assert score == 0
        assert reasons == []

    def test_place_needs_both_sides(self, jean):
        existing = ExistingPerson(first_names="Jean", last_name="Martin")
        score, reasons = calculate_match_score(jean, existing)
        assert score == 60
        assert "Lieu de naissance similaire" not in reasons


# ============================================================================
# Detection Tests
# ============================================================================

class TestDetectDuplicates:
    """Tests for best-match selection and the duplicate/unique split."""

    def test_threshold_is_inclusive(self):
        # first name (30) + birth year (20) = exactly 50
        imported = ParsedIndividual(id="I1", first_name="Jean", last_name="Martin",
                                    birth_date="1990-01-01")
        existing = ExistingPerson(id="p-1", first_names="Jean", last_name="Dubois",
                                  birth_date="1990-05-03")
        score, _ = calculate_match_score(imported, existing)
        assert score == 50

        result = detect_duplicates([imported], [existing])
        assert len(result.duplicates) == 1
        assert result.duplicates[0].confidence == 50
        assert result.unique_persons == []

        result = detect_duplicates([imported], [existing], threshold=51)
        assert result.duplicates == []
        assert result.unique_persons == [imported]

    def test_best_match_selected(self, jean):
        weak = ExistingPerson(id="weak", first_names="Jean", last_name="Martin")
        strong = ExistingPerson(id="strong", first_names="Jean", last_name="Martin",
                                birth_date="1920-01-01", gender="male")
        result = detect_duplicates([jean], [weak, strong])
        assert len(result.duplicates) == 1
        match = result.duplicates[0]
        assert match.existing_person.id == "strong"
        assert match.confidence == 90
        assert match.imported_person is jean

    def test_first_match_wins_ties(self, jean, existing_jean):
        twin = existing_jean.model_copy(update={"id": "p-2"})
        result = detect_duplicates([jean], [existing_jean, twin])
        assert result.duplicates[0].existing_person.id == "p-1"

    def test_no_existing_persons(self, jean):
        result = detect_duplicates([jean], [])
        assert result.duplicates == []
        assert result.unique_persons == [jean]

    def test_empty_import(self, existing_jean):
        result = detect_duplicates([], [existing_jean])
        assert result.duplicates == []
        assert result.unique_persons == []

    def test_partition_is_total(self, existing_jean):
        imported = [
            ParsedIndividual(id="I1", first_name="Jean", last_name="Martin", gender="male",
                             birth_date="1920-01-01"),
            ParsedIndividual(id="I2", first_name="Claire", last_name="Petit"),
            ParsedIndividual(id="I3", first_name="Jean", last_name="Martin", gender="female"),
            ParsedIndividual(id="I4"),
        ]
        others = [existing_jean, ExistingPerson(id="p-9", first_names="Claire", last_name="Petit")]
        result = detect_duplicates(imported, others)

        duplicate_ids = {m.imported_person.id for m in result.duplicates}
        unique_ids = {p.id for p in result.unique_persons}
        assert len(result.duplicates) + len(result.unique_persons) == len(imported)
        assert duplicate_ids.isdisjoint(unique_ids)
        assert duplicate_ids | unique_ids == {"I1", "I2", "I3", "I4"}
        assert duplicate_ids == {"I1", "I2"}

    def test_camel_case_serialization(self, jean, existing_jean):
        data = detect_duplicates([jean], [existing_jean]).model_dump(by_alias=True)
        match = data["duplicates"][0]
        assert match["importedPerson"]["firstName"] == "Jean"
        assert match["existingPerson"]["first_names"] == "Jean"
        assert match["matchReasons"][0] == "Prénom identique"
        assert data["uniquePersons"] == []


# ============================================================================
# Resolution Tests
# ============================================================================

class TestApplyResolutions:
    """Tests for turning create/skip decisions into an import plan."""

    @pytest.fixture
    def check_result(self, jean, existing_jean):
        imported = [
            jean,
            ParsedIndividual(id="I2", first_name="Claire", last_name="Petit"),
        ]
        return detect_duplicates(imported, [existing_jean])

    def test_skip_excludes_duplicate(self, check_result):
        families = [ParsedFamily(id="F1", husband_id="I1", children_ids=["I2"])]
        plan = apply_resolutions(
            check_result,
            families,
            [DuplicateResolution(imported_id="I1", existing_id="p-1", decision="skip")],
        )
        assert [p.id for p in plan.individuals] == ["I2"]
        assert plan.skipped == {"I1": "p-1"}
        assert plan.families == families

    def test_skip_defaults_to_matched_person(self, check_result):
        plan = apply_resolutions(
            check_result, [], [DuplicateResolution(imported_id="I1", decision="skip")]
        )
        assert plan.skipped == {"I1": "p-1"}

    def test_create_keeps_duplicate(self, check_result):
        plan = apply_resolutions(
            check_result, [], [DuplicateResolution(imported_id="I1", decision="create")]
        )
        assert [p.id for p in plan.individuals] == ["I2", "I1"]
        assert plan.skipped == {}

    def test_merge_is_imported_as_new_person(self, check_result):
        plan = apply_resolutions(
            check_result, [], [DuplicateResolution(imported_id="I1", decision="merge")]
        )
        assert [p.id for p in plan.individuals] == ["I2", "I1"]

    def test_unresolved_duplicate(self, check_result):
        with pytest.raises(UnresolvedDuplicateError) as excinfo:
            apply_resolutions(check_result, [], [])
        assert excinfo.value.imported_ids == ["I1"]
        assert isinstance(excinfo.value, ValueError)

    def test_resolution_from_camel_case(self):
        resolution = DuplicateResolution.model_validate(
            {"importedId": "I1", "existingId": "p-1", "decision": "skip"}
        )
        assert resolution.imported_id == "I1"
        assert resolution.existing_id == "p-1"
