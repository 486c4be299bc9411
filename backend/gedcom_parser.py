"""GEDCOM 5.5 / 5.5.1 parsing for family tree import.

Reads raw file content into ParsedIndividual / ParsedFamily records. The
parser never raises on malformed content: lines it cannot read are dropped,
dates it cannot read are left unset, and problems with the result as a whole
are reported through ParseResult.errors and ParseResult.warnings.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from gedcom_models import ParsedFamily, ParsedIndividual, ParseResult

logger = logging.getLogger("familygarden.gedcom_parser")


# ============================================================================
# Line Parsing
# ============================================================================

# LEVEL [@POINTER@] TAG [VALUE], e.g. "0 @I1@ INDI", "2 DATE 1 JAN 1990"
LINE_PATTERN = re.compile(r"^([0-9]+)\s+(@[^@]+@)?\s*(\S+)\s*(.*)?$")

BYTE_ORDER_MARK = "\ufeff"


@dataclass
class GedcomLine:
    level: int
    tag: str
    value: str
    pointer: str | None = None


def parse_line(line: str) -> GedcomLine | None:
    """Split one GEDCOM line into its parts, or None if it doesn't look like one."""
    trimmed = line.strip().lstrip(BYTE_ORDER_MARK).strip()
    if not trimmed:
        return None

    match = LINE_PATTERN.match(trimmed)
    if not match:
        return None

    level, pointer, tag, value = match.groups()
    return GedcomLine(
        level=int(level),
        tag=tag.upper(),
        value=(value or "").strip(),
        pointer=pointer.replace("@", "") if pointer else None,
    )


# ============================================================================
# Field Parsing (dates, names)
# ============================================================================

MONTHS = {
    "JAN": "01", "FEB": "02", "MAR": "03", "APR": "04", "MAY": "05", "JUN": "06",
    "JUL": "07", "AUG": "08", "SEP": "09", "OCT": "10", "NOV": "11", "DEC": "12",
}

# Long forms first, otherwise "ESTIMATED 1900" would lose only "EST".
DATE_QUALIFIER_PATTERN = re.compile(
    r"^(ABOUT|ABT|ESTIMATED|EST|CALCULATED|CAL|BEFORE|BEF|AFTER|AFT)\s*",
    re.IGNORECASE,
)
FULL_DATE_PATTERN = re.compile(r"^([0-9]{1,2})\s+([A-Z]{3})\s+([0-9]{4})$", re.IGNORECASE)
MONTH_YEAR_PATTERN = re.compile(r"^([A-Z]{3})\s+([0-9]{4})$", re.IGNORECASE)
YEAR_PATTERN = re.compile(r"^([0-9]{4})$")


def parse_gedcom_date(date_str: str | None) -> str | None:
    """
    Convert a GEDCOM date to ISO format (YYYY-MM-DD).

    Handles:
    - "1 JAN 1990"  -> "1990-01-01"
    - "JAN 1990"    -> "1990-01-01"
    - "1990"        -> "1990-01-01"
    - "ABT 1925"    -> "1925-01-01" (ABT/EST/CAL/BEF/AFT and long forms are dropped)

    Returns None for anything else.
    """
    if not date_str:
        return None

    clean = DATE_QUALIFIER_PATTERN.sub("", date_str, count=1).strip()

    match = FULL_DATE_PATTERN.match(clean)
    if match:
        day, month, year = match.groups()
        month_num = MONTHS.get(month.upper())
        if month_num:
            return f"{year}-{month_num}-{day.zfill(2)}"

    match = MONTH_YEAR_PATTERN.match(clean)
    if match:
        month, year = match.groups()
        month_num = MONTHS.get(month.upper())
        if month_num:
            return f"{year}-{month_num}-01"

    match = YEAR_PATTERN.match(clean)
    if match:
        return f"{match.group(1)}-01-01"

    return None


NAME_PATTERN = re.compile(r"^([^/]*)\s*/([^/]*)/")
MAIDEN_NAME_PATTERN = re.compile(r"\((?:née|nee|born)\s+([^)]+)\)", re.IGNORECASE)


def parse_name(name_value: str) -> dict[str, Any]:
    """
    Split a GEDCOM NAME value ("Jean /Martin/") into first and last name.

    A parenthetical "(née Dupont)" anywhere in the value is kept as the maiden
    name. Without a /surname/ pair, the whole value is the first name.
    """
    maiden_match = MAIDEN_NAME_PATTERN.search(name_value)
    maiden_name = maiden_match.group(1).strip() if maiden_match else None

    match = NAME_PATTERN.match(name_value)
    if match:
        first_name, last_name = match.groups()
        return {
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "maiden_name": maiden_name or None,
        }

    return {
        "first_name": name_value.strip(),
        "last_name": "",
        "maiden_name": maiden_name or None,
    }


def _strip_pointer(value: str) -> str:
    return value.replace("@", "")


# ============================================================================
# Record Assembly
# ============================================================================

class GedcomParseState:
    """
    Rolling state for the single forward pass over a file.

    Holds the open top-level record (an individual, a family or nothing) and
    the tag of the last level-1 line, which decides what level-2 lines mean.
    Records are appended to the result only when the next level-0 line
    arrives or the input ends.
    """

    def __init__(self) -> None:
        self.result = ParseResult()
        self.individual: ParsedIndividual | None = None
        self.family: ParsedFamily | None = None
        self.context_tag: str | None = None

    def step(self, line: GedcomLine) -> None:
        if line.level == 0:
            self._open_record(line)
        elif line.level == 1:
            self.context_tag = line.tag
            if self.individual is not None:
                self._individual_field(line)
            if self.family is not None:
                self._family_field(line)
        elif line.level == 2:
            if self.individual is not None:
                self._individual_detail(line)
            if self.family is not None:
                self._family_detail(line)

    def close(self) -> ParseResult:
        self._commit()
        return self.result

    def _commit(self) -> None:
        if self.individual is not None and self.individual.id:
            self.result.individuals.append(self.individual)
        if self.family is not None and self.family.id:
            self.result.families.append(self.family)
        self.individual = None
        self.family = None
        self.context_tag = None

    def _open_record(self, line: GedcomLine) -> None:
        self._commit()
        if line.tag == "INDI" and line.pointer:
            self.individual = ParsedIndividual(id=line.pointer)
        elif line.tag == "FAM" and line.pointer:
            self.family = ParsedFamily(id=line.pointer)

    def _individual_field(self, line: GedcomLine) -> None:
        individual = self.individual
        if line.tag == "NAME":
            name = parse_name(line.value)
            individual.first_name = name["first_name"]
            individual.last_name = name["last_name"]
            if name["maiden_name"]:
                individual.maiden_name = name["maiden_name"]
        elif line.tag == "SEX":
            individual.gender = {"M": "male", "F": "female"}.get(line.value, "unknown")
        elif line.tag == "NOTE":
            individual.notes = line.value
        # BIRT, DEAT and OCCU carry their data on level-2 lines

    def _family_field(self, line: GedcomLine) -> None:
        family = self.family
        if line.tag == "HUSB":
            family.husband_id = _strip_pointer(line.value)
        elif line.tag == "WIFE":
            family.wife_id = _strip_pointer(line.value)
        elif line.tag == "CHIL":
            family.children_ids.append(_strip_pointer(line.value))

    def _individual_detail(self, line: GedcomLine) -> None:
        individual = self.individual
        if self.context_tag == "BIRT":
            if line.tag == "DATE":
                individual.birth_date = parse_gedcom_date(line.value)
            elif line.tag == "PLAC":
                individual.birth_place = line.value
        elif self.context_tag == "DEAT":
            if line.tag == "DATE":
                individual.death_date = parse_gedcom_date(line.value)
            elif line.tag == "PLAC":
                individual.death_place = line.value
        elif self.context_tag == "OCCU":
            # Some exporters nest the occupation text directly instead of under TYPE
            if line.tag == "TYPE" or not individual.occupation:
                individual.occupation = line.value

    def _family_detail(self, line: GedcomLine) -> None:
        family = self.family
        if self.context_tag == "MARR":
            if line.tag == "DATE":
                family.marriage_date = parse_gedcom_date(line.value)
            elif line.tag == "PLAC":
                family.marriage_place = line.value
        elif self.context_tag == "DIV":
            if line.tag == "DATE":
                family.divorce_date = parse_gedcom_date(line.value)


# ============================================================================
# Public API
# ============================================================================

def parse_gedcom(content: str) -> ParseResult:
    """Parse GEDCOM content into individuals and families."""
    lines = content.replace("\r\n", "\n").replace("\r", "\n").split("\n")

    state = GedcomParseState()
    for raw_line in lines:
        parsed = parse_line(raw_line)
        if parsed is None:
            continue
        state.step(parsed)

    result = state.close()

    if not result.individuals:
        result.errors.append("Aucun individu trouvé dans le fichier GEDCOM")

    for individual in result.individuals:
        if not individual.first_name and not individual.last_name:
            result.warnings.append(f"Individu {individual.id} n'a pas de nom")

    logger.debug(
        f"Parsed {len(result.individuals)} individuals and {len(result.families)} families "
        f"({len(result.errors)} errors, {len(result.warnings)} warnings)"
    )
    return result


def is_valid_gedcom_file(content: str) -> bool:
    """Quick check before a full parse: a HEAD (or INDI/FAM) record within the first 10 lines."""
    for line in content.split("\n")[:10]:
        parsed = parse_line(line)
        if parsed is None or parsed.level != 0:
            continue
        # Files without a header that start directly with records are accepted too
        if parsed.tag in ("HEAD", "INDI", "FAM"):
            return True
    return False
