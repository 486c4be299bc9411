"""GEDCOM 5.5.1 export of a stored family tree."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from gedcom.element.element import Element

from gedcom_models import FamilyPerson, TreeExport

logger = logging.getLogger("familygarden.gedcom_exporter")


GEDCOM_MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN",
                 "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]

SOURCE_NAME = "FamilyGarden"
SOURCE_VERSION = "1.0"
DEFAULT_FILENAME = "arbre-genealogique.ged"


# ============================================================================
# Value Helpers
# ============================================================================

def format_gedcom_date(date_str: str | None) -> str | None:
    """Convert an ISO date or datetime ("1990-01-05") to GEDCOM ("5 JAN 1990")."""
    if not date_str:
        return None
    try:
        parsed = datetime.fromisoformat(date_str)
    except ValueError:
        return None
    return f"{parsed.day} {GEDCOM_MONTHS[parsed.month - 1]} {parsed.year}"


def escape_gedcom_value(value: str) -> str:
    """GEDCOM writes a literal @ as @@."""
    return value.replace("@", "@@")


def person_pointer(index: int) -> str:
    return f"@I{index + 1}@"


def family_pointer(index: int) -> str:
    return f"@F{index + 1}@"


def _element(level: int, tag: str, value: str = "", pointer: str = "") -> Element:
    return Element(level=level, pointer=pointer, tag=tag, value=value)


def _add_child(parent: Element, tag: str, value: str = "") -> Element:
    child = _element(parent.get_level() + 1, tag, value)
    parent.add_child_element(child)
    return child


def _add_event(parent: Element, tag: str, event_date: str | None, place: str | None) -> Element | None:
    """Add a BIRT/DEAT/BURI/MARR style event with optional DATE and PLAC."""
    if not event_date and not place:
        return None
    event = _add_child(parent, tag)
    formatted = format_gedcom_date(event_date)
    if formatted:
        _add_child(event, "DATE", formatted)
    if place:
        _add_child(event, "PLAC", escape_gedcom_value(place))
    return event


# ============================================================================
# Family Grouping
# ============================================================================

@dataclass
class FamilyGroup:
    key: str
    person1_id: str | None = None
    person2_id: str | None = None
    child_ids: list[str] = field(default_factory=list)
    marriage_date: str | None = None
    marriage_place: str | None = None
    divorce_date: str | None = None


def build_family_groups(data: TreeExport) -> list[FamilyGroup]:
    """
    One family per union, then one per parent pair for relationships that
    have no union and whose child is not already placed in a union family.
    """
    families: list[FamilyGroup] = []

    for union in data.unions:
        child_ids = [r.child_id for r in data.relationships if r.union_id == union.id]
        families.append(FamilyGroup(
            key=union.id,
            person1_id=union.person1_id,
            person2_id=union.person2_id,
            child_ids=list(dict.fromkeys(child_ids)),
            marriage_date=union.start_date,
            marriage_place=union.start_place,
            divorce_date=union.end_date,
        ))

    handled_children = {child_id for family in families for child_id in family.child_ids}
    orphans = [
        r for r in data.relationships
        if not r.union_id and r.child_id not in handled_children
    ]

    orphan_families: dict[str, FamilyGroup] = {}
    for relationship in orphans:
        parent_ids = sorted(r.parent_id for r in orphans if r.child_id == relationship.child_id)
        key = "-".join(parent_ids)
        if key not in orphan_families:
            orphan_families[key] = FamilyGroup(
                key=f"generated-{key}",
                person1_id=parent_ids[0],
                person2_id=parent_ids[1] if len(parent_ids) > 1 else None,
            )
        group = orphan_families[key]
        if relationship.child_id not in group.child_ids:
            group.child_ids.append(relationship.child_id)

    families.extend(orphan_families.values())
    return families


# ============================================================================
# Record Builders
# ============================================================================

def build_header(tree_name: str, today: date) -> Element:
    head = _element(0, "HEAD")
    source = _add_child(head, "SOUR", SOURCE_NAME)
    _add_child(source, "NAME", SOURCE_NAME)
    _add_child(source, "VERS", SOURCE_VERSION)
    _add_child(head, "DEST", "ANY")
    _add_child(head, "DATE", format_gedcom_date(today.isoformat()))
    gedc = _add_child(head, "GEDC")
    _add_child(gedc, "VERS", "5.5.1")
    _add_child(gedc, "FORM", "LINEAGE-LINKED")
    _add_child(head, "CHAR", "UTF-8")
    if tree_name:
        _add_child(head, "NOTE", escape_gedcom_value(tree_name))
    return head


def build_individual(
    person: FamilyPerson,
    pointer: str,
    spouse_family_pointers: list[str],
    child_family_pointers: list[str],
) -> Element:
    indi = _element(0, "INDI", pointer=pointer)

    first_name = person.first_names or ""
    last_name = person.last_name or ""
    name = _add_child(indi, "NAME", f"{escape_gedcom_value(first_name)} /{escape_gedcom_value(last_name)}/")
    if first_name:
        _add_child(name, "GIVN", escape_gedcom_value(first_name))
    if last_name:
        _add_child(name, "SURN", escape_gedcom_value(last_name))
    if person.maiden_name:
        _add_child(name, "_MARNM", escape_gedcom_value(person.maiden_name))

    _add_child(indi, "SEX", {"male": "M", "female": "F"}.get(person.gender, "U"))

    _add_event(indi, "BIRT", person.birth_date, person.birth_place)

    if not person.is_alive or person.death_date or person.death_place:
        death = _add_event(indi, "DEAT", person.death_date, person.death_place)
        if death is None:
            # Deceased, no details known
            death = _add_child(indi, "DEAT")
            _add_child(death, "TYPE", "Y")

    _add_event(indi, "BURI", person.burial_date, person.burial_place)

    if person.occupation:
        _add_child(indi, "OCCU", escape_gedcom_value(person.occupation))
    if person.nationality:
        _add_child(indi, "NATI", escape_gedcom_value(person.nationality))
    if person.biography:
        _add_child(indi, "NOTE", escape_gedcom_value(person.biography))

    for family_id in spouse_family_pointers:
        _add_child(indi, "FAMS", family_id)
    for family_id in child_family_pointers:
        _add_child(indi, "FAMC", family_id)

    return indi


def build_family(
    family: FamilyGroup,
    pointer: str,
    persons_by_id: dict[str, FamilyPerson],
    pointers_by_person: dict[str, str],
) -> Element:
    fam = _element(0, "FAM", pointer=pointer)

    # Partners are stored unordered; gender decides HUSB/WIFE when known
    if family.person1_id in pointers_by_person:
        partner = persons_by_id[family.person1_id]
        tag = "WIFE" if partner.gender == "female" else "HUSB"
        _add_child(fam, tag, pointers_by_person[family.person1_id])
    if family.person2_id in pointers_by_person:
        partner = persons_by_id[family.person2_id]
        tag = "HUSB" if partner.gender == "male" else "WIFE"
        _add_child(fam, tag, pointers_by_person[family.person2_id])

    for child_id in family.child_ids:
        if child_id in pointers_by_person:
            _add_child(fam, "CHIL", pointers_by_person[child_id])

    _add_event(fam, "MARR", family.marriage_date, family.marriage_place)

    if family.divorce_date:
        divorce = _add_child(fam, "DIV")
        formatted = format_gedcom_date(family.divorce_date)
        if formatted:
            _add_child(divorce, "DATE", formatted)

    return fam


# ============================================================================
# Export GEDCOM
# ============================================================================

def elements_to_gedcom(elements: list[Element]) -> str:
    """Serialize top-level elements and their children to GEDCOM text."""
    lines = []

    def element_to_lines(element: Element, level: int = 0):
        """Recursively convert an element to GEDCOM lines."""
        pointer = element.get_pointer() or ""
        tag = element.get_tag()
        value = element.get_value() or ""

        if pointer:
            line = f"{level} {pointer} {tag}"
        else:
            line = f"{level} {tag}"

        if value:
            line += f" {value}"

        lines.append(line)

        for child in element.get_child_elements():
            element_to_lines(child, level + 1)

    for element in elements:
        element_to_lines(element, 0)

    return "\n".join(lines) + "\n"


def export_to_gedcom(data: TreeExport, today: date | None = None) -> str:
    """Export a tree (persons, parent/child links, unions) as a GEDCOM 5.5.1 document."""
    today = today or date.today()

    pointers_by_person = {
        person.id: person_pointer(index) for index, person in enumerate(data.persons)
    }
    persons_by_id = {person.id: person for person in data.persons}

    families = build_family_groups(data)
    pointers_by_family = {
        family.key: family_pointer(index) for index, family in enumerate(families)
    }

    elements = [build_header(data.tree.name, today)]

    for person in data.persons:
        spouse_families = [
            pointers_by_family[f.key] for f in families
            if person.id in (f.person1_id, f.person2_id)
        ]
        child_families = [
            pointers_by_family[f.key] for f in families
            if person.id in f.child_ids
        ]
        elements.append(build_individual(
            person, pointers_by_person[person.id], spouse_families, child_families,
        ))

    for family in families:
        elements.append(build_family(
            family, pointers_by_family[family.key], persons_by_id, pointers_by_person,
        ))

    elements.append(_element(0, "TRLR"))

    logger.info(
        f"Exported tree '{data.tree.name}': {len(data.persons)} individuals, {len(families)} families"
    )
    return elements_to_gedcom(elements)
