"""Selection language parser and evaluator.

Expressions are folded strictly left to right with no operator precedence:
``A or B and C`` is ``(A or B) and C``. ``not`` applies to the single term
that follows it.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from qmregions.errors import ParseError
from qmregions.model.spatial import SpatialIndex
from qmregions.model.state import SelectionResult, Target
from qmregions.model.store import Structure

logger = logging.getLogger(__name__)

_COMMA = re.compile(r"\s*,\s*")
_LEXEME = re.compile(r"[&|!]|[^\s&|!]+")
_ATOM_ITEM = re.compile(r"^\d+([-:]\d+)?$")
_RESIDUE_ITEM = re.compile(r"^\d+[A-Za-z]?([-:]\d+[A-Za-z]?)?$")


class Keyword(enum.Enum):
    """Selection predicates."""

    ID = "id"
    RESID = "resid"
    NAME = "name"
    RESNAME = "resname"
    SPHERE = "sphere"
    RESSPHERE = "ressphere"

    @property
    def target(self) -> Target:
        if self in (Keyword.RESID, Keyword.RESNAME, Keyword.RESSPHERE):
            return Target.RESIDUES
        return Target.ATOMS


class Conjunction(enum.Enum):
    AND = "and"
    OR = "or"


_KEYWORDS: Dict[str, Keyword] = {
    "id": Keyword.ID,
    "resid": Keyword.RESID,
    "name": Keyword.NAME,
    "resn": Keyword.RESNAME,
    "resname": Keyword.RESNAME,
    "sphere": Keyword.SPHERE,
    "s": Keyword.SPHERE,
    "ressphere": Keyword.RESSPHERE,
    "rs": Keyword.RESSPHERE,
}

_CONJUNCTIONS: Dict[str, Conjunction] = {
    "and": Conjunction.AND,
    "&": Conjunction.AND,
    "or": Conjunction.OR,
    "|": Conjunction.OR,
}

_NEGATIONS = ("not", "!")

# Name lists run to the next conjunction; keywords are valid names there.
_NAME_KEYWORDS = frozenset({Keyword.NAME, Keyword.RESNAME})


@dataclass(frozen=True)
class Term:
    """A predicate with its values.

    Attributes
    ----------
    keyword
        Predicate keyword.
    values
        Value items, already split on commas.
    negate
        Whether the term is preceded by ``not``.
    column
        0-based column of the keyword in the normalized text.
    """

    keyword: Keyword
    values: Tuple[str, ...]
    negate: bool = False
    column: int = 0

    @property
    def target(self) -> Target:
        return self.keyword.target


@dataclass(frozen=True)
class SelectionExpression:
    """Parsed selection: ``terms[0] conj[0] terms[1] conj[1] ...``."""

    terms: Tuple[Term, ...]
    conjunctions: Tuple[Conjunction, ...]
    text: str = ""


def _parse_error(message: str, fragment: str, column: int) -> ParseError:
    return ParseError(message, {"fragment": fragment, "column": column})


def _lex(text: str) -> List[Tuple[str, int]]:
    return [(match.group(0), match.start()) for match in _LEXEME.finditer(text)]


def parse_selection(text: str) -> SelectionExpression:
    """Parse selection text.

    Parameters
    ----------
    text
        Selection such as ``"resid 1-5 and not name CA,CB"``.

    Returns
    -------
    SelectionExpression
        Parsed terms and conjunctions.

    Raises
    ------
    ParseError
        If the text is empty, a keyword is unknown, a keyword has no values,
        a conjunction dangles, or a value is malformed.
    """

    normalized = _COMMA.sub(",", (text or "").strip())
    lexemes = _lex(normalized)
    if not lexemes:
        raise _parse_error("Empty selection", "", 0)

    terms: List[Term] = []
    conjunctions: List[Conjunction] = []
    position = 0
    while True:
        if position >= len(lexemes):
            fragment, column = lexemes[-1]
            raise _parse_error(f"Expected a selection term after '{fragment}'", fragment, column)
        negate = False
        word, column = lexemes[position]
        if word.lower() in _NEGATIONS:
            negate = True
            position += 1
            if position >= len(lexemes):
                raise _parse_error("Expected a selection term after 'not'", word, column)
            word, column = lexemes[position]
        keyword = _KEYWORDS.get(word.lower())
        if keyword is None:
            raise _parse_error(f"Unknown selection keyword '{word}'", word, column)
        position += 1

        values: List[str] = []
        while position < len(lexemes):
            value, value_column = lexemes[position]
            lowered = value.lower()
            if lowered in _CONJUNCTIONS:
                break
            if keyword not in _NAME_KEYWORDS and (lowered in _KEYWORDS or lowered in _NEGATIONS):
                raise _parse_error(
                    f"Missing 'and'/'or' before '{value}'", value, value_column
                )
            items = value.split(",")
            if any(not item for item in items):
                raise _parse_error(f"Empty list item in '{value}'", value, value_column)
            for item in items:
                _check_item(keyword, item, value_column)
            values.extend(items)
            position += 1
        if not values:
            raise _parse_error(f"Missing values for '{word}'", word, column)
        terms.append(_build_term(keyword, values, negate, word, column))

        if position >= len(lexemes):
            break
        conjunction, conjunction_column = lexemes[position]
        conjunctions.append(_CONJUNCTIONS[conjunction.lower()])
        position += 1
        if position >= len(lexemes):
            raise _parse_error(
                f"Dangling '{conjunction}' at end of selection", conjunction, conjunction_column
            )

    return SelectionExpression(tuple(terms), tuple(conjunctions), normalized)


def _check_item(keyword: Keyword, item: str, column: int) -> None:
    if keyword is Keyword.ID and not _ATOM_ITEM.match(item):
        raise _parse_error(f"Invalid atom id '{item}'", item, column)
    if keyword is Keyword.RESID and not _RESIDUE_ITEM.match(item):
        raise _parse_error(f"Invalid residue id '{item}'", item, column)


def _build_term(
    keyword: Keyword, values: List[str], negate: bool, word: str, column: int
) -> Term:
    if keyword in (Keyword.SPHERE, Keyword.RESSPHERE):
        if len(values) != 2:
            raise _parse_error(
                f"'{word}' takes a center atom id and a radius", " ".join(values), column
            )
        center, radius = values
        if not center.isdigit():
            raise _parse_error(f"Invalid sphere center '{center}'", center, column)
        try:
            radius_value = float(radius)
        except ValueError:
            raise _parse_error(f"Invalid sphere radius '{radius}'", radius, column) from None
        if radius_value < 0 or radius_value != radius_value:
            raise _parse_error(f"Sphere radius must be non-negative: '{radius}'", radius, column)
    return Term(keyword, tuple(values), negate, column)


class _Evaluator:
    def __init__(self, structure: Structure, spatial_index: Optional[SpatialIndex]) -> None:
        self._structure = structure
        self._index = spatial_index

    def _spatial(self) -> SpatialIndex:
        if self._index is None or not self._index.is_current(self._structure):
            self._index = SpatialIndex(self._structure)
        return self._index

    def term(self, term: Term) -> List[int]:
        structure = self._structure
        keyword = term.keyword
        if keyword is Keyword.ID:
            ids = list(structure.resolve_ids(Target.ATOMS, term.values))
        elif keyword is Keyword.RESID:
            ids = list(structure.resolve_ids(Target.RESIDUES, term.values))
        elif keyword is Keyword.NAME:
            ids = structure.atoms_named(term.values)
        elif keyword is Keyword.RESNAME:
            ids = structure.residues_named(term.values)
        elif keyword is Keyword.SPHERE:
            center, radius = int(term.values[0]), float(term.values[1])
            ids = [serial for serial, _ in self._spatial().sphere(center, radius)]
        else:
            center, radius = int(term.values[0]), float(term.values[1])
            ids = self._spatial().residue_sphere(center, radius)
        if term.negate:
            ids = self._complement(term.target, ids)
        return ids

    def _complement(self, target: Target, ids: Sequence[int]) -> List[int]:
        excluded = set(ids)
        if target is Target.ATOMS:
            return [atom.serial for atom in self._structure.atoms if atom.serial not in excluded]
        return [residue.index for residue in self._structure.residues if residue.index not in excluded]

    def to_atoms(self, target: Target, ids: Sequence[int]) -> List[int]:
        if target is Target.ATOMS:
            return list(ids)
        return self._structure.expand_residues(ids)


def evaluate(
    expression: SelectionExpression,
    structure: Structure,
    spatial_index: Optional[SpatialIndex] = None,
) -> SelectionResult:
    """Evaluate a parsed selection against a structure.

    Parameters
    ----------
    expression
        Parsed selection.
    structure
        Structure to select from.
    spatial_index
        Index used by sphere predicates; built on demand when omitted.

    Returns
    -------
    SelectionResult
        Residue indices when every term selects residues, atom serials
        otherwise. May be empty.

    Raises
    ------
    AmbiguousRangeError
        If an id range cannot be resolved.
    NotFoundError
        If a sphere center or an insertion-code range endpoint is missing.
    """

    evaluator = _Evaluator(structure, spatial_index)
    first = expression.terms[0]
    target = first.target
    running = evaluator.term(first)
    for conjunction, term in zip(expression.conjunctions, expression.terms[1:]):
        ids = evaluator.term(term)
        term_target = term.target
        if term_target is not target:
            running = evaluator.to_atoms(target, running)
            ids = evaluator.to_atoms(term_target, ids)
            target = Target.ATOMS
        if conjunction is Conjunction.OR:
            running = list(dict.fromkeys(running + ids))
        else:
            keep = set(ids)
            running = [item for item in running if item in keep]
    result = SelectionResult.of(target, running)
    logger.debug(
        "Selection '%s' matched %d %s", expression.text, len(result), result.target.value
    )
    return result


def select(
    text: str, structure: Structure, spatial_index: Optional[SpatialIndex] = None
) -> SelectionResult:
    """Parse and evaluate selection text."""
    return evaluate(parse_selection(text), structure, spatial_index)
