"""
Pattern matching over a document's element tree.

Walks every element of a parsed page in pre-order, applies the crawl's pattern
to each element's rendered text and keeps, per matched value, the most
specific element that still contains it. Surviving matches are folded into
crawl-wide match records together with the text of up to three ancestors.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from bs4 import BeautifulSoup, CData, NavigableString, Tag

# Number of enclosing elements whose text is attached to a match as context
CONTEXT_ANCESTORS = 3

EMAIL_REGEX = (
    r"(?:[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r'|"(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21\x23-\x5b\x5d-\x7f]|\\[\x01-\x09\x0b\x0c\x0e-\x7f])*")'
    r"@(?:(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?"
    r"|\[(?:(?:(2(5[0-5]|[0-4][0-9])|1[0-9][0-9]|[1-9]?[0-9]))\.){3}"
    r"(?:(2(5[0-5]|[0-4][0-9])|1[0-9][0-9]|[1-9]?[0-9])"
    r"|[a-z0-9-]*[a-z0-9]:(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21-\x5a\x53-\x7f]|\\[\x01-\x09\x0b\x0c\x0e-\x7f])+)\])"
)

# Elements whose boundaries separate words in rendered text
BLOCK_TAGS: frozenset[str] = frozenset((
    "address", "article", "aside", "blockquote", "body", "br", "dd", "details",
    "dialog", "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer",
    "form", "h1", "h2", "h3", "h4", "h5", "h6", "head", "header", "hr", "html",
    "li", "main", "nav", "ol", "option", "p", "pre", "section", "summary",
    "table", "tbody", "td", "tfoot", "th", "thead", "title", "tr", "ul",
))

# Script, style, comment and doctype strings are not visible text
TEXT_TYPES = (NavigableString, CData)

_BLOCK_END = object()

# Named patterns selectable by preset name: (source, flags)
PRESETS: Dict[str, Tuple[str, int]] = {
    "email": (EMAIL_REGEX, re.IGNORECASE),
}


def compile_pattern(source: Optional[str] = None, preset: Optional[str] = None) -> re.Pattern[str]:
    """
    Compile the crawl pattern from raw source text or a named preset.

    Exactly one of ``source`` and ``preset`` must be given. Invalid source
    text raises ``re.error``.
    """
    if (source is None) == (preset is None):
        raise ValueError("Give either a pattern source or a preset name, not both or neither")

    if preset is not None:
        try:
            preset_source, flags = PRESETS[preset.lower()]
        except KeyError:
            known = ", ".join(sorted(PRESETS))
            raise ValueError(f"Unknown pattern preset: {preset!r} (known: {known})") from None
        return re.compile(preset_source, flags)

    return re.compile(source)


def find_all(pattern: re.Pattern[str], text: str) -> Set[str]:
    """Return the distinct non-empty substrings of text matched by pattern."""
    if not text:
        return set()
    return {value for m in pattern.finditer(text) if (value := m.group(0))}


def render_text(element: Tag) -> str:
    """
    Visible text of an element and its descendants, in document order.

    Strings are concatenated as they appear, so inline markup never splits a
    word; block-level boundaries count as whitespace. Runs of whitespace are
    collapsed to a single space.
    """
    pieces: List[str] = []
    stack: List[object] = list(reversed(element.contents))
    while stack:
        node = stack.pop()
        if node is _BLOCK_END:
            pieces.append(" ")
        elif isinstance(node, Tag):
            if node.name in BLOCK_TAGS:
                pieces.append(" ")
                stack.append(_BLOCK_END)
            stack.extend(reversed(node.contents))
        elif type(node) in TEXT_TYPES:
            pieces.append(str(node))
    return " ".join("".join(pieces).split())


@dataclass(slots=True)
class Visit:
    """One element reached by the tree walk."""
    element: Tag
    ancestors: Tuple[Tag, ...]  # nearest parent first, root element last
    text: str


@dataclass(frozen=True, slots=True)
class MatchOutcome:
    """Result of matching a single element: no values means no match."""
    values: frozenset[str] = frozenset()

    @property
    def matched(self) -> bool:
        return bool(self.values)


NO_MATCH = MatchOutcome()


@dataclass(slots=True)
class MatchRecord:
    """All contexts in which one distinct value was found during a crawl."""
    value: str
    contexts: List[str] = field(default_factory=list)


def walk(doc: Tag) -> Iterator[Visit]:
    """
    Traverse the element tree depth-first, parent before children.

    The BeautifulSoup object is the document container, not an element: the
    walk starts at its top-level tags, which have an empty ancestor chain.
    """
    if isinstance(doc, BeautifulSoup):
        roots = [child for child in doc.children if isinstance(child, Tag)]
        stack: List[Tuple[Tag, Tuple[Tag, ...]]] = [(root, ()) for root in reversed(roots)]
    else:
        stack = [(doc, ())]

    while stack:
        element, ancestors = stack.pop()
        yield Visit(element=element, ancestors=ancestors, text=render_text(element))

        lineage = (element,) + ancestors
        children = [child for child in element.children if isinstance(child, Tag)]
        stack.extend((child, lineage) for child in reversed(children))


def match_element(pattern: re.Pattern[str], visit: Visit) -> MatchOutcome:
    """Apply pattern to the rendered text of a visited element."""
    values = find_all(pattern, visit.text)
    return MatchOutcome(frozenset(values)) if values else NO_MATCH


@dataclass(slots=True)
class _PendingEntry:
    element: Tag
    ancestors: Tuple[Tag, ...]
    text: str
    values: Set[str]


class PendingMatches:
    """
    Matches of a single document, before they are committed.

    Entries are keyed by element identity. When an element matches, the values
    it supplies are taken away from every pending ancestor; an ancestor left
    without values is dropped, so each value ends up owned by the deepest
    element that contains it.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, _PendingEntry] = {}

    def accumulate(self, visit: Visit, outcome: MatchOutcome) -> bool:
        """Record a visited element's outcome; returns True if it was recorded."""
        if not outcome.matched:
            return False

        for ancestor in visit.ancestors:
            entry = self._entries.get(id(ancestor))
            if entry is None:
                continue
            entry.values -= outcome.values
            if not entry.values:
                del self._entries[id(ancestor)]

        self._entries[id(visit.element)] = _PendingEntry(
            element=visit.element,
            ancestors=visit.ancestors,
            text=visit.text,
            values=set(outcome.values),
        )
        return True

    def __iter__(self) -> Iterator[_PendingEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)


def scan_document(doc: Tag, pattern: re.Pattern[str]) -> PendingMatches:
    """Walk a whole document and collect its pending matches."""
    pending = PendingMatches()
    for visit in walk(doc):
        pending.accumulate(visit, match_element(pattern, visit))
    return pending


def context_for(entry_text: str, ancestors: Tuple[Tag, ...]) -> List[str]:
    """The element's own text followed by up to three nearest ancestors' text."""
    return [entry_text] + [render_text(a) for a in ancestors[:CONTEXT_ANCESTORS]]


class MatchCollector:
    """Crawl-wide match records, unique by matched value."""

    def __init__(self) -> None:
        self._contexts: Dict[str, List[str]] = {}

    def fold(self, pending: PendingMatches) -> int:
        """
        Commit one document's pending matches.

        Returns the number of (element, value) pairs folded in.
        """
        folded = 0
        for entry in pending:
            context = context_for(entry.text, entry.ancestors)
            for value in sorted(entry.values):
                self._contexts.setdefault(value, []).extend(context)
                folded += 1
        return folded

    def records(self) -> Iterator[MatchRecord]:
        """Yield match records in the order their values were first seen."""
        for value, contexts in list(self._contexts.items()):
            yield MatchRecord(value=value, contexts=list(contexts))

    def __len__(self) -> int:
        return len(self._contexts)
