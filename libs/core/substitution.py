from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

from .models import Suggestion

HIGHLIGHT_TAG = "mark"
HIGHLIGHT_CLASS = "cv-suggestion"
BLOCK_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "div", "pre"]
_SKIP_PARENTS = {"script", "style", "head", "title"}


@dataclass(frozen=True)
class SubstitutionResult:
    text: str
    html: str
    # Occurrences each suggestion matched while being applied; 0 when inactive.
    match_counts: Tuple[int, ...] = ()

    def orphaned(self, suggestions: Sequence[Suggestion]) -> List[int]:
        return [
            index
            for index, suggestion in enumerate(suggestions)
            if is_applicable(suggestion)
            and index < len(self.match_counts)
            and self.match_counts[index] == 0
        ]


def literal_pattern(fragment: str) -> re.Pattern[str]:
    return re.compile(re.escape(fragment))


def is_applicable(suggestion: Suggestion) -> bool:
    return suggestion.applied and bool(suggestion.original)


def replace_literal(text: str, original: str, suggested: str) -> Tuple[str, int]:
    """Replace every literal occurrence of ``original``; returns (text, count)."""
    if not original:
        return text, 0
    return literal_pattern(original).subn(lambda _match: suggested, text)


def apply_to_text(base_text: str, suggestions: Sequence[Suggestion]) -> Tuple[str, Tuple[int, ...]]:
    text = base_text
    counts: List[int] = []
    for suggestion in suggestions:
        if not is_applicable(suggestion):
            counts.append(0)
            continue
        text, count = replace_literal(text, suggestion.original, suggestion.suggested)
        counts.append(count)
    return text, tuple(counts)


def render_paragraphs(text: str) -> str:
    lines = text.replace("\r\n", "\n").split("\n")
    parts = []
    for line in lines:
        if line.strip():
            parts.append(f"<p>{html_lib.escape(line, quote=False)}</p>")
        else:
            parts.append("<p><br></p>")
    return "".join(parts)


def strip_tags(markup: str) -> str:
    soup = BeautifulSoup(markup or "", "html.parser")
    blocks = [block for block in soup.find_all(BLOCK_TAGS) if block.find_parent(BLOCK_TAGS) is None]
    if not blocks:
        return soup.get_text()
    return "\n".join(block.get_text() for block in blocks)


def _marker(soup: BeautifulSoup, index: int | str, text: str) -> Tag:
    tag = soup.new_tag(
        HIGHLIGHT_TAG,
        attrs={
            "class": HIGHLIGHT_CLASS,
            "data-suggestion-index": str(index),
            "data-active": "true",
        },
    )
    tag.string = text
    return tag


def _text_nodes(root: Tag) -> List[NavigableString]:
    return [
        node
        for node in root.descendants
        if type(node) is NavigableString
        and node.parent is not None
        and node.parent.name not in _SKIP_PARENTS
    ]


def _roots(soup: BeautifulSoup) -> List[Tag]:
    blocks = [block for block in soup.find_all(BLOCK_TAGS) if block.find_parent(BLOCK_TAGS) is None]
    return blocks or [soup]


def _owner(node: NavigableString, root: Tag) -> Optional[str]:
    """Suggestion index of the innermost highlight around ``node``."""
    for parent in node.parents:
        if parent is root:
            break
        if parent.name == HIGHLIGHT_TAG and parent.has_attr("data-suggestion-index"):
            return parent["data-suggestion-index"]
    return None


def _substitute_node(
    soup: BeautifulSoup,
    node: NavigableString,
    pattern: re.Pattern[str],
    index: int,
    suggestion: Suggestion,
    highlight: bool,
) -> None:
    text = str(node)
    pieces: list = []
    last = 0
    for match in pattern.finditer(text):
        if match.start() > last:
            pieces.append(NavigableString(text[last : match.start()]))
        if highlight:
            pieces.append(_marker(soup, index, suggestion.suggested))
        else:
            pieces.append(NavigableString(suggestion.suggested))
        last = match.end()
    if not pieces:
        return
    if last < len(text):
        pieces.append(NavigableString(text[last:]))
    node.replace_with(*pieces)


def _slice(runs: Sequence[Tuple[str, Optional[str]]], start: int, end: int) -> List[Tuple[str, Optional[str]]]:
    pieces = []
    offset = 0
    for text, owner in runs:
        lo, hi = max(start, offset), min(end, offset + len(text))
        if lo < hi:
            pieces.append((text[lo - offset : hi - offset], owner))
        offset += len(text)
    return pieces


def _rebuild_root(
    soup: BeautifulSoup,
    root: Tag,
    nodes: Sequence[NavigableString],
    matches: Sequence[re.Match[str]],
    index: int,
    suggestion: Suggestion,
    highlight: bool,
) -> None:
    # Inline markup inside this block is flattened; existing highlights survive.
    runs = [(str(node), _owner(node, root)) for node in nodes]
    total = sum(len(text) for text, _ in runs)
    pieces: List[Tuple[str, Optional[str]]] = []
    cursor = 0
    for match in matches:
        pieces.extend(_slice(runs, cursor, match.start()))
        pieces.append((suggestion.suggested, str(index) if highlight else None))
        cursor = match.end()
    pieces.extend(_slice(runs, cursor, total))
    root.clear()
    for text, owner in pieces:
        root.append(NavigableString(text) if owner is None else _marker(soup, owner, text))


def _apply_to_root(
    soup: BeautifulSoup,
    root: Tag,
    pattern: re.Pattern[str],
    index: int,
    suggestion: Suggestion,
    highlight: bool,
) -> None:
    nodes = _text_nodes(root)
    spans = []
    offset = 0
    for node in nodes:
        spans.append((offset, offset + len(node)))
        offset += len(node)
    matches = list(pattern.finditer("".join(str(node) for node in nodes)))
    if not matches:
        return
    within_nodes = all(
        any(start <= match.start() and match.end() <= end for start, end in spans)
        for match in matches
    )
    if within_nodes:
        for node in nodes:
            _substitute_node(soup, node, pattern, index, suggestion, highlight)
    else:
        _rebuild_root(soup, root, nodes, matches, index, suggestion, highlight)


def apply_to_html(base_html: str, suggestions: Sequence[Suggestion], highlight: bool = True) -> str:
    soup = BeautifulSoup(base_html or "", "html.parser")
    for index, suggestion in enumerate(suggestions):
        if not is_applicable(suggestion):
            continue
        pattern = literal_pattern(suggestion.original)
        # Each block is matched on its joined text, so fragments can span
        # earlier highlights the same way they do in the plain text.
        for root in _roots(soup):
            _apply_to_root(soup, root, pattern, index, suggestion, highlight)
    return str(soup)


def apply_substitutions(
    base_text: str,
    base_html: str,
    suggestions: Sequence[Suggestion],
    highlight: bool = True,
) -> SubstitutionResult:
    """Project the active suggestions onto the untouched base document.

    Suggestions run in sequence order and each one matches against the text
    produced by the ones before it, so overlapping fragments chain
    (``Developer -> Senior Developer`` followed by ``Developer -> Engineer``
    yields ``Senior Engineer``). Matching is literal and case-sensitive.

    With ``highlight`` the HTML keeps the structure of ``base_html`` (or of the
    paragraph rendering of ``base_text`` when there is no HTML) and wraps each
    replacement in a ``<mark class="cv-suggestion">`` carrying the suggestion
    index. Without it the HTML is the paragraph rendering of the result text.
    Within a block, fragments may span inline elements and earlier highlights;
    such a block is rebuilt with its inline markup flattened. Fragments that
    cross block boundaries (line breaks) are only substituted in the text.
    """
    text, counts = apply_to_text(base_text, suggestions)
    if highlight:
        source_html = base_html if base_html and base_html.strip() else render_paragraphs(base_text)
        html = apply_to_html(source_html, suggestions, highlight=True)
    else:
        html = render_paragraphs(text)
    return SubstitutionResult(text=text, html=html, match_counts=counts)
