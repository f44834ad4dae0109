from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Sequence

from .errors import ViewTransitionError
from .models import ActiveDocument, CVDocument, RenderedView, Suggestion, ViewState
from .substitution import apply_substitutions, render_paragraphs


class ViewEvent(str, Enum):
    toggle_document = "toggle_document"
    toggle_highlights = "toggle_highlights"
    toggle_fullscreen = "toggle_fullscreen"
    show_original = "show_original"
    show_optimized = "show_optimized"


INITIAL_VIEW_STATE = ViewState()


def _flip_document(state: ViewState) -> ViewState:
    target = (
        ActiveDocument.optimized
        if state.active_document == ActiveDocument.original
        else ActiveDocument.original
    )
    return state.model_copy(update={"active_document": target})


VIEW_TRANSITIONS: Dict[ViewEvent, Callable[[ViewState], ViewState]] = {
    ViewEvent.toggle_document: _flip_document,
    ViewEvent.toggle_highlights: lambda state: state.model_copy(
        update={"highlights_enabled": not state.highlights_enabled}
    ),
    ViewEvent.toggle_fullscreen: lambda state: state.model_copy(
        update={"fullscreen": not state.fullscreen}
    ),
    ViewEvent.show_original: lambda state: state.model_copy(
        update={"active_document": ActiveDocument.original}
    ),
    ViewEvent.show_optimized: lambda state: state.model_copy(
        update={"active_document": ActiveDocument.optimized}
    ),
}


def parse_event(value: str | ViewEvent) -> ViewEvent:
    if isinstance(value, ViewEvent):
        return value
    try:
        return ViewEvent(value)
    except ValueError as exc:
        raise ViewTransitionError(f"unknown_view_event:{value}", status_code=400) from exc


def transition(state: ViewState, event: str | ViewEvent) -> ViewState:
    handler = VIEW_TRANSITIONS.get(parse_event(event))
    if handler is None:
        raise ViewTransitionError(f"unsupported_view_event:{event}", status_code=400)
    return handler(state)


def render(document: CVDocument, suggestions: Sequence[Suggestion], state: ViewState) -> RenderedView:
    """Recompute what is on screen from the base document and every suggestion."""
    if state.active_document == ActiveDocument.original:
        html = document.html if document.html.strip() else render_paragraphs(document.plain_text)
        return RenderedView(text=document.plain_text, html=html, state=state)
    result = apply_substitutions(
        document.plain_text,
        document.html,
        suggestions,
        highlight=state.highlights_enabled,
    )
    return RenderedView(text=result.text, html=result.html, state=state)
