from __future__ import annotations

import zipfile
from io import BytesIO

import pytest
from docx import Document

from libs.core.errors import ExportError
from libs.core.models import Suggestion
from libs.tools.docx_export import (
    apply_to_markup,
    build_docx,
    escape_xml,
    is_heading_line,
    rewrite_container,
    synthesize_docx,
)


def _container(*paragraphs: str) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _texts(payload: bytes) -> list[str]:
    return [paragraph.text for paragraph in Document(BytesIO(payload)).paragraphs]


def _suggestion(original: str, suggested: str, applied: bool = True) -> Suggestion:
    return Suggestion(type="phrase", original=original, suggested=suggested, applied=applied)


def test_escape_xml_covers_quotes() -> None:
    assert escape_xml("R&D <team> \"lead\" 'ops'") == (
        "R&amp;D &lt;team&gt; &quot;lead&quot; &apos;ops&apos;"
    )


def test_heading_heuristic() -> None:
    assert is_heading_line("EXPERIENCE")
    assert is_heading_line("Skills:")
    assert not is_heading_line("Software Developer at TechCorp")
    assert not is_heading_line("")
    assert not is_heading_line("A" * 50)
    assert is_heading_line("A" * 49)


def test_apply_to_markup_escapes_both_sides() -> None:
    markup = "<w:t>Research &amp; Development</w:t>"
    updated = apply_to_markup(
        markup, [_suggestion("Research & Development", "R&D <platform> \"core\"")]
    )
    assert updated == "<w:t>R&amp;D &lt;platform&gt; \"core\"</w:t>"


def test_rewrite_container_replaces_text_and_keeps_members() -> None:
    container = _container("Worked with team members", "Worked with team members again")
    payload = rewrite_container(
        container, [_suggestion("Worked with team members", "Led a team of 5 & mentored \"juniors\"")]
    )
    assert _texts(payload) == [
        'Led a team of 5 & mentored "juniors"',
        'Led a team of 5 & mentored "juniors" again',
    ]
    with zipfile.ZipFile(BytesIO(container)) as before, zipfile.ZipFile(BytesIO(payload)) as after:
        assert before.namelist() == after.namelist()
        assert before.read("word/styles.xml") == after.read("word/styles.xml")


def test_rewrite_container_ignores_inactive_suggestions() -> None:
    container = _container("Software Developer")
    payload = rewrite_container(container, [_suggestion("Developer", "Engineer", applied=False)])
    assert _texts(payload) == ["Software Developer"]


def test_rewrite_container_rejects_non_zip() -> None:
    with pytest.raises(ExportError):
        rewrite_container(b"not a zip", [_suggestion("a", "b")])


def test_build_docx_falls_back_to_synthesis_on_corrupt_container() -> None:
    payload = build_docx(b"PK-broken", "EXPERIENCE\nSenior Engineer", [_suggestion("a", "b")])
    assert _texts(payload) == ["EXPERIENCE", "Senior Engineer"]


def test_build_docx_without_container_synthesizes() -> None:
    payload = build_docx(None, "John Doe\n\nSKILLS\n- TypeScript", [])
    assert _texts(payload) == ["John Doe", "", "SKILLS", "- TypeScript"]


def test_synthesized_headings_are_bold() -> None:
    document = Document(BytesIO(synthesize_docx("SUMMARY\nBuilds web apps")))
    heading, body = document.paragraphs
    assert heading.runs[0].bold is True
    assert not body.runs[0].bold


def test_apply_to_markup_matches_entity_encoded_quotes() -> None:
    markup = "<w:t>the team&apos;s work</w:t>"
    updated = apply_to_markup(markup, [_suggestion("team's work", 'team\'s "best" work')])
    assert updated == "<w:t>the team&apos;s &quot;best&quot; work</w:t>"


def test_rewrite_container_replaces_fragments_with_apostrophes() -> None:
    container = _container("Led the team's migration", 'Shipped the "Atlas" release')
    payload = rewrite_container(
        container,
        [
            _suggestion("team's migration", "cloud migration"),
            _suggestion('"Atlas" release', "Atlas 2.0 release"),
        ],
    )
    assert _texts(payload) == ["Led the cloud migration", "Shipped the Atlas 2.0 release"]
