"""
Export formatting for finished scripts.

Pure functions: final script text + export options -> one text document.

Formats
-------
google_docs / word  HTML document (importable by both editors)
markdown            Markdown with a level-1 title
text                Plain text with an underlined title
"""
from __future__ import annotations

import dataclasses
import enum
import html
import re
from typing import Any, Dict, Optional


class ExportFormat(str, enum.Enum):
    GOOGLE_DOCS = "google_docs"
    WORD = "word"
    MARKDOWN = "markdown"
    TEXT = "text"


@dataclasses.dataclass(frozen=True)
class ExportOptions:
    format: ExportFormat = ExportFormat.GOOGLE_DOCS
    include_metadata: bool = True
    include_timestamps: bool = True
    include_sections: bool = True
    format_for_talent: bool = False


# (0:00) or (1:23-1:45)
TIMESTAMP_PATTERN = re.compile(r"\(\d+:\d+(?:-\d+:\d+)?\)")
SECTION_HEADING_PATTERN = re.compile(r"^##\s(.*?)$", re.MULTILINE)

_CONTENT_TYPES = {
    ExportFormat.GOOGLE_DOCS: "text/html",
    ExportFormat.WORD: "text/html",
    ExportFormat.MARKDOWN: "text/markdown",
    ExportFormat.TEXT: "text/plain",
}

_EXTENSIONS = {
    ExportFormat.GOOGLE_DOCS: "html",
    ExportFormat.WORD: "html",
    ExportFormat.MARKDOWN: "md",
    ExportFormat.TEXT: "txt",
}

_HTML_STYLE = """\
    body { font-family: Arial, sans-serif; margin: 20px; }
    h1 { color: #333; }
    .metadata { color: #666; font-size: 12px; margin-bottom: 20px; }
    .script { font-family: 'Courier New', monospace; line-height: 1.5; white-space: pre-wrap; }
    .timestamp { color: #0066cc; font-weight: bold; }
    .section { font-weight: bold; margin-top: 20px; }
    .talent-note { color: #cc6600; font-style: italic; }"""


# ---------------------------------------------------------------------------
# Shared text transforms
# ---------------------------------------------------------------------------

def strip_timestamps(text: str) -> str:
    return TIMESTAMP_PATTERN.sub("", text)


def strip_section_headings(text: str) -> str:
    """Blank out ``## heading`` lines, keeping line structure intact."""
    return SECTION_HEADING_PATTERN.sub("", text)


def content_type_for(fmt: ExportFormat) -> str:
    return _CONTENT_TYPES[fmt]


def filename_for(title: str, fmt: ExportFormat) -> str:
    """``My Video Script`` -> ``My_Video_Script.md``."""
    stem = re.sub(r"\s+", "_", title.strip()) or "script"
    stem = stem.replace('"', "")
    return f"{stem}.{_EXTENSIONS[fmt]}"


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------

def script_to_html(
    script: str,
    title: str,
    options: ExportOptions,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    safe_title = html.escape(title)
    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="UTF-8">',
        f"  <title>{safe_title}</title>",
        "  <style>",
        _HTML_STYLE,
        "  </style>",
        "</head>",
        "<body>",
        f"  <h1>{safe_title}</h1>",
    ]

    if options.include_metadata and metadata:
        rows = "".join(
            f"<div><strong>{html.escape(str(key))}</strong>: {html.escape(str(value))}</div>"
            for key, value in metadata.items()
        )
        parts.append(f'  <div class="metadata">{rows}</div>')

    body = script
    if not options.include_sections:
        body = strip_section_headings(body)
    body = html.escape(body, quote=False)

    if options.include_timestamps:
        body = TIMESTAMP_PATTERN.sub(
            lambda m: f'<span class="timestamp">{m.group(0)}</span>', body
        )
    else:
        body = strip_timestamps(body)

    if options.format_for_talent:
        body = re.sub(r"\*\*(.*?)\*\*", r"<strong>\1</strong>", body)
        body = re.sub(r"\*(.*?)\*", r"<em>\1</em>", body)
        body = re.sub(
            r"\[pause\]", '<span class="talent-note">[PAUSE]</span>', body, flags=re.IGNORECASE
        )
        body = re.sub(
            r"\[emphasis\]", '<span class="talent-note">[EMPHASIS]</span>', body, flags=re.IGNORECASE
        )

    parts.append(f'  <div class="script">{body}</div>')
    parts.append("</body>")
    parts.append("</html>")
    return "\n".join(parts)


def script_to_text(
    script: str,
    title: str,
    options: ExportOptions,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    text = f"{title}\n" + "=" * len(title) + "\n\n"

    if options.include_metadata and metadata:
        for key, value in metadata.items():
            text += f"{key}: {value}\n"
        text += "\n"

    body = script
    if not options.include_sections:
        body = strip_section_headings(body)
    if not options.include_timestamps:
        body = strip_timestamps(body)

    return text + body


def script_to_markdown(
    script: str,
    title: str,
    options: ExportOptions,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    markdown = f"# {title}\n\n"

    if options.include_metadata and metadata:
        markdown += "## Metadata\n\n"
        for key, value in metadata.items():
            markdown += f"**{key}**: {value}\n"
        markdown += "\n"

    body = script
    if not options.include_sections:
        # keep the heading text, just not as a markdown heading
        body = SECTION_HEADING_PATTERN.sub(r"**\1**", body)
    if not options.include_timestamps:
        body = strip_timestamps(body)

    return markdown + body


def export_script(
    script: str,
    title: str,
    options: ExportOptions,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Render *script* in ``options.format``."""
    if options.format in (ExportFormat.GOOGLE_DOCS, ExportFormat.WORD):
        return script_to_html(script, title, options, metadata)
    if options.format == ExportFormat.MARKDOWN:
        return script_to_markdown(script, title, options, metadata)
    if options.format == ExportFormat.TEXT:
        return script_to_text(script, title, options, metadata)
    raise ValueError(f"Unsupported export format: {options.format}")
