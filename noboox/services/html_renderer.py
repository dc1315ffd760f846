"""Report markdown to sanitized HTML with linked citations."""
from __future__ import annotations

import html
import re
from typing import Sequence

import markdown

from noboox.errors import RenderingFailed
from noboox.models.research import Source
from noboox.services.citations import CITATION_PATTERN, expand_marker
from noboox.tools import web_utils

MIN_HTML_LENGTH = 100

# No attr_list or md_in_html: attributes and raw HTML must not come from model output.
MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

_HREF = re.compile(r'href="([^"]*)"')


def citation_anchor(source: Source) -> str:
    hostname = web_utils.extract_hostname(source.url)
    label = f"[{source.id} {hostname}]" if hostname else f"[{source.id}]"
    attrs = {
        "href": source.url,
        "target": "_blank",
        "rel": "noopener noreferrer",
        "class": "citation",
        "title": source.title,
        "data-source-id": source.id,
        "data-hostname": hostname,
    }
    rendered = " ".join(f'{name}="{html.escape(value, quote=True)}"' for name, value in attrs.items())
    return f"<a {rendered}>{html.escape(label, quote=False)}</a>"


def _link_citations(rendered: str, by_id: dict[str, Source]) -> str:
    def replace(match: re.Match[str]) -> str:
        ids = expand_marker(match)
        if ids is None or not any(i in by_id for i in ids):
            return match.group(0)
        return " ".join(citation_anchor(by_id[i]) if i in by_id else f"[{i}]" for i in ids)

    return CITATION_PATTERN.sub(replace, rendered)


def _neutralize_links(rendered: str) -> str:
    """Point markdown links with a non-web scheme at ``#``."""

    def replace(match: re.Match[str]) -> str:
        target = html.unescape(match.group(1)).strip()
        if web_utils.is_valid_url(target) or target.startswith(("#", "mailto:")):
            return match.group(0)
        return 'href="#"'

    return _HREF.sub(replace, rendered)


def render(report_text: str, sources: Sequence[Source]) -> str:
    """Convert report markdown to HTML and link citations to known sources.

    Raw HTML in the report is escaped before conversion. Only sources with an
    http(s) URL are linked; other markers stay as text. Raises
    ``RenderingFailed`` when the output is shorter than ``MIN_HTML_LENGTH``.
    """
    by_id = {s.id: s for s in sources if web_utils.is_valid_url(s.url)}
    escaped = html.escape(report_text or "", quote=False)
    converted = markdown.markdown(escaped, extensions=MARKDOWN_EXTENSIONS, output_format="html")
    rendered = _link_citations(_neutralize_links(converted), by_id).strip()
    if len(rendered) < MIN_HTML_LENGTH:
        raise RenderingFailed(f"rendered report too short ({len(rendered)} characters)")
    return rendered
