"""
Final document extraction.

The backend is asked to answer with a complete HTML document. When it does,
the document is passed through untouched. Otherwise its text is converted
with a small, fixed set of Markdown substitutions and wrapped in a plain
page template. This is not a general Markdown parser.
"""

from __future__ import annotations

import html
import re

DOCUMENT_START = "<!DOCTYPE"
DOCUMENT_END = "</html>"

_STYLE = """\
  body { font-family: system-ui, -apple-system, sans-serif; max-width: 820px; margin: 0 auto; padding: 32px 24px; line-height: 1.65; color: #333; background: #fff; }
  h1 { color: #1a1a2e; border-bottom: 2px solid #e8e8e8; padding-bottom: 12px; }
  h2, h3 { color: #1a1a2e; margin-top: 1.5em; }
  a { color: #0066cc; }
  pre { background: #f4f4f4; padding: 16px; border-radius: 8px; overflow-x: auto; font-size: 0.9em; }
  code { background: #f0f0f0; padding: 2px 6px; border-radius: 4px; font-size: 0.9em; }
  blockquote { border-left: 4px solid #ddd; margin: 0; padding-left: 16px; color: #666; }
  ul, ol { padding-left: 1.5em; }"""

_FENCE_RE = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_LINK_RE = re.compile(r"\[([^\]\n]+)\]\(([^)\s]+)\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_HEADING_RE = re.compile(r"^(#{1,3})\s+(.+?)\s*$")
_LIST_ITEM_RE = re.compile(r"^\s*[-*]\s+(.+)$")
_BLANK_LINES_RE = re.compile(r"\n[ \t]*\n")
_SAFE_HREF_RE = re.compile(r"^(https?://|mailto:|/|#)", re.IGNORECASE)
_PLACEHOLDER_RE = re.compile("\x00(\\d+)\x00")


def extract_or_wrap(raw_text: str, original_query: str) -> str:
    """Return the HTML document embedded in ``raw_text`` or build one around it.

    The embedded document runs from the first ``<!DOCTYPE`` to the last
    ``</html>``. Output of this function always qualifies as embedded, so
    calling it again on its own result returns the result unchanged.
    """
    start = raw_text.find(DOCUMENT_START)
    end = raw_text.rfind(DOCUMENT_END)
    if start >= 0 and end > start:
        return raw_text[start : end + len(DOCUMENT_END)]

    title = html.escape(original_query, quote=True)
    body = markdown_to_html(raw_text)
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{title}</title>\n"
        f"<style>\n{_STYLE}\n</style>\n"
        "</head>\n"
        "<body>\n"
        f"<h1>{title}</h1>\n"
        f"{body}\n"
        "</body>\n"
        "</html>"
    )


def markdown_to_html(text: str) -> str:
    """Convert the supported Markdown subset to HTML.

    Supported: fenced code blocks, ``**bold**``, ``*italic*``, ``inline code``,
    ``[links](https://...)``, ``#``/``##``/``###`` headings, ``-``/``*`` list
    items and blank-line separated paragraphs. All text is escaped first.
    """
    stash: list[str] = []

    def keep(fragment: str) -> str:
        stash.append(fragment)
        return f"\x00{len(stash) - 1}\x00"

    escaped = html.escape(text.replace("\x00", "").replace("\r\n", "\n"), quote=True)
    escaped = _FENCE_RE.sub(
        lambda m: "\n\n" + keep(f"<pre><code>{m.group(1).rstrip()}</code></pre>") + "\n\n",
        escaped,
    )

    blocks: list[str] = []
    for chunk in _BLANK_LINES_RE.split(escaped):
        if chunk.strip():
            blocks.extend(_convert_block(chunk, keep))

    body = "\n".join(blocks)
    # Stashed fragments may themselves hold placeholders of earlier fragments.
    while _PLACEHOLDER_RE.search(body):
        body = _PLACEHOLDER_RE.sub(lambda m: stash[int(m.group(1))], body)
    return body


def _convert_block(chunk: str, keep) -> list[str]:
    out: list[str] = []
    paragraph: list[str] = []
    items: list[str] = []

    def flush() -> None:
        if paragraph:
            out.append("<p>" + "\n".join(paragraph) + "</p>")
            paragraph.clear()
        if items:
            out.append("<ul>\n" + "\n".join(items) + "\n</ul>")
            items.clear()

    for line in chunk.strip("\n").split("\n"):
        stripped = line.strip()
        if _PLACEHOLDER_RE.fullmatch(stripped):
            flush()
            out.append(stripped)
            continue
        heading = _HEADING_RE.match(stripped)
        if heading:
            flush()
            level = len(heading.group(1))
            out.append(f"<h{level}>{_inline(heading.group(2), keep)}</h{level}>")
            continue
        item = _LIST_ITEM_RE.match(line)
        if item:
            if paragraph:
                flush()
            items.append(f"<li>{_inline(item.group(1), keep)}</li>")
            continue
        if items:
            flush()
        paragraph.append(_inline(stripped, keep))

    flush()
    return out


def _inline(text: str, keep) -> str:
    text = _INLINE_CODE_RE.sub(lambda m: keep(f"<code>{m.group(1)}</code>"), text)

    def link(match: re.Match[str]) -> str:
        label, href = match.group(1), match.group(2)
        if not _SAFE_HREF_RE.match(html.unescape(href)):
            return match.group(0)
        return keep(f'<a href="{href}">{_emphasis(label)}</a>')

    text = _LINK_RE.sub(link, text)
    return _emphasis(text)


def _emphasis(text: str) -> str:
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    return _ITALIC_RE.sub(r"<em>\1</em>", text)
