"""
Draft formatting helpers.

Drafts come back from the model as markdown-ish text and are stored as
HTML for the rich-text editor. These helpers convert markdown to that HTML
and break the HTML back into blocks for plain-text, DOCX and PDF export.
"""

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, NavigableString

_BULLET = re.compile(r"^[•\-\*]\s+(.+)$")
_NUMBERED = re.compile(r"^\d+\.\s+(.+)$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_BLOCK_TAG = re.compile(r"^</?(h[1-6]|p|ul|ol|li|div|table|blockquote|pre|hr|br)\b", re.IGNORECASE)

BLOCK_ELEMENTS = ("p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "div", "blockquote", "pre", "tr")


def looks_like_html(content: str) -> bool:
    return content.strip().startswith("<") and "</" in content


def format_document_content(content: str) -> str:
    """
    Convert plain text or markdown-style content to HTML.

    Content that already looks like HTML is returned unchanged.
    """
    if not content:
        return ""
    if looks_like_html(content):
        return content

    formatted = re.sub(r"^### (.+)$", r"<h3>\1</h3>", content, flags=re.MULTILINE)
    formatted = re.sub(r"^## (.+)$", r"<h2>\1</h2>", formatted, flags=re.MULTILINE)
    formatted = re.sub(r"^# (.+)$", r"<h1>\1</h1>", formatted, flags=re.MULTILINE)
    formatted = _BOLD.sub(r"<strong>\1</strong>", formatted)
    formatted = _ITALIC.sub(r"<em>\1</em>", formatted)

    lines = []
    open_list = None  # "ul" or "ol"

    def close_list():
        nonlocal open_list
        if open_list:
            lines.append(f"</{open_list}>")
            open_list = None

    for raw in formatted.split("\n"):
        line = raw.strip()
        if not line:
            close_list()
            lines.append("")
            continue

        bullet = _BULLET.match(line)
        numbered = None if bullet else _NUMBERED.match(line)
        if bullet or numbered:
            kind = "ul" if bullet else "ol"
            if open_list != kind:
                close_list()
                lines.append(f"<{kind}>")
                open_list = kind
            lines.append(f"<li>{(bullet or numbered).group(1)}</li>")
            continue

        close_list()
        lines.append(line if _BLOCK_TAG.match(line) else f"<p>{line}</p>")

    close_list()
    return re.sub(r"\n\s*\n\s*\n", "\n\n", "\n".join(lines))


def html_to_text(content: str) -> str:
    """Strip tags, keeping one line per block element."""
    if not content:
        return ""
    if not looks_like_html(content):
        return content
    soup = BeautifulSoup(content, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    # Inline runs stay joined; only block boundaries break lines
    for element in soup.find_all(BLOCK_ELEMENTS):
        element.append("\n")
    text = soup.get_text("")
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


@dataclass
class Block:
    """A block-level element of a draft."""
    kind: str  # heading, paragraph, bullet, number
    runs: list[tuple[str, bool, bool]] = field(default_factory=list)  # (text, bold, italic)
    level: int = 0

    @property
    def text(self) -> str:
        return "".join(r[0] for r in self.runs)


def _collect_runs(node, bold=False, italic=False) -> list[tuple[str, bool, bool]]:
    runs = []
    for child in node.children:
        if isinstance(child, NavigableString):
            if str(child):
                runs.append((str(child), bold, italic))
            continue
        name = child.name.lower()
        runs.extend(_collect_runs(
            child,
            bold=bold or name in ("strong", "b"),
            italic=italic or name in ("em", "i"),
        ))
    return runs


def html_to_blocks(content: str) -> list[Block]:
    """Break draft HTML (or plain text) into headings, paragraphs and list items."""
    html = format_document_content(content)
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    blocks = []
    pending = []  # top-level inline runs forming one paragraph

    def flush_inline():
        runs = list(pending)
        while runs and not runs[0][0].strip():
            runs.pop(0)
        while runs and not runs[-1][0].strip():
            runs.pop()
        if runs:
            runs[0] = (runs[0][0].lstrip(), runs[0][1], runs[0][2])
            runs[-1] = (runs[-1][0].rstrip(), runs[-1][1], runs[-1][2])
            blocks.append(Block("paragraph", [r for r in runs if r[0]]))
        pending.clear()

    for node in soup.children:
        if isinstance(node, NavigableString):
            parts = str(node).split("\n\n")
            for i, part in enumerate(parts):
                if i:
                    flush_inline()
                if part:
                    pending.append((part.replace("\n", " "), False, False))
            continue

        name = node.name.lower()
        if name not in BLOCK_ELEMENTS and name not in ("ul", "ol", "table", "hr", "br"):
            pending.extend(_collect_runs(node, bold=name in ("strong", "b"), italic=name in ("em", "i")))
            continue
        flush_inline()

        if name in ("h1", "h2", "h3"):
            blocks.append(Block("heading", [(node.get_text(), False, False)], level=int(name[1])))
        elif name in ("ul", "ol"):
            kind = "bullet" if name == "ul" else "number"
            for li in node.find_all("li", recursive=False):
                blocks.append(Block(kind, _collect_runs(li)))
        else:
            runs = _collect_runs(node)
            if "".join(r[0] for r in runs).strip():
                blocks.append(Block("paragraph", runs))
    flush_inline()
    return blocks
