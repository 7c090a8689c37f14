import hashlib
import re
from html import escape

# Applied in order to HTML-escaped text outside code spans.
_INLINE_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\*\*(.+?)\*\*", re.DOTALL), r"<strong>\1</strong>"),
    (re.compile(r"__(.+?)__", re.DOTALL), r"<u>\1</u>"),
    (re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])", re.DOTALL), r"<em>\1</em>"),
    (re.compile(r"(?<![\w_])_(?!\s)(.+?)(?<!\s)_(?![\w_])", re.DOTALL), r"<em>\1</em>"),
    (re.compile(r"~~(.+?)~~", re.DOTALL), r"<del>\1</del>"),
]

_LINK = re.compile(r'\[([^\]]+)\]\((https?://[^\s)"]+)\)')
_LINK_SLOT = re.compile(r"\x00(\d+)\x00")

_CODE_SPAN = re.compile(r"(`+)(.+?)\1", re.DOTALL)


def string_to_color(name: str) -> str:
    digest = int(hashlib.sha1(name.encode("utf-8")).hexdigest(), 16)
    hue = digest % 360
    saturation = 55 + (digest >> 9) % 30
    lightness = 45 + (digest >> 17) % 20
    return f"hsl({hue} {saturation}% {lightness}%)"


def _apply_inline_rules(text: str) -> str:
    for pattern, replacement in _INLINE_RULES:
        text = pattern.sub(replacement, text)
    return text


def _render_plain(text: str) -> str:
    # Links are set aside first so their targets never pick up formatting.
    links: list[str] = []

    def stash(match: re.Match[str]) -> str:
        links.append(f'<a href="{match.group(2)}">{_apply_inline_rules(match.group(1))}</a>')
        return f"\x00{len(links) - 1}\x00"

    rendered = _apply_inline_rules(_LINK.sub(stash, escape(text.replace("\x00", ""), quote=False)))
    return _LINK_SLOT.sub(lambda match: links[int(match.group(1))], rendered)


def render_inline_markdown(text: str) -> str:
    """Render the inline markdown subset used in chat to HTML.

    Code spans are emitted verbatim (escaped) and never formatted further.
    """
    parts: list[str] = []
    position = 0
    for match in _CODE_SPAN.finditer(text):
        parts.append(_render_plain(text[position : match.start()]))
        parts.append(f"<code>{escape(match.group(2).strip(), quote=False)}</code>")
        position = match.end()
    parts.append(_render_plain(text[position:]))
    return "".join(parts)
