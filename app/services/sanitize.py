"""
app/services/sanitize.py

Limpeza do texto livre enviado pelos usuários (confissões, comentários).

- remove elementos <script>/<style> com o conteúdo
- remove toda marcação restante, mantendo só o texto (BeautifulSoup)
- repete a limpeza enquanto houver mudança, para que marcação codificada
  em entidades (&lt;script&gt;) não reapareça depois da decodificação
- preserva "<" e ">" de texto comum ("a<b and c>d"): só contam como tag
  elementos HTML conhecidos com atributos conhecidos
- remove atributos de evento soltos (onclick="...") e esquemas de URL
  perigosos (javascript:, vbscript:)
"""

import re

from bs4 import BeautifulSoup

MAX_PASSES = 5

_EVENT_HANDLER = re.compile(r"\bon\w+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE)
_UNSAFE_SCHEME = re.compile(r"\b(?:javascript|vbscript)\s*:", re.IGNORECASE)
_HASHTAG = re.compile(r"#[A-Za-z0-9_]+")

_LESS_THAN = re.compile(r"<")
_ATTRIBUTE = re.compile(r"""([^\s=>/"']+)(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+))?""")
_TAG = re.compile(
    r"""<(/?)([A-Za-z][A-Za-z0-9]*)"""
    r"""((?:\s+[^\s=>/"']+(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+))?)*)\s*/?>"""
)

_KNOWN_TAGS = frozenset(
    """
    a abbr address applet area article aside audio b base bdi bdo blink blockquote body
    br button canvas caption center cite code col colgroup data datalist dd del details
    dfn dialog div dl dt em embed fieldset figcaption figure font footer form frame
    frameset h1 h2 h3 h4 h5 h6 head header hr html i iframe img input ins kbd label
    legend li link main map mark marquee math meta meter nav noscript object ol
    optgroup option output p param picture pre progress q s samp script section
    select small source span strike strong style sub summary sup svg table tbody td
    template textarea tfoot th thead time title tr track tt u ul var video wbr
    """.split()
)

_KNOWN_ATTRIBUTES = frozenset(
    """
    accept action align alt async autofocus autoplay background bgcolor border charset
    checked cite class color cols colspan content controls coords crossorigin data
    datetime defer dir disabled download draggable enctype face for form formaction
    height hidden href hreflang http-equiv id integrity lang list loop max maxlength
    media method min multiple muted name novalidate open pattern ping placeholder
    poster preload readonly rel required rows rowspan sandbox scope selected shape
    size sizes span src srcdoc srclang srcset start step style tabindex target title
    type usemap value width wrap xmlns
    """.split()
)


def _is_known_attribute(name: str) -> bool:
    name = name.lower()
    return (
        name in _KNOWN_ATTRIBUTES
        or name.startswith(("on", "data-", "aria-", "xlink:"))
    )


def _is_markup(tag: re.Match) -> bool:
    if tag.group(2).lower() not in _KNOWN_TAGS:
        return False
    return all(
        _is_known_attribute(attribute.group(1))
        for attribute in _ATTRIBUTE.finditer(tag.group(3))
    )


def _escape_loose_brackets(text: str) -> str:
    """Escapa todo "<" que não abre uma tag HTML de verdade nem um comentário."""

    def replace(match: re.Match) -> str:
        position = match.start()
        if text.startswith("<!--", position):
            return "<"
        tag = _TAG.match(text, position)
        return "<" if tag and _is_markup(tag) else "&lt;"

    return _LESS_THAN.sub(replace, text)


def _strip_markup(text: str) -> str:
    soup = BeautifulSoup(_escape_loose_brackets(text), "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    return soup.get_text()


def sanitize_text(text: str | None) -> str:
    if not text:
        return ""

    plain_text = text
    for _ in range(MAX_PASSES):
        stripped = _strip_markup(plain_text)
        if stripped == plain_text:
            break
        plain_text = stripped
    else:
        # Entidades aninhadas além do limite: descarta o que ainda for tag.
        plain_text = _TAG.sub(lambda tag: "" if _is_markup(tag) else tag.group(0), plain_text)

    plain_text = _EVENT_HANDLER.sub("", plain_text)
    plain_text = _UNSAFE_SCHEME.sub("", plain_text)
    return plain_text.strip()


def extract_hashtags(text: str) -> list[str]:
    """Hashtags na ordem em que aparecem, sem repetição."""
    return list(dict.fromkeys(_HASHTAG.findall(text or "")))
