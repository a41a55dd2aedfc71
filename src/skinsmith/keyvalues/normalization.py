"""Canonicalize KeyValues text produced by assorted authoring tools.

Curly quotes in particular desynchronize the quote-aware scanner, so every
document and every patch payload passes through :func:`normalize` before it
is scanned.
"""

import re

_LINE_BREAK_RE = re.compile(r"\r\n?")

_TRANSLATION = str.maketrans(
    {
        # double-quote variants
        "\u201c": '"',
        "\u201d": '"',
        "\u201e": '"',
        "\u201f": '"',
        "\u2033": '"',
        # apostrophe variants
        "\u2018": "'",
        "\u2019": "'",
        "\u201a": "'",
        "\u201b": "'",
        "\u2032": "'",
        # non-breaking spaces
        "\u00a0": " ",
        "\u2007": " ",
        "\u202f": " ",
        # zero-width characters and the BOM
        "\u200b": None,
        "\u200c": None,
        "\u200d": None,
        "\u2060": None,
        "\ufeff": None,
    }
)


def normalize(text: str) -> str:
    """Return *text* with line endings, quotes and invisible characters canonicalized.

    Idempotent: ``normalize(normalize(x)) == normalize(x)``.

    >>> normalize('\\ufeff\\u201c1\\u201d\\r\\n{\\u00a0}')
    '"1"\\n{ }'
    """
    return _LINE_BREAK_RE.sub("\n", text).translate(_TRANSLATION)
