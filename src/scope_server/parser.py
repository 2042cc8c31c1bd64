"""Tokenizer for the compact SCPI-like command grammar.

A line has the general shape ``SUBJECT:VERB[?] arg1,arg2``. Only the first
colon splits subject from verb; later colons are kept as text. A ``?``
anywhere marks the line as a query and is dropped. Whitespace separates the
verb from its arguments but is preserved inside arguments, and commas
always separate arguments. Empty tokens between delimiters are discarded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class ScpiLine:
    """One framed line split into its grammatical parts."""

    subject: str = ""
    verb: str = ""
    is_query: bool = False
    args: List[str] = field(default_factory=list)


def parse_line(line: str) -> ScpiLine:
    parsed = ScpiLine()
    token = ""
    reading_verb = True

    for char in line:
        if char == ":" and not parsed.subject:
            parsed.subject = token
            token = ""
            continue

        if char == "?":
            parsed.is_query = True
            continue

        # The rest of the verb/argument whitespace run
        if char.isspace() and parsed.verb and not token and not parsed.args:
            continue

        # Whitespace only delimits until the verb has been captured
        is_delimiter = char == "," or (char.isspace() and not parsed.verb)
        if not is_delimiter:
            token += char
            continue

        if not token:
            continue

        if reading_verb:
            parsed.verb = token
        else:
            parsed.args.append(token)
        reading_verb = False
        token = ""

    if token:
        if parsed.verb:
            parsed.args.append(token)
        else:
            parsed.verb = token

    return parsed
