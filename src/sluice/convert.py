from typing import List

QUOTES = "'\"`"


def split_placeholders(sql: str) -> List[str]:
    """Split a statement on its ``?`` placeholders.

    Question marks inside quoted literals or identifiers are left alone.
    A doubled quote simply closes and reopens the quoted section, so it
    needs no special handling.
    """
    parts: List[str] = []
    buffer: List[str] = []
    quote = ""
    for char in sql:
        if quote:
            if char == quote:
                quote = ""
        elif char in QUOTES:
            quote = char
        elif char == "?":
            parts.append("".join(buffer))
            buffer = []
            continue
        buffer.append(char)
    parts.append("".join(buffer))
    return parts


def convert_placeholders(sql: str, positional_sub: str = r"%s") -> str:
    if positional_sub == "?":
        return sql
    parts = split_placeholders(sql)
    if "%" in positional_sub:
        parts = [part.replace("%", "%%") for part in parts]
    return positional_sub.join(parts)
