"""
Read-only gate for ad-hoc SQL.

This is a prefix heuristic, not a parser. Known limits:
    - "SELECT 1; DROP TABLE x" passes is_read_only(); single_statement()
      is what keeps the trailing statement from running.
    - WITH ..., REPLACE, MERGE, CALL and vendor DDL are never treated as reads,
      and an unclosed block comment leaves the text unclassified (not read-only).
    - SELECT ... INTO OUTFILE still counts as a read.
"""

import re
from typing import Sequence

from dbpeek.core.errors import PolicyViolation

SELECT_KEYWORD = re.compile(r"SELECT\b", re.IGNORECASE)
BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

MULTIPLE_STATEMENTS = "only a single statement can be executed"
# "--" needs trailing whitespace to open a comment on MySQL
MYSQL_LINE_COMMENTS = ("-- ", "--\t", "--\r", "--\n", "#")


def strip_leading_comments(sql_text: str, line_comment_markers: Sequence[str] = ("--",)) -> str:
    text = sql_text.lstrip()
    while text:
        marker = next((m for m in line_comment_markers if text.startswith(m)), None)
        if marker is not None:
            newline = text.find("\n")
            text = "" if newline == -1 else text[newline + 1 :].lstrip()
            continue

        block = BLOCK_COMMENT.match(text)
        if block:
            text = text[block.end() :].lstrip()
            continue
        break
    return text


def is_read_only(sql_text: str, line_comment_markers: Sequence[str] = ("--",)) -> bool:
    """True only when the first real token of the text is SELECT."""
    remaining = strip_leading_comments(sql_text or "", line_comment_markers)
    return SELECT_KEYWORD.match(remaining) is not None


def _dash_comment_at(text: str, i: int) -> bool:
    # MySQL only reads "--" as a comment when whitespace (or the end) follows it
    return text.startswith("--", i) and (i + 2 == len(text) or text[i + 2].isspace())


def single_statement(sql_text: str) -> str:
    """
    Return the one statement in sql_text, without its trailing terminator.

    Quotes and MySQL comments ("-- ", "#", block) are honoured while looking
    for ';'. Anything other than whitespace or comments after the first
    terminator is a second statement and raises PolicyViolation.
    """
    text = sql_text.strip()
    i, length = 0, len(text)
    quote = None

    while i < length:
        char = text[i]
        if quote:
            if char == "\\" and quote != "`":
                i += 2
                continue
            if char == quote:
                # Doubled quote is an escaped quote
                if i + 1 < length and text[i + 1] == quote:
                    i += 2
                    continue
                quote = None
            i += 1
            continue

        if char in ("'", '"', "`"):
            quote = char
        elif char == "#" or _dash_comment_at(text, i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        elif char == ";":
            rest = text[i + 1 :]
            while True:
                trimmed = strip_leading_comments(rest, MYSQL_LINE_COMMENTS).lstrip(";")
                if trimmed == rest:
                    break
                rest = trimmed
            if rest:
                raise PolicyViolation(MULTIPLE_STATEMENTS)
            return text[:i].rstrip()
        i += 1

    return text
