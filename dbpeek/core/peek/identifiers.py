from typing import Optional

from sqlalchemy.dialects import mysql
from sqlalchemy.engine import Dialect

# Statements are built for MySQL unless a bound engine says otherwise
DEFAULT_DIALECT = mysql.dialect()


def quote_identifier(name: str, dialect: Optional[Dialect] = None) -> str:
    """
    Quote a table or column name for the given dialect.

    Embedded quote characters are doubled and the result is wrapped in the
    dialect's identifier quotes, e.g. ``we`ird`` -> `` `we``ird` `` on MySQL.
    Nothing else is touched: '%' doubling for format-style drivers happens when
    the statement is compiled. Only for identifiers, literal values always go
    through bind parameters.
    """
    preparer = (dialect or DEFAULT_DIALECT).identifier_preparer
    escaped = name.replace(preparer.escape_quote, preparer.escape_to_quote)
    return f"{preparer.initial_quote}{escaped}{preparer.final_quote}"


def quote_for_text(name: str, dialect: Optional[Dialect] = None) -> str:
    """Quoted identifier that is also safe inside sqlalchemy.text() (colons escaped)."""
    return quote_identifier(name, dialect).replace(":", "\\:")
