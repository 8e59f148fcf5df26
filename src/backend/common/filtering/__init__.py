"""Filter expression language over transactions.

Queries such as ``cat:Food AND amt:<-50`` are tokenized, parsed into immutable node
trees, evaluated against transaction-like rows and rendered back in canonical form.
Nothing here touches storage.
"""

from .evaluator import FilterRow, evaluate
from .lexer import FilterSyntaxError
from .nodes import (
    And,
    Comparison,
    Expr,
    FieldPredicate,
    FilterField,
    Not,
    Or,
    TextScope,
    TextTerm,
    and_nodes,
    contains_field_predicate,
    mark_text_metadata,
    or_nodes,
)
from .parser import fallback_plain_text, parse_permissive, parse_strict
from .serializer import serialize
