from __future__ import annotations

from typing import List, Optional

from .lexer import FilterSyntaxError, Token, TokenKind, tokenize
from .nodes import (
    TEXT_FIELDS,
    And,
    Comparison,
    Expr,
    FieldPredicate,
    FilterField,
    Not,
    Or,
    TextTerm,
    flatten_children,
    with_grouped,
)
from .serializer import serialize
from .values import (
    DEFAULT_SHORT_YEAR_CENTURY,
    canonical_date_token,
    canonical_decimal,
    date_token_bounds,
    parse_number,
)

_TERM_START = frozenset({TokenKind.LPAREN, TokenKind.WORD, TokenKind.QUOTED, TokenKind.NOT})
_VALUE_STOP = frozenset({TokenKind.EOF, TokenKind.RPAREN, TokenKind.AND, TokenKind.OR})
_AMOUNT_OPS = (
    ("<=", Comparison.LE),
    (">=", Comparison.GE),
    ("<", Comparison.LT),
    (">", Comparison.GT),
    ("=", Comparison.EQ),
)


def parse_permissive(
    text: str,
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> Optional[Expr]:
    """Parse a filter expression. Blank input yields ``None`` (matches everything)."""
    return _parse(text, strict=False, short_year_century=short_year_century)


def parse_strict(
    text: str,
    *,
    short_year_century: Optional[int] = DEFAULT_SHORT_YEAR_CENTURY,
) -> Optional[Expr]:
    """Parse like :func:`parse_permissive`, rejecting ungrouped AND/OR mixing."""
    return _parse(text, strict=True, short_year_century=short_year_century)


def fallback_plain_text(raw: str) -> Optional[Expr]:
    """Wrap the whole input as one description search; for callers whose parse failed."""
    text = (raw or "").strip()
    if not text:
        return None
    return TextTerm(text)


def _parse(text: str, *, strict: bool, short_year_century: Optional[int]) -> Optional[Expr]:
    if not (text or "").strip():
        return None
    parser = _Parser(tokenize(text), short_year_century=short_year_century)
    node = parser.parse_or()
    tok = parser.peek()
    if tok.kind != TokenKind.EOF:
        raise FilterSyntaxError(f"unexpected token {tok.text!r} at {tok.pos + 1}", tok.pos)
    if strict and has_mixed_grouping_violation(node):
        raise FilterSyntaxError(
            f"strict mode requires parentheses when mixing AND/OR; try: {serialize(node)}"
        )
    return node


def has_mixed_grouping_violation(node: Expr) -> bool:
    if isinstance(node, Not):
        return has_mixed_grouping_violation(node.child)
    if not isinstance(node, (And, Or)):
        return False
    other = Or if isinstance(node, And) else And
    for child in node.children:
        if isinstance(child, other) and not child.grouped:
            return True
        if has_mixed_grouping_violation(child):
            return True
    return False


class _Parser:
    def __init__(self, tokens: List[Token], *, short_year_century: Optional[int]):
        self._tokens = tokens
        self._idx = 0
        self._short_year_century = short_year_century

    def peek(self, offset: int = 0) -> Token:
        idx = self._idx + offset
        if idx >= len(self._tokens):
            return self._tokens[-1]
        return self._tokens[idx]

    def consume(self) -> Token:
        tok = self.peek()
        if self._idx < len(self._tokens):
            self._idx += 1
        return tok

    def parse_or(self) -> Expr:
        children = [self.parse_and()]
        while self.peek().kind == TokenKind.OR:
            self.consume()
            children.append(self.parse_and())
        if len(children) == 1:
            return children[0]
        return Or(flatten_children(Or, children))

    def parse_and(self) -> Expr:
        children = [self.parse_unary()]
        while True:
            kind = self.peek().kind
            if kind == TokenKind.AND:
                self.consume()
                children.append(self.parse_unary())
                continue
            if kind in _TERM_START:
                children.append(self.parse_unary())
                continue
            break
        if len(children) == 1:
            return children[0]
        return And(flatten_children(And, children))

    def parse_unary(self) -> Expr:
        if self.peek().kind == TokenKind.NOT:
            self.consume()
            return Not(self.parse_unary())
        return self.parse_term()

    def parse_term(self) -> Expr:
        tok = self.peek()
        if tok.kind == TokenKind.LPAREN:
            self.consume()
            node = self.parse_or()
            closing = self.peek()
            if closing.kind != TokenKind.RPAREN:
                raise FilterSyntaxError(f"missing ')' at {closing.pos + 1}", closing.pos)
            self.consume()
            return with_grouped(node)
        if tok.kind == TokenKind.QUOTED:
            self.consume()
            return TextTerm(tok.text)
        if tok.kind == TokenKind.WORD:
            if self.peek(1).kind == TokenKind.COLON:
                return self.parse_field_predicate()
            self.consume()
            return TextTerm(tok.text)
        if tok.kind == TokenKind.EOF:
            raise FilterSyntaxError("unexpected end of expression", tok.pos)
        raise FilterSyntaxError(f"unexpected token {tok.text!r} at {tok.pos + 1}", tok.pos)

    def is_field_predicate_at(self, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return (
            tok.kind == TokenKind.WORD
            and self.peek(offset + 1).kind == TokenKind.COLON
            and FilterField.lookup(tok.text) is not None
        )

    def parse_field_predicate(self) -> FieldPredicate:
        field_tok = self.consume()
        self.consume()  # colon
        field = FilterField.lookup(field_tok.text)
        if field is None:
            raise FilterSyntaxError(f"unknown field {field_tok.text!r} at {field_tok.pos + 1}", field_tok.pos)

        raw = self.collect_value(field, allow_multi=field in TEXT_FIELDS)
        if field == FilterField.AMT:
            return _amount_predicate(raw, field_tok.pos)
        if field == FilterField.DATE:
            return _date_predicate(raw, field_tok.pos, self._short_year_century)
        if field == FilterField.TYPE:
            value = raw.strip().lower()
            if value not in ("debit", "credit"):
                raise FilterSyntaxError(f"type expects debit|credit at {field_tok.pos + 1}", field_tok.pos)
            return FieldPredicate(field, Comparison.EQ, value)
        if field in (FilterField.CAT, FilterField.TAG):
            return FieldPredicate(field, Comparison.EQ, raw.strip())
        return FieldPredicate(field, Comparison.CONTAINS, raw.strip())

    def collect_value(self, field: FilterField, *, allow_multi: bool) -> str:
        if self.peek().kind == TokenKind.QUOTED:
            return self.consume().text
        words: List[str] = []
        while self.peek().kind == TokenKind.WORD:
            if words and self.is_field_predicate_at():
                break
            if self.peek(1).kind == TokenKind.COLON and words:
                break
            words.append(self.consume().text)
            if not allow_multi or self.peek().kind in _VALUE_STOP:
                break
        if not words:
            tok = self.peek()
            if tok.kind in (TokenKind.EOF, TokenKind.RPAREN):
                raise FilterSyntaxError(f"{field.value}: missing value", tok.pos)
            raise FilterSyntaxError(f"{field.value}: invalid value near {tok.text!r}", tok.pos)
        return " ".join(words)


def _amount_predicate(raw: str, pos: int) -> FieldPredicate:
    text = raw.replace(" ", "").strip()
    if not text:
        raise FilterSyntaxError(f"amt: missing value at {pos + 1}", pos)
    if ".." in text:
        low_text, high_text = text.split("..", 1)
        if not low_text or not high_text:
            raise FilterSyntaxError(f"amt: invalid range {raw!r}", pos)
        try:
            low = parse_number(low_text)
        except ValueError:
            raise FilterSyntaxError(f"amt: invalid range low {low_text!r}", pos) from None
        try:
            high = parse_number(high_text)
        except ValueError:
            raise FilterSyntaxError(f"amt: invalid range high {high_text!r}", pos) from None
        if low > high:
            raise FilterSyntaxError("amt: range low > high", pos)
        return FieldPredicate(
            FilterField.AMT,
            Comparison.RANGE,
            low=canonical_decimal(low),
            high=canonical_decimal(high),
        )
    for prefix, op in _AMOUNT_OPS:
        if text.startswith(prefix):
            number_text = text[len(prefix):]
            try:
                number = parse_number(number_text)
            except ValueError:
                raise FilterSyntaxError(f"amt: invalid number {number_text!r}", pos) from None
            return FieldPredicate(FilterField.AMT, op, canonical_decimal(number))
    try:
        number = parse_number(text)
    except ValueError:
        raise FilterSyntaxError(f"amt: invalid value {raw!r}", pos) from None
    return FieldPredicate(FilterField.AMT, Comparison.EQ, canonical_decimal(number))


def _date_predicate(raw: str, pos: int, short_year_century: Optional[int]) -> FieldPredicate:
    text = raw.replace(" ", "").strip()
    if not text:
        raise FilterSyntaxError(f"date: missing value at {pos + 1}", pos)
    if ".." in text:
        start_text, end_text = text.split("..", 1)
        if not start_text or not end_text:
            raise FilterSyntaxError(f"date: invalid range {raw!r}", pos)
        try:
            start = canonical_date_token(start_text, short_year_century=short_year_century)
        except ValueError:
            raise FilterSyntaxError(f"date: invalid start {start_text!r}", pos) from None
        try:
            end = canonical_date_token(end_text, short_year_century=short_year_century)
        except ValueError:
            raise FilterSyntaxError(f"date: invalid end {end_text!r}", pos) from None
        if date_token_bounds(end)[1] < date_token_bounds(start)[0]:
            raise FilterSyntaxError("date: range start is after end", pos)
        return FieldPredicate(FilterField.DATE, Comparison.RANGE, low=start, high=end)
    try:
        token = canonical_date_token(text, short_year_century=short_year_century)
    except ValueError:
        raise FilterSyntaxError(f"date: invalid value {raw!r}", pos) from None
    return FieldPredicate(FilterField.DATE, Comparison.EQ, token)
