from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List


class FilterSyntaxError(ValueError):
    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.position = position


class TokenKind(str, Enum):
    WORD = "word"
    QUOTED = "quoted"
    COLON = "colon"
    LPAREN = "lparen"
    RPAREN = "rparen"
    AND = "and"
    OR = "or"
    NOT = "not"
    EOF = "eof"


# Keywords are case-sensitive: lowercase and/or/not are plain words.
KEYWORDS = {
    "AND": TokenKind.AND,
    "OR": TokenKind.OR,
    "NOT": TokenKind.NOT,
}

SPACE_CHARS = frozenset(" \t\r\n")
WORD_BREAK_CHARS = SPACE_CHARS | frozenset('():"')
ESCAPABLE = frozenset('"\\')


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    pos: int


def tokenize(text: str) -> List[Token]:
    """Split a filter expression into tokens, ending with an EOF token.

    Positions are 0-based offsets into ``text``; error messages report them 1-based.
    """
    out: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in SPACE_CHARS:
            i += 1
            continue
        if ch == "(":
            out.append(Token(TokenKind.LPAREN, "(", i))
            i += 1
        elif ch == ")":
            out.append(Token(TokenKind.RPAREN, ")", i))
            i += 1
        elif ch == ":":
            out.append(Token(TokenKind.COLON, ":", i))
            i += 1
        elif ch == '"':
            start = i
            i += 1
            buf: List[str] = []
            closed = False
            while i < n:
                cur = text[i]
                if cur == '"':
                    i += 1
                    closed = True
                    break
                if cur == "\\":
                    if i + 1 >= n:
                        raise FilterSyntaxError(f"unterminated escape at {i + 1}", i)
                    nxt = text[i + 1]
                    if nxt not in ESCAPABLE:
                        raise FilterSyntaxError(f"unsupported escape \\{nxt} at {i + 1}", i)
                    buf.append(nxt)
                    i += 2
                    continue
                buf.append(cur)
                i += 1
            if not closed:
                raise FilterSyntaxError(f"unterminated quoted string at {start + 1}", start)
            out.append(Token(TokenKind.QUOTED, "".join(buf), start))
        else:
            start = i
            while i < n and text[i] not in WORD_BREAK_CHARS:
                i += 1
            word = text[start:i]
            out.append(Token(KEYWORDS.get(word, TokenKind.WORD), word, start))
    out.append(Token(TokenKind.EOF, "", n))
    return out
