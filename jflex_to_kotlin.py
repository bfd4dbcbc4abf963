#!/usr/bin/env python3
"""
JFlex Lexer to Kotlin Converter

Prepares a JFlex-generated Java lexer for automatic Java-to-Kotlin
translation, runs the translator and patches the known gaps in its output.

Steps (in order):
1. Re-encode string literals: packed-table concatenations are merged and
   re-split into bounded chunks, literals holding raw control characters are
   rewritten with unicode escapes.
2. Reorder packed/base field pairs in the lexer class.
3. Translate the prepared Java source (external tool).
4. Apply the text fixups to the translated Kotlin source.
"""

import argparse
import re
import shlex
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import yaml
from pygments.lexers import JavaLexer
from pygments.token import (
    Comment, Keyword, Name, Number, Operator, Punctuation, String, Text
)

from kotlin_translator import CommandTranslator, TranslatorError

DEFAULT_PACKED_LINE_MAX_LENGTH = 5000
PACKED_SUFFIX = "_PACKED_0"
LEXER_FILE_PREFIX = "_"

BASE_FIRST = "base-first"
PACKED_FIRST = "packed-first"
FIELD_ORDERS = (BASE_FIRST, PACKED_FIRST)


# =============================================================================
# Errors
# =============================================================================

class ConversionError(Exception):
    """Base class for errors raised by the conversion steps."""


class ConsistencyError(ConversionError):
    """The lexer source does not have the shape the generator produces."""


class WriteAccessError(ConversionError):
    """A source tree was mutated outside of a write command."""


# =============================================================================
# Java String Literals
# =============================================================================

_SIMPLE_ESCAPES = {
    'b': '\b', 't': '\t', 'n': '\n', 'f': '\f', 'r': '\r', 's': ' ',
    '"': '"', "'": "'", '\\': '\\',
}
_HEX_DIGITS = set("0123456789abcdefABCDEF")


def _translate_unicode_escapes(body: str) -> str:
    """Replace \\uXXXX escapes the way the Java compiler does before lexing.

    Only a backslash preceded by an even number of backslashes can start a
    unicode escape, and a translated backslash never starts another one.
    """
    out = []
    pos = 0
    n = len(body)
    while pos < n:
        if body[pos] != '\\':
            out.append(body[pos])
            pos += 1
            continue
        run_end = pos
        while run_end < n and body[run_end] == '\\':
            run_end += 1
        run = run_end - pos
        if run % 2 == 0 or run_end >= n or body[run_end] != 'u':
            out.append(body[pos:run_end])
            pos = run_end
            continue
        out.append('\\' * (run - 1))
        digits_start = run_end
        while digits_start < n and body[digits_start] == 'u':
            digits_start += 1
        digits = body[digits_start:digits_start + 4]
        if len(digits) != 4 or not set(digits) <= _HEX_DIGITS:
            raise ValueError(f"Invalid unicode escape at position {pos}: {body[pos:digits_start + 4]!r}")
        out.append(chr(int(digits, 16)))
        pos = digits_start + 4
    return "".join(out)


def _join_surrogates(text: str) -> str:
    """Combine UTF-16 surrogate pairs into single codepoints."""
    out = []
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ('\ud800' <= ch <= '\udbff' and pos + 1 < len(text)
                and '\udc00' <= text[pos + 1] <= '\udfff'):
            high, low = ord(ch) - 0xD800, ord(text[pos + 1]) - 0xDC00
            out.append(chr(0x10000 + (high << 10) + low))
            pos += 2
        else:
            out.append(ch)
            pos += 1
    return "".join(out)


def decode_java_string(body: str) -> str:
    """Decode the body of a Java string literal (without the quotes).

    Lone surrogates are kept as they are; pairs become one codepoint.
    """
    text = _translate_unicode_escapes(body)
    out = []
    pos = 0
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch != '\\':
            out.append(ch)
            pos += 1
            continue
        if pos + 1 >= n:
            raise ValueError("Unexpected end of literal after backslash")
        nxt = text[pos + 1]
        if nxt in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[nxt])
            pos += 2
        elif nxt in "01234567":
            # \0 - \377: three digits only when the first one is 0-3
            max_digits = 3 if nxt in "0123" else 2
            end = pos + 1
            while end < n and end - pos - 1 < max_digits and text[end] in "01234567":
                end += 1
            out.append(chr(int(text[pos + 1:end], 8)))
            pos = end
        else:
            raise ValueError(f"Invalid escape sequence \\{nxt} at position {pos}")
    return _join_surrogates("".join(out))


def _utf16_units(code: int) -> Tuple[int, ...]:
    if code < 0x10000:
        return (code,)
    code -= 0x10000
    return (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF))


def hex_escape(unit: int) -> str:
    """Four digit lower-case escape of one UTF-16 code unit."""
    if not 0 <= unit <= 0xFFFF:
        raise ValueError(f"0x{unit:X} does not fit a 4 digit escape")
    return f"\\u{unit:04x}"


def escape_codepoints(text: str, quote: str = '"') -> str:
    """Escape every codepoint of text for use inside a Java/Kotlin literal.

    Line breaks, the quote and the backslash get their short escapes;
    everything else, printable ASCII included, becomes a four digit
    lower-case \\uXXXX escape. Codepoints above U+FFFF are written as
    their surrogate pair.
    """
    parts = []
    for ch in text:
        code = ord(ch)
        if code == 0x0A:
            parts.append("\\n")
        elif code == 0x0D:
            parts.append("\\r")
        elif ch == quote or ch == '\\':
            parts.append('\\' + ch)
        else:
            parts.extend(hex_escape(unit) for unit in _utf16_units(code))
    return "".join(parts)


def split_chunks(value: str, max_length: int) -> List[str]:
    """Split value into consecutive slices of at most max_length codepoints."""
    if max_length < 1:
        raise ValueError(f"Chunk length must be positive, got {max_length}")
    return [value[i:i + max_length] for i in range(0, len(value), max_length)]


def has_raw_control_chars(value: str) -> bool:
    """True if value holds a codepoint below U+000A."""
    return any(ord(ch) < 0x0A for ch in value)


# =============================================================================
# Source Tree
# =============================================================================

# Node kinds
STRING = "string"
TEXT_BLOCK = "text_block"
CHAR = "char"
OPERATOR = "operator"
PUNCTUATION = "punctuation"
NAME = "name"
KEYWORD = "keyword"
ANNOTATION = "annotation"
NUMBER = "number"
WHITESPACE = "whitespace"
COMMENT = "comment"
OTHER = "other"

TRIVIA = (WHITESPACE, COMMENT)
TYPE_KEYWORDS = ("class", "interface", "enum", "record")

# Longest first, for maximal munch
_JAVA_OPERATORS = sorted([
    ">>>=", "<<=", ">>=", ">>>", "->", "==", "<=", ">=", "!=", "&&", "||",
    "++", "--", "+=", "-=", "*=", "/=", "&=", "|=", "^=", "%=", "<<", ">>",
], key=len, reverse=True)

_OPENERS = ("(", "{", "[")
_CLOSERS = (")", "}", "]")


@dataclass
class SourceNode:
    """One token of the arena: a kind and its exact source text."""
    kind: str
    text: str

    def __repr__(self):
        return f"{self.kind}({self.text!r})"

    @property
    def value(self) -> str:
        """Decoded value of a string literal node."""
        if self.kind != STRING:
            raise ValueError(f"Not a string literal: {self!r}")
        return decode_java_string(self.text[1:-1])


@dataclass
class ClassDecl:
    """A top-level type declaration."""
    name: str
    modifiers: Tuple[str, ...]
    body_start: int  # arena index of the opening brace
    body_end: int    # arena index of the closing brace


@dataclass
class FieldDecl:
    """A member field; start/end delimit its nodes (doc comment included)."""
    name: str
    start: int
    end: int
    text: str

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)


def _node_kind(ttype) -> str:
    if ttype in Comment:
        return COMMENT
    if ttype in String.Char:
        return CHAR
    if ttype in String:
        return STRING
    if ttype in Operator:
        return OPERATOR
    if ttype in Punctuation:
        return PUNCTUATION
    if ttype in Name.Decorator:
        return ANNOTATION
    if ttype in Keyword:
        return KEYWORD
    if ttype in Name:
        return NAME
    if ttype in Number:
        return NUMBER
    if ttype in Text:
        return WHITESPACE
    return OTHER


def _split_operators(run: str) -> List[str]:
    parts = []
    pos = 0
    while pos < len(run):
        for op in _JAVA_OPERATORS:
            if run.startswith(op, pos):
                break
        else:
            op = run[pos]
        parts.append(op)
        pos += len(op)
    return parts


def lex_java(text: str) -> List[SourceNode]:
    """Tokenize Java source into arena nodes.

    pygments splits a string literal into several String tokens and emits
    operators one character at a time; both are merged here so that one
    node is one Java token. The concatenated node texts equal the input.
    """
    lexer = JavaLexer(stripnl=False, ensurenl=False)
    nodes = []
    literal = None
    closing = None
    operators = ""

    def flush_operators():
        nonlocal operators
        for op in _split_operators(operators):
            nodes.append(SourceNode(OPERATOR, op))
        operators = ""

    for _, ttype, value in lexer.get_tokens_unprocessed(text):
        if literal is not None:
            literal += value
            if value == closing:
                if nodes and (nodes[-1].kind == TEXT_BLOCK or nodes[-1].text == '""'):
                    # Two string tokens never touch in Java: this is a text
                    # block some lexer versions split at the inner quotes
                    nodes[-1] = SourceNode(TEXT_BLOCK, nodes[-1].text + literal)
                else:
                    nodes.append(SourceNode(TEXT_BLOCK if closing == '"""' else STRING, literal))
                literal = None
            continue
        kind = _node_kind(ttype)
        if kind == OPERATOR:
            operators += value
            continue
        flush_operators()
        if kind == STRING:
            literal = value
            closing = '"""' if value.startswith('"""') else '"'
            continue
        if nodes and kind == WHITESPACE and nodes[-1].kind == WHITESPACE:
            nodes[-1].text += value
            continue
        nodes.append(SourceNode(kind, value))

    flush_operators()
    if literal is not None:
        # Unterminated literal: keep the text, never treat it as a string
        nodes.append(SourceNode(OTHER, literal))
    return nodes


class SourceTree:
    """Mutable token arena over one Java source file.

    Mutations (replace, swap) are only allowed inside write_command().
    """

    def __init__(self, nodes: List[SourceNode], path: Optional[Path] = None):
        self.nodes = nodes
        self.path = Path(path) if path is not None else None
        self.history: List[str] = []
        self._command: Optional[str] = None

    @classmethod
    def from_text(cls, text: str, path=None) -> 'SourceTree':
        return cls(lex_java(text), path)

    @classmethod
    def from_file(cls, path) -> 'SourceTree':
        with open(path, encoding='utf-8', newline='') as f:
            return cls.from_text(f.read(), path)

    @property
    def text(self) -> str:
        return "".join(node.text for node in self.nodes)

    def significant(self) -> List[int]:
        """Arena indices of all nodes that are not whitespace or comments."""
        return [i for i, node in enumerate(self.nodes) if node.kind not in TRIVIA]

    # =========================================================================
    # Write Access
    # =========================================================================

    @contextmanager
    def write_command(self, name: str):
        """Exclusive write section; recorded in history when it completes."""
        if self._command is not None:
            raise WriteAccessError(f"Cannot start '{name}' while '{self._command}' is running")
        self._command = name
        try:
            yield self
        finally:
            self._command = None
        self.history.append(name)

    def _check_write_access(self):
        if self._command is None:
            raise WriteAccessError("Source tree modified outside of a write command")

    def create_expression(self, text: str) -> List[SourceNode]:
        """Build nodes for an expression given as source text."""
        return lex_java(text)

    def replace(self, start: int, end: int, nodes: List[SourceNode]):
        """Replace arena nodes [start, end) with nodes."""
        self._check_write_access()
        self.nodes[start:end] = nodes

    def swap(self, first: Tuple[int, int], second: Tuple[int, int]):
        """Exchange two disjoint node ranges; nodes between them stay put."""
        self._check_write_access()
        (a0, a1), (b0, b1) = sorted([first, second])
        if a1 > b0:
            raise ValueError(f"Overlapping ranges {first} and {second}")
        nodes = self.nodes
        self.nodes = nodes[:a0] + nodes[b0:b1] + nodes[a1:b0] + nodes[a0:a1] + nodes[b1:]

    # =========================================================================
    # Declarations
    # =========================================================================

    def classes(self) -> List[ClassDecl]:
        """Top-level type declarations in source order."""
        decls = []
        sig = self.significant()
        depth = 0
        decl_start = 0
        k = 0
        while k < len(sig):
            node = self.nodes[sig[k]]
            if node.kind == PUNCTUATION and node.text == '{':
                depth += 1
            elif node.kind == PUNCTUATION and node.text == '}':
                depth -= 1
                if depth == 0:
                    decl_start = k + 1
            elif depth == 0 and node.text == ';':
                decl_start = k + 1
            elif depth == 0 and node.kind == KEYWORD and node.text in TYPE_KEYWORDS:
                decl, k = self._read_class(sig, decl_start, k)
                if decl is not None:
                    decls.append(decl)
                decl_start = k + 1
            k += 1
        return decls

    def _read_class(self, sig: List[int], start: int, keyword: int) -> Tuple[Optional[ClassDecl], int]:
        """Read a declaration whose keyword is at sig[keyword].

        Returns the declaration and the sig position of its closing brace.
        """
        modifiers = tuple(self.nodes[i].text for i in sig[start:keyword]
                          if self.nodes[i].kind == KEYWORD)
        name = None
        k = keyword + 1
        while k < len(sig):
            node = self.nodes[sig[k]]
            if name is None and node.kind == NAME:
                name = node.text
            if node.kind == PUNCTUATION and node.text in ('{', ';'):
                break
            k += 1
        if k >= len(sig) or name is None:
            return None, keyword
        if self.nodes[sig[k]].text != "{":
            return None, k
        body_start = k
        depth = 0
        while k < len(sig):
            node = self.nodes[sig[k]]
            if node.kind == PUNCTUATION and node.text == '{':
                depth += 1
            elif node.kind == PUNCTUATION and node.text == '}':
                depth -= 1
                if depth == 0:
                    break
            k += 1
        if k >= len(sig):
            raise ConsistencyError(f"Unterminated body of {name}")
        return ClassDecl(name, modifiers, sig[body_start], sig[k]), k

    def lexer_class(self) -> ClassDecl:
        """The single public top-level class holding the generated lexer."""
        public = [c for c in self.classes() if "public" in c.modifiers]
        if len(public) != 1:
            names = ", ".join(c.name for c in public) or "none"
            raise ConsistencyError(f"Expected exactly one public top-level class, found: {names}")
        return public[0]

    def fields(self, decl: ClassDecl) -> List[FieldDecl]:
        """Member fields of decl in declaration order."""
        result = []
        member = []
        depth = 0
        assigned = False
        for i in range(decl.body_start + 1, decl.body_end):
            node = self.nodes[i]
            if node.kind in TRIVIA:
                continue
            member.append(i)
            text = node.text
            if node.kind in (PUNCTUATION, OPERATOR) and text in _OPENERS:
                depth += 1
            elif node.kind in (PUNCTUATION, OPERATOR) and text in _CLOSERS:
                depth -= 1
                if depth == 0 and text == '}' and not assigned:
                    # method, initializer or nested type
                    member, assigned = [], False
            elif depth == 0 and node.kind == OPERATOR and text == '=':
                assigned = True
            elif depth == 0 and text == ';':
                found = self._read_field(member)
                if found is not None:
                    result.append(found)
                member, assigned = [], False
        return result

    def _read_field(self, member: List[int]) -> Optional[FieldDecl]:
        """Build a FieldDecl from a ';'-terminated member, or None for methods."""
        name = None
        angle = 0
        k = 0
        while k < len(member):
            node = self.nodes[member[k]]
            if node.kind == ANNOTATION:
                k += 1
                if k < len(member) and self.nodes[member[k]].text == '(':
                    k = self._skip_parens(member, k)
                continue
            text = node.text
            if text == '(':
                return None
            if text in ('=', ';') or (text == ',' and angle == 0):
                break
            if node.kind == OPERATOR:
                angle += text.count('<') - text.count('>')
            elif node.kind == NAME and angle == 0:
                name = node.text
            k += 1
        if name is None:
            return None

        start = member[0]
        before = start - 1
        while before >= 0 and self.nodes[before].kind == WHITESPACE:
            before -= 1
        if before >= 0 and self.nodes[before].kind == COMMENT and self.nodes[before].text.startswith("/**"):
            start = before
        end = member[-1] + 1
        text = "".join(n.text for n in self.nodes[start:end])
        return FieldDecl(name, start, end, text)

    def _skip_parens(self, member: List[int], k: int) -> int:
        """Return the position after the parenthesis opened at member[k]."""
        depth = 0
        while k < len(member):
            text = self.nodes[member[k]].text
            if text == '(':
                depth += 1
            elif text == ')':
                depth -= 1
                if depth == 0:
                    return k + 1
            k += 1
        return k


# =============================================================================
# String Literal Conversion
# =============================================================================

# Tokens that bind an adjacent operand at least as tightly as '+'
_BINDS_LEFT_OPERAND = {"+", "-", "*", "/", "%", "!", "~", "++", "--", ".", ")"}
_BINDS_RIGHT_OPERAND = {"+", "-", "*", "/", "%", ".", "[", "++", "--"}


def quote_literal(value: str) -> str:
    return f'"{escape_codepoints(value)}"'


def concatenation_text(value: str, max_length: int = DEFAULT_PACKED_LINE_MAX_LENGTH) -> str:
    """Source text of value re-split into escaped chunks joined by ' +\\n'."""
    chunks = split_chunks(value, max_length)
    if not chunks:
        return '""'
    return " +\n".join(quote_literal(chunk) for chunk in chunks)


def _is_plus(node: SourceNode) -> bool:
    return node.kind == OPERATOR and node.text == "+"


def _is_closed_chain(tree: SourceTree, sig: List[int], first: int, last: int) -> bool:
    """Check that no operator outside sig[first..last] takes an operand from it."""
    if first > 0:
        prev = tree.nodes[sig[first - 1]]
        if prev.kind in (OPERATOR, PUNCTUATION) and prev.text in _BINDS_LEFT_OPERAND:
            return False
    if last + 1 < len(sig):
        nxt = tree.nodes[sig[last + 1]]
        if nxt.kind in (OPERATOR, PUNCTUATION) and nxt.text in _BINDS_RIGHT_OPERAND:
            return False
    return True


def convert_string_literals(tree: SourceTree, max_length: int = DEFAULT_PACKED_LINE_MAX_LENGTH) -> int:
    """Rewrite string literals so they survive translation unchanged.

    A chain of string literals joined only by '+' is merged and re-emitted
    as escaped chunks of at most max_length codepoints. Any other string
    literal is rewritten with escapes if it holds a codepoint below U+000A.
    A chain with a single non-literal operand is left alone; its literals
    are checked one by one.

    Returns the number of replaced expressions.
    """
    if max_length < 1:
        raise ValueError(f"packed_line_max_length must be positive, got {max_length}")

    with tree.write_command("convert-string-literals"):
        edits = []
        sig = tree.significant()
        k = 0
        while k < len(sig):
            if tree.nodes[sig[k]].kind != STRING:
                k += 1
                continue
            last = k
            while (last + 2 < len(sig) and _is_plus(tree.nodes[sig[last + 1]])
                   and tree.nodes[sig[last + 2]].kind == STRING):
                last += 2
            operands = [tree.nodes[sig[i]] for i in range(k, last + 1, 2)]

            if len(operands) > 1 and _is_closed_chain(tree, sig, k, last):
                value = "".join(op.value for op in operands)
                edits.append((sig[k], sig[last] + 1, concatenation_text(value, max_length)))
            else:
                for i in range(k, last + 1, 2):
                    value = tree.nodes[sig[i]].value
                    if has_raw_control_chars(value):
                        edits.append((sig[i], sig[i] + 1, quote_literal(value)))
            k = last + 1

        # Right to left, so pending indices stay valid
        for start, end, text in reversed(edits):
            tree.replace(start, end, tree.create_expression(text))
    return len(edits)


# =============================================================================
# Packed Field Reordering
# =============================================================================

def packed_field_pairs(fields: List[FieldDecl]) -> List[Tuple[str, str]]:
    """(base, packed) name pairs; every packed field must have a base."""
    names = {f.name for f in fields}
    pairs = []
    for f in fields:
        if not f.name.endswith(PACKED_SUFFIX):
            continue
        base = f.name[:-len(PACKED_SUFFIX)]
        if base not in names:
            raise ConsistencyError(f"Packed field {f.name} has no base field {base}")
        pairs.append((base, f.name))
    return pairs


def reorder_packed_fields(tree: SourceTree, order: str = BASE_FIRST) -> int:
    """Swap packed/base field pairs of the lexer class into the given order.

    With BASE_FIRST the base field ends up before its packed counterpart,
    with PACKED_FIRST after it. Returns the number of swaps.
    """
    if order not in FIELD_ORDERS:
        raise ValueError(f"Unknown field order {order!r}, expected one of {FIELD_ORDERS}")

    with tree.write_command("reorder-packed-fields"):
        decl = tree.lexer_class()
        pairs = packed_field_pairs(tree.fields(decl))
        swaps = 0
        for base_name, packed_name in pairs:
            by_name = {f.name: f for f in tree.fields(decl)}
            base, packed = by_name[base_name], by_name[packed_name]
            out_of_order = packed.start < base.start if order == BASE_FIRST else base.start < packed.start
            if out_of_order:
                tree.swap(base.span, packed.span)
                swaps += 1
    return swaps


# =============================================================================
# Kotlin Fixups
# =============================================================================

@dataclass(frozen=True)
class Fixup:
    """One substitution applied to the translated text."""
    pattern: str
    replacement: str = ""
    regex: bool = False

    def apply(self, text: str) -> str:
        if self.regex:
            return re.sub(self.pattern, self.replacement, text, flags=re.MULTILINE)
        return text.replace(self.pattern, self.replacement)


@dataclass(frozen=True)
class FixupTable:
    """Ordered fixups for one version of the translator output."""
    version: str
    fixups: Tuple[Fixup, ...]


BUILTIN_FIXUPS: Dict[str, FixupTable] = {
    "j2k-1": FixupTable("j2k-1", (
        Fixup("Character", "Compat"),
        Fixup("(`in`: Reader)", ""),
        Fixup("@Throws(IOException::class)", ""),
        Fixup("zzForAction@{", "zzForAction@"),
        Fixup("}\n            // store back cached position", ""),
        Fixup("init {\n        this.zzReader = `in`\n    }", ""),
    )),
}
DEFAULT_FIXUP_VERSION = "j2k-1"


def apply_fixups(text: str, table: FixupTable) -> str:
    for fixup in table.fixups:
        text = fixup.apply(text)
    return text


def load_fixups(path) -> FixupTable:
    """Load a fixup table from YAML.

    Format:
        version: j2k-2
        fixups:
          - pattern: "Character"
            replacement: "Compat"
          - pattern: '@Throws\\(\\w+::class\\)'
            regex: true
    """
    with open(path, encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or not isinstance(data.get("fixups"), list):
        raise ValueError(f"Expected a mapping with a 'fixups' list in {path}")
    version = str(data.get("version", Path(path).stem))

    fixups = []
    for i, entry in enumerate(data["fixups"]):
        if not isinstance(entry, dict) or not isinstance(entry.get("pattern"), str):
            raise ValueError(f"Fixup {i} in {path} needs a string 'pattern'")
        unknown = set(entry) - {"pattern", "replacement", "regex"}
        if unknown:
            raise ValueError(f"Fixup {i} in {path} has unknown keys: {', '.join(sorted(unknown))}")
        replacement = entry.get("replacement", "")
        regex = entry.get("regex", False)
        if not isinstance(replacement, str) or not isinstance(regex, bool):
            raise ValueError(f"Fixup {i} in {path}: 'replacement' must be a string, 'regex' a boolean")
        if regex:
            try:
                re.compile(entry["pattern"])
            except re.error as e:
                raise ValueError(f"Fixup {i} in {path}: bad pattern: {e}") from e
        fixups.append(Fixup(entry["pattern"], replacement, regex))
    return FixupTable(version, tuple(fixups))


def resolve_fixups(name: str, base_dir: Optional[Path] = None) -> FixupTable:
    """Builtin table by version name, or a YAML table by path."""
    if name in BUILTIN_FIXUPS:
        return BUILTIN_FIXUPS[name]
    path = Path(name)
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path
    if not path.exists():
        known = ", ".join(sorted(BUILTIN_FIXUPS))
        raise ValueError(f"Unknown fixup table {name!r} (builtin versions: {known})")
    return load_fixups(path)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class Config:
    packed_line_max_length: int = DEFAULT_PACKED_LINE_MAX_LENGTH
    packed_field_order: str = BASE_FIRST
    fixups: str = DEFAULT_FIXUP_VERSION
    translator: Optional[List[str]] = None
    base_dir: Optional[Path] = field(default=None, repr=False)

    def __post_init__(self):
        length = self.packed_line_max_length
        if isinstance(length, bool) or not isinstance(length, int) or length < 1:
            raise ValueError(f"packed_line_max_length must be a positive integer, got {length!r}")
        if self.packed_field_order not in FIELD_ORDERS:
            raise ValueError(f"packed_field_order must be one of {FIELD_ORDERS}, got {self.packed_field_order!r}")
        if not isinstance(self.fixups, str):
            raise ValueError(f"fixups must be a version name or a path, got {self.fixups!r}")
        if isinstance(self.translator, str):
            self.translator = shlex.split(self.translator)
        if self.translator is not None and (
                not self.translator or not all(isinstance(arg, str) for arg in self.translator)):
            raise ValueError("translator must be a non-empty command line")

    def fixup_table(self) -> FixupTable:
        return resolve_fixups(self.fixups, self.base_dir)


_CONFIG_KEYS = ("packed_line_max_length", "packed_field_order", "fixups", "translator")


def load_config(path) -> Config:
    """Load a Config from a YAML file; relative paths resolve against it."""
    with open(path, encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in config file {path}, got {type(data).__name__}")
    unknown = set(data) - set(_CONFIG_KEYS)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return Config(base_dir=Path(path).parent, **data)


# =============================================================================
# Pipeline
# =============================================================================

Translate = Callable[[SourceTree], str]


def is_generated_lexer(path) -> bool:
    """JFlex output files are named '_<Lexer>.java'."""
    path = Path(path)
    return path.name.startswith(LEXER_FILE_PREFIX) and path.suffix == ".java"


def _no_log(message: str):
    pass


def preprocess_lexer(tree: SourceTree, config: Optional[Config] = None,
                     log: Callable[[str], None] = _no_log):
    """Run the tree rewriting steps that prepare the Java source."""
    config = config or Config()
    log("[1/4] Converting string literals...")
    count = convert_string_literals(tree, config.packed_line_max_length)
    log(f"      {count} literal expression(s) rewritten")
    log("[2/4] Reordering packed fields...")
    swaps = reorder_packed_fields(tree, config.packed_field_order)
    log(f"      {swaps} field pair(s) swapped")


def convert_lexer(tree: SourceTree, translate: Translate, config: Optional[Config] = None,
                  log: Callable[[str], None] = _no_log) -> Optional[str]:
    """Convert a generated lexer tree to Kotlin text.

    Returns None without touching the tree if it is not a generated lexer.
    That includes trees without a path, as built by SourceTree.from_text()
    without one. Errors raised by translate() propagate unchanged.
    """
    if tree.path is None or not is_generated_lexer(tree.path):
        return None
    config = config or Config()
    table = config.fixup_table()

    preprocess_lexer(tree, config, log)
    log("[3/4] Translating...")
    kotlin = translate(tree)
    log(f"[4/4] Applying fixups ({table.version})...")
    return apply_fixups(kotlin, table)


def convert_file(path, translate: Translate, config: Optional[Config] = None,
                 output=None, log: Callable[[str], None] = _no_log) -> Optional[Path]:
    """Convert a lexer file and write the Kotlin result.

    Returns the written path, or None if the file is not a generated lexer.
    """
    path = Path(path)
    if not is_generated_lexer(path):
        return None
    tree = SourceTree.from_file(path)
    kotlin = convert_lexer(tree, translate, config, log)
    output = Path(output) if output else path.with_suffix(".kt")
    with open(output, 'w', encoding='utf-8', newline='') as f:
        f.write(kotlin)
    return output


# =============================================================================
# Main
# =============================================================================

def _build_config(args) -> Config:
    config = load_config(args.config) if args.config else Config()
    overrides = {}
    if args.max_length is not None:
        overrides["packed_line_max_length"] = args.max_length
    if args.packed_first:
        overrides["packed_field_order"] = PACKED_FIRST
    if args.fixups:
        overrides["fixups"] = args.fixups
        overrides["base_dir"] = None
    if args.translator:
        overrides["translator"] = args.translator
    return replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Convert a JFlex-generated Java lexer to Kotlin",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Config file format (YAML):
  packed_line_max_length: 5000
  packed_field_order: base-first     # or packed-first
  fixups: j2k-1                      # builtin version or path to a YAML table
  translator: ["j2k", "$input", "-o", "$output"]

Example usage:
    python jflex_to_kotlin.py _MyLexer.java -c config.yaml
    python jflex_to_kotlin.py _MyLexer.java --no-translate -o prepared.java
"""
    )
    parser.add_argument("lexer", help="Generated lexer source (e.g. _MyLexer.java)")
    parser.add_argument("--config", "-c", help="YAML config file")
    parser.add_argument("--output", "-o",
                        help="Output file (default: <lexer>.kt; stdout with --no-translate)")
    parser.add_argument("--max-length", "-m", type=int,
                        help=f"Maximum chunk length of packed strings (default: {DEFAULT_PACKED_LINE_MAX_LENGTH})")
    parser.add_argument("--fixups", "-f", help="Fixup table: builtin version name or YAML file")
    parser.add_argument("--translator", "-t", type=shlex.split,
                        help="Translator command line; $input, $output and $workdir are substituted")
    parser.add_argument("--packed-first", action="store_true",
                        help="Declare packed strings before the tables unpacked from them")
    parser.add_argument("--no-translate", action="store_true",
                        help="Only prepare the Java source")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    def log(message: str):
        if args.verbose:
            print(message, file=sys.stderr)

    lexer_path = Path(args.lexer)
    if not is_generated_lexer(lexer_path):
        log(f"Skipping {lexer_path}: not a generated lexer file")
        return 0

    try:
        config = _build_config(args)
        if args.no_translate:
            tree = SourceTree.from_file(lexer_path)
            preprocess_lexer(tree, config, log)
            if args.output:
                with open(args.output, 'w', encoding='utf-8', newline='') as f:
                    f.write(tree.text)
                print(f"Prepared Java source written to {args.output}")
            else:
                sys.stdout.write(tree.text)
            return 0

        if not config.translator:
            print("Error: no translator configured (use --translator, a config file, or --no-translate)",
                  file=sys.stderr)
            return 1
        output = convert_file(lexer_path, CommandTranslator(config.translator), config,
                              args.output, log)
    except (ConversionError, TranslatorError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Kotlin code written to {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
