"""
Source scanner for test declarations.

Finds calls such as it("name", () => {...}) in JavaScript/TypeScript test
files and returns the exact source text of their arguments.

Balanced-delimiter counting is done by an explicit state machine over the
source (see ScanState), so parentheses and braces inside string literals,
template literals (including nested ${...} expressions), regular expression
literals and comments never desynchronize the depth counters. Regular
expressions are only used as a cheap pre-filter to find candidate call sites.
"""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from reqtrack.lib.constants import DEFAULT_TEST_NAMES
from reqtrack.lib.types import ExtractedTest

WHITESPACE_RE = re.compile(r'\s+')

HASH_SCOPES = ("call", "callback")


class ScanState(Enum):
    NORMAL = "normal"
    SINGLE_QUOTE = "single_quote"
    DOUBLE_QUOTE = "double_quote"
    TEMPLATE = "template"
    REGEX = "regex"
    REGEX_CLASS = "regex_class"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"


_QUOTE_STATES = {
    "'": ScanState.SINGLE_QUOTE,
    '"': ScanState.DOUBLE_QUOTE,
    "`": ScanState.TEMPLATE,
}
_CLOSING_QUOTE = {
    ScanState.SINGLE_QUOTE: "'",
    ScanState.DOUBLE_QUOTE: '"',
}
_OPENERS = "([{"
_CLOSERS = ")]}"

# A '/' after one of these (or at the start of input) opens a regex literal;
# anywhere else it is division
_REGEX_PRECEDERS = set("(,=:[!&|?{};")
_REGEX_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
}
# Stands in for a literal that just closed
_LITERAL = '"'


@dataclass(frozen=True)
class Token:
    """A structural piece of source found in NORMAL state.

    kind "code" is a single character outside any literal or comment;
    kind "string" spans a complete top-level string or template literal,
    quotes included.
    """
    kind: str
    start: int
    end: int


@dataclass
class CallSpan:
    """Location of a test declaration call."""
    name: str  # Contents of the first string literal argument
    open_paren: int
    close_paren: int  # Index of the matching ')'
    body_start: int  # First char after the comma that follows the name

    def body(self, content: str) -> str:
        return content[self.body_start:self.close_paren].strip()



def _starts_regex(content: str, prev: str, prev_index: int) -> bool:
    """True if a '/' following the significant char prev opens a regex."""
    if not prev or prev in _REGEX_PRECEDERS:
        return True
    if not (prev.isalnum() or prev in "_$"):
        return False
    j = prev_index
    while j >= 0 and (content[j].isalnum() or content[j] in "_$"):
        j -= 1
    return content[j + 1:prev_index + 1] in _REGEX_KEYWORDS


def tokenize(content: str, start: int = 0) -> Iterator[Token]:
    """
    Walk content from start, yielding code characters and string literals.

    Nothing inside comments or regex literals is yielded. Code inside a
    template literal's ${...} expression is tracked (so nested quotes,
    comments and templates are skipped correctly) but not yielded: the whole
    outer template is reported as one string token.
    """
    state = ScanState.NORMAL
    # Open ${...} expressions, innermost last; each entry is its brace depth
    expr_depths: list[int] = []
    literal_start = start
    # Last significant character seen in NORMAL state, for regex detection
    prev = ""
    prev_index = -1
    n = len(content)
    i = start

    while i < n:
        c = content[i]
        nxt = content[i + 1] if i + 1 < n else ""

        if state is ScanState.NORMAL:
            if c == "/" and nxt == "/":
                state = ScanState.LINE_COMMENT
                i += 2
                continue
            if c == "/" and nxt == "*":
                state = ScanState.BLOCK_COMMENT
                i += 2
                continue
            if c == "/" and _starts_regex(content, prev, prev_index):
                state = ScanState.REGEX
                i += 1
                continue
            if c in _QUOTE_STATES:
                state = _QUOTE_STATES[c]
                if not expr_depths:
                    literal_start = i
                i += 1
                continue
            if not c.isspace():
                prev, prev_index = c, i
            if expr_depths:
                if c == "{":
                    expr_depths[-1] += 1
                elif c == "}":
                    if expr_depths[-1] == 0:
                        expr_depths.pop()
                        state = ScanState.TEMPLATE
                    else:
                        expr_depths[-1] -= 1
                i += 1
                continue
            yield Token("code", i, i + 1)
            i += 1

        elif state in _CLOSING_QUOTE:
            if c == "\\":
                i += 2
                continue
            if c == "\n":
                # Unterminated string; resync at end of line
                state = ScanState.NORMAL
            elif c == _CLOSING_QUOTE[state]:
                state = ScanState.NORMAL
                prev, prev_index = _LITERAL, i
                if not expr_depths:
                    yield Token("string", literal_start, i + 1)
            i += 1

        elif state is ScanState.TEMPLATE:
            if c == "\\":
                i += 2
                continue
            if c == "`":
                state = ScanState.NORMAL
                prev, prev_index = _LITERAL, i
                if not expr_depths:
                    yield Token("string", literal_start, i + 1)
                i += 1
                continue
            if c == "$" and nxt == "{":
                expr_depths.append(0)
                state = ScanState.NORMAL
                prev, prev_index = "{", i + 1
                i += 2
                continue
            i += 1

        elif state in (ScanState.REGEX, ScanState.REGEX_CLASS):
            if c == "\\":
                i += 2
                continue
            if c == "\n":
                # Not a regex after all; resync at end of line
                state = ScanState.NORMAL
            elif state is ScanState.REGEX_CLASS:
                if c == "]":
                    state = ScanState.REGEX
            elif c == "[":
                state = ScanState.REGEX_CLASS
            elif c == "/":
                state = ScanState.NORMAL
                prev, prev_index = _LITERAL, i
            i += 1

        elif state is ScanState.LINE_COMMENT:
            if c == "\n":
                state = ScanState.NORMAL
            i += 1

        else:  # BLOCK_COMMENT
            if c == "*" and nxt == "/":
                state = ScanState.NORMAL
                i += 2
                continue
            i += 1


def find_matching_paren(content: str, open_paren: int) -> int | None:
    """Index of the ')' closing the '(' at open_paren, or None if unbalanced."""
    depth = 0
    for tok in tokenize(content, open_paren):
        if tok.kind != "code":
            continue
        c = content[tok.start]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return tok.start
    return None


def scan_call(content: str, open_paren: int) -> CallSpan | None:
    """
    Scan a call from its opening parenthesis to the matching one.

    The first string literal seen at argument level before any argument
    separator is the name; everything after that separator up to the
    closing parenthesis is the body.

    Returns None if the call is unbalanced, has no literal name, or has
    no arguments after the name.
    """
    paren_depth = 0
    nesting = 0  # All bracket kinds, so commas in objects/arrays are skipped
    name = None
    body_start = None

    for tok in tokenize(content, open_paren):
        if tok.kind == "string":
            if nesting == 1 and name is None and body_start is None:
                name = content[tok.start + 1:tok.end - 1]
            continue

        c = content[tok.start]
        if c in _OPENERS:
            nesting += 1
            if c == "(":
                paren_depth += 1
        elif c in _CLOSERS:
            nesting -= 1
            if c == ")":
                paren_depth -= 1
                if paren_depth == 0:
                    if name is None or body_start is None:
                        return None
                    return CallSpan(
                        name=name,
                        open_paren=open_paren,
                        close_paren=tok.start,
                        body_start=body_start,
                    )
        elif c == "," and nesting == 1 and body_start is None:
            body_start = tok.end
            if name is None:
                # First argument was not a literal
                return None

    return None


def extract_function_body(content: str, start: int = 0) -> str:
    """
    Return the callback's {...} block at or after start.

    That is the first top-level brace block following '=>' or a closing
    parameter list, so destructured parameters such as ({ page }) and
    leading option objects are skipped. Uses the same string/comment-aware
    scan as scan_call. Falls back to content[start:] when no such block
    exists (e.g. an expression-bodied arrow function).
    """
    nesting = 0
    depth = 0
    body_start = None
    prev = ""
    prev_index = -1
    for tok in tokenize(content, start):
        if tok.kind != "code":
            prev, prev_index = _LITERAL, tok.start
            continue
        c = content[tok.start]
        if body_start is not None:
            if c == "{":
                depth += 1
            elif c == "}":
                depth -= 1
                if depth == 0:
                    return content[body_start:tok.end]
            continue

        if c == "{" and nesting == 0:
            arrow = prev == ">" and prev_index > 0 and content[prev_index - 1] == "="
            if arrow or prev == ")":
                body_start = tok.start
                depth = 1
                continue
        if c in _OPENERS:
            nesting += 1
        elif c in _CLOSERS:
            nesting -= 1
        if not c.isspace():
            prev, prev_index = c, tok.start
    return content[start:]


def hash_body(body: str) -> str:
    """sha256 hex of body with whitespace runs collapsed and ends trimmed."""
    normalized = WHITESPACE_RE.sub(" ", body).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def build_call_pattern(names: tuple[str, ...] | list[str]) -> re.Pattern:
    """Pre-filter for name(...), name.only(...), name.skip(...) and name.each(...)."""
    alternatives = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    return re.compile(
        rf'(?<![\w.$])(?:{alternatives})(?:\.(only|skip|each))?\s*\('
    )


def _code_positions(content: str) -> set[int]:
    return {tok.start for tok in tokenize(content) if tok.kind == "code"}


def find_calls(content: str, names=DEFAULT_TEST_NAMES) -> list[CallSpan]:
    """Find every named test declaration in content, in source order."""
    pattern = build_call_pattern(tuple(names))
    code = None
    calls = []

    for match in pattern.finditer(content):
        open_paren = match.end() - 1
        if code is None:
            code = _code_positions(content)
        # Candidate inside a string or comment
        if open_paren not in code:
            continue

        if match.group(1) == "each":
            # it.each(table)("name %s", fn): the test call follows the table
            table_close = find_matching_paren(content, open_paren)
            if table_close is None:
                continue
            j = table_close + 1
            while j < len(content) and content[j].isspace():
                j += 1
            if j >= len(content) or content[j] != "(":
                continue
            open_paren = j

        span = scan_call(content, open_paren)
        if span is not None:
            calls.append(span)

    return calls


def extract_tests_from_content(
    content: str,
    relative_path: str,
    names=DEFAULT_TEST_NAMES,
    hash_scope: str = "call",
) -> list[ExtractedTest]:
    """
    Extract all tests from file content.

    Deduplicates by identifier within the file; the first declaration wins
    (so it.only("x") followed by it("x") yields one test).

    hash_scope "call" fingerprints the whole argument text after the name;
    "callback" fingerprints only the callback's {...} block.
    """
    if hash_scope not in HASH_SCOPES:
        raise ValueError(f"Unknown hash scope: {hash_scope}")

    tests = []
    seen: set[str] = set()

    for span in find_calls(content, names):
        if span.name in seen:
            continue
        seen.add(span.name)

        body = span.body(content)
        hashed = extract_function_body(body) if hash_scope == "callback" else body
        tests.append(ExtractedTest(
            file=relative_path,
            identifier=span.name,
            body=body,
            hash=hash_body(hashed),
        ))

    return tests
