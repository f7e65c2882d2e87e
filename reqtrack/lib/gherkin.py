"""
Gherkin parser, formatter, and validator.

Requirement behavior is written as one scenario in strict Gherkin, one
keyword per line:

    Given a user is logged in
    And they have items in cart
    When they click checkout
    Then the payment page opens

Parsing never raises for bad input. Callers get a ParseSuccess or a
ParseFailure and must handle both.
"""

import re
from dataclasses import dataclass, field

KEYWORDS = ("Given", "When", "Then", "And", "But")
PRIMARY_KEYWORDS = ("Given", "When", "Then")

# Keywords at word boundaries, any case
KEYWORD_RE = re.compile(r'\b(Given|When|Then|And|But)\b', re.IGNORECASE)
SCENARIO_PREFIX_RE = re.compile(r'^\s*Scenario:', re.IGNORECASE)
WHITESPACE_RE = re.compile(r'\s+')

_CANONICAL = {k.lower(): k for k in KEYWORDS}

MULTIPLE_SCENARIOS_WARNING = (
    "Multiple Given/When/Then blocks detected. Each gherkin field should "
    "contain ONE scenario."
)


@dataclass(frozen=True)
class GherkinStep:
    keyword: str  # One of KEYWORDS, canonical capitalization
    text: str


@dataclass
class ParseSuccess:
    steps: list[GherkinStep]
    ok: bool = True


@dataclass
class ParseFailure:
    error: str
    ok: bool = False


@dataclass
class FormatSuccess:
    formatted: str
    ok: bool = True


@dataclass
class ValidationResult:
    """Outcome of a structure check.

    errors are hard ordering violations; warnings are softer diagnostics
    (currently only the merged-scenarios check) that do not affect valid.
    """
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        return self.errors + self.warnings


def normalize_keyword(keyword: str) -> str:
    """Map any capitalization of a keyword to its canonical form."""
    return _CANONICAL.get(keyword.lower(), keyword)


def parse_gherkin(text: str) -> ParseSuccess | ParseFailure:
    """Parse freeform Gherkin text into ordered steps."""
    if not text or not text.strip():
        return ParseFailure("Gherkin text cannot be empty")

    if SCENARIO_PREFIX_RE.match(text):
        return ParseFailure(
            "Don't include 'Scenario:' prefix. Put the scenario name in a "
            "separate field instead."
        )

    # Literal \n sequences come from generated text
    unescaped = text.replace("\\n", "\n")
    normalized = WHITESPACE_RE.sub(" ", unescaped).strip()

    matches = list(KEYWORD_RE.finditer(normalized))
    if not matches:
        return ParseFailure("No Gherkin keywords found. Must include Given, When, and Then.")

    steps = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(normalized)
        step_text = normalized[match.end():end].strip()
        if not step_text:
            return ParseFailure(f"Empty step text after '{match.group(1)}'")
        steps.append(GherkinStep(keyword=normalize_keyword(match.group(1)), text=step_text))

    return ParseSuccess(steps)


def format_gherkin(steps: list[GherkinStep]) -> str:
    """Render steps in canonical one-keyword-per-line form."""
    return "\n".join(f"{step.keyword} {step.text}" for step in steps)


def validate_structure(steps: list[GherkinStep]) -> ValidationResult:
    """
    Validate keyword ordering of a parsed scenario.

    Rules:
    1. Must start with Given
    2. And/But cannot appear before any primary keyword
    3. When must follow a Given; Then must follow a When
    4. Given, When and Then must each appear
    5. Repeated primary keywords are warned about (likely merged scenarios)
    """
    result = ValidationResult()

    if not steps:
        result.errors.append("No steps provided")
        return result

    if steps[0].keyword != "Given":
        result.errors.append(f"Must start with 'Given', found '{steps[0].keyword}'")

    counts = {k: 0 for k in PRIMARY_KEYWORDS}
    seen_primary = False

    for i, step in enumerate(steps, 1):
        keyword = step.keyword

        if keyword in ("And", "But"):
            if not seen_primary:
                result.errors.append(
                    f"'{keyword}' cannot appear before any Given/When/Then (step {i})"
                )
            continue

        if keyword == "When" and not counts["Given"]:
            result.errors.append(f"'When' must come after 'Given' (step {i})")
        elif keyword == "Then" and not counts["When"]:
            result.errors.append(f"'Then' must come after 'When' (step {i})")

        counts[keyword] += 1
        seen_primary = True

    for keyword in PRIMARY_KEYWORDS:
        if not counts[keyword]:
            result.errors.append(f"Missing '{keyword}' keyword")

    if any(count > 1 for count in counts.values()):
        result.warnings.append(MULTIPLE_SCENARIOS_WARNING)

    return result


def parse_and_format(text: str) -> FormatSuccess | ParseFailure:
    """Parse, validate and format in one step.

    Hard ordering errors fail; the merged-scenarios warning does not.
    """
    parsed = parse_gherkin(text)
    if not parsed.ok:
        return parsed

    validation = validate_structure(parsed.steps)
    if not validation.valid:
        return ParseFailure("; ".join(validation.errors))

    return FormatSuccess(format_gherkin(parsed.steps))


def check_stored_format(text: str) -> ValidationResult:
    """
    Validate previously stored Gherkin text.

    Runs the structure check and also requires the canonical layout of
    exactly one keyword at the start of each line.
    """
    parsed = parse_gherkin(text)
    if not parsed.ok:
        return ValidationResult(errors=[parsed.error])

    result = validate_structure(parsed.steps)

    for lineno, line in enumerate(text.strip().split("\n"), 1):
        line = line.strip()
        if not line:
            continue
        keywords = KEYWORD_RE.findall(line)
        if not keywords or not KEYWORD_RE.match(line):
            result.errors.append(f"Line {lineno} does not start with a keyword")
        elif len(keywords) > 1:
            result.errors.append(f"Line {lineno} has multiple keywords (should be one per line)")

    return result
