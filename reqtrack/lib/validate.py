"""
JSON Schema checks for everything reqtrack reads or writes under
.requirements/: config, requirement files, the ignore list, the test cache,
assessments passed to 'req assess' and imported JSON results.

Schemas live in reqtrack/schemas/<name>.schema.json.
"""

import json
from pathlib import Path

import jsonschema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"

_schemas: dict[str, dict] = {}


class ValidationError(Exception):
    """Data does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


def load_schema(schema_name: str) -> dict:
    if schema_name not in _schemas:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        _schemas[schema_name] = json.loads(schema_path.read_text())
    return _schemas[schema_name]


def validate(data, schema_name: str) -> None:
    """
    Check decoded YAML/JSON data against a named schema.

    Raises:
        ValidationError: with the dotted path of the first failing field
    """
    try:
        jsonschema.validate(instance=data, schema=load_schema(schema_name))
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise ValidationError(schema_name, e.message, path) from None


def is_valid(data, schema_name: str) -> bool:
    try:
        validate(data, schema_name)
    except ValidationError:
        return False
    return True


def validate_before_write(data, schema_name: str, filepath: Path) -> None:
    """Refuse to write data to filepath unless it matches the schema."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"Refusing to write {filepath}: {e}") from None
