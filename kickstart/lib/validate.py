"""
JSON Schema checks for the files kickstart reads and writes.

Schemas live in kickstart/schemas/<name>.schema.json:

    agents          agents.yaml command templates
    agent_profile   opencode permission profiles
    result          result.json written at the end of every run

Data is checked before it is written, so an invalid result.json never
reaches disk.
"""

import json
from functools import lru_cache
from pathlib import Path

import jsonschema

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class ValidationError(Exception):
    """Data did not match a schema."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        location = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{location}")


@lru_cache(maxsize=None)
def get_validator(schema_name: str) -> jsonschema.Draft7Validator:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.is_file():
        raise ValidationError(schema_name, f"Unknown schema, no file at {schema_path}")
    schema = json.loads(schema_path.read_text())
    jsonschema.Draft7Validator.check_schema(schema)
    return jsonschema.Draft7Validator(schema)


def _location(error: jsonschema.ValidationError) -> str:
    return ".".join(str(part) for part in error.absolute_path) or "(root)"


def validate(data, schema_name: str) -> None:
    """Raise ValidationError describing the most relevant violation.

    When several fields are wrong, the message lists the others after the first.
    """
    errors = sorted(get_validator(schema_name).iter_errors(data), key=lambda e: list(e.absolute_path))
    if not errors:
        return
    primary = jsonschema.exceptions.best_match(errors)
    others = [f"{_location(e)}: {e.message}" for e in errors if e is not primary]
    message = primary.message
    if others:
        message += f" (also: {'; '.join(others)})"
    raise ValidationError(schema_name, message, _location(primary))


def write_json(data: dict, schema_name: str, filepath: Path) -> Path:
    """Validate ``data`` and write it as indented JSON."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(schema_name, f"Not writing {filepath.name}: {e}") from None
    filepath.write_text(json.dumps(data, indent=2) + "\n")
    return filepath
