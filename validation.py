import json
import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None
    line: int | None = None
    column: int | None = None

    def to_dict(self) -> dict:
        out = {"valid": self.valid}
        for name in ("error", "line", "column"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        return out


VALID = ValidationResult(True)


class _NoOffset(ValueError):
    pass


def _reject_constant(name):
    raise _NoOffset(f"Unexpected token {name} is not valid JSON")


def _parse_float(text):
    # out-of-range literals such as 1e400 read as null, as they do in a browser
    value = float(text)
    return value if math.isfinite(value) else None


def parse_json(text: str):
    """json.loads without the NaN/Infinity extension browsers refuse."""
    return json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)


def line_and_column(text: str, offset: int) -> tuple[int, int]:
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset) + 1
    last_nl = text.rfind("\n", 0, offset)
    return line, offset - last_nl


def validate_json(text: str) -> ValidationResult:
    try:
        parse_json(text)
    except json.JSONDecodeError as e:
        line, column = line_and_column(text, e.pos)
        return ValidationResult(False, f"Line {line}: {e.msg}", line, column)
    except _NoOffset as e:
        return ValidationResult(False, f"Line 1: {e}", 1, 1)
    except RecursionError:
        return ValidationResult(False, "Line 1: document is nested too deeply", 1, 1)
    return VALID
