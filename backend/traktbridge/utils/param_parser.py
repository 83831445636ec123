"""
Query Parameter Parsing

Parses raw query-string values into typed values. Absent values (None)
parse to None; the ``*_strict`` variants reject them. Every failure raises
``ParameterValidationError`` (HTTP 400) naming the parameter and the reason.

Example:
    >>> number("25", "limit", min=1)
    25
    >>> enum("movie", ["all", "movies", "shows"], "type", aliases=TYPE_ALIASES)
    'movies'
    >>> boolean("yes", "include_unwatched")
    Traceback (most recent call last):
    ParameterValidationError: Expected one of [true, false], got 'yes'
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from traktbridge.api.errors import ParameterValidationError

# Singular forms accepted for plural Trakt types
TYPE_ALIASES: Dict[str, List[str]] = {
    "movies": ["movie"],
    "shows": ["show"],
    "seasons": ["season"],
    "episodes": ["episode"],
}


def _describe(param: Any) -> str:
    return f"'{param}'" if isinstance(param, str) else type(param).__name__


def _missing(param_name: str) -> ParameterValidationError:
    return ParameterValidationError(
        param_name, "missing_required", "Required parameter cannot be null or undefined"
    )


def number(
    param: Any,
    param_name: str = "<number>",
    allow_negative: bool = False,
    min: Optional[float] = None,
    max: Optional[float] = None,
    integer: bool = False,
) -> Optional[Union[int, float]]:
    """
    Parse a number.

    Integral values come back as ``int``, others as ``float``. With
    ``integer`` a fractional value is rejected instead.

    Raises:
        ParameterValidationError: ``invalid_value``, ``negative_not_allowed``,
            ``below_minimum`` or ``above_maximum``
    """
    if param is None:
        return None

    try:
        parsed = float(param)
    except (TypeError, ValueError):
        raise ParameterValidationError(
            param_name, "invalid_value", f"Expected a number, got {_describe(param)}"
        )
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        raise ParameterValidationError(
            param_name, "invalid_value", f"Expected a number, got {_describe(param)}"
        )
    if parsed.is_integer():
        parsed = int(parsed)
    elif integer:
        raise ParameterValidationError(
            param_name, "invalid_value", f"Expected a whole number, got {_describe(param)}"
        )

    if not allow_negative and parsed < 0:
        raise ParameterValidationError(
            param_name, "negative_not_allowed", f"Expected a non-negative number, got {parsed}"
        )
    if min is not None and parsed < min:
        raise ParameterValidationError(
            param_name, "below_minimum",
            f"Expected a number greater than or equal to {min}, got {parsed}",
        )
    if max is not None and parsed > max:
        raise ParameterValidationError(
            param_name, "above_maximum",
            f"Expected a number less than or equal to {max}, got {parsed}",
        )
    return parsed


def number_strict(param: Any, param_name: str = "<number>", **options: Any) -> Union[int, float]:
    value = number(param, param_name, **options)
    if value is None:
        raise _missing(param_name)
    return value


def date(param: Any, param_name: str = "<date>") -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime. Naive values are taken as UTC.

    Raises:
        ParameterValidationError: ``invalid_value``
    """
    if param is None:
        return None
    if isinstance(param, datetime):
        parsed = param
    else:
        try:
            parsed = datetime.fromisoformat(str(param).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ParameterValidationError(
                param_name, "invalid_value", f"Expected a valid date, got {_describe(param)}"
            )
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def date_strict(param: Any, param_name: str = "<date>") -> datetime:
    value = date(param, param_name)
    if value is None:
        raise _missing(param_name)
    return value


def boolean(
    param: Any,
    param_name: str = "<boolean>",
    allow_bit: bool = False,
    allow_on_off: bool = False,
) -> Optional[bool]:
    """
    Parse ``true``/``false`` (optionally also ``1``/``0`` and ``on``/``off``).

    Raises:
        ParameterValidationError: ``invalid_value``
    """
    if param is None:
        return None
    if isinstance(param, bool):
        return param

    valid_values = ["true", "false"]
    if allow_bit:
        valid_values += ["0", "1"]
    if allow_on_off:
        valid_values += ["on", "off"]

    if param not in valid_values:
        raise ParameterValidationError(
            param_name, "invalid_value",
            f"Expected one of [{', '.join(valid_values)}], got {_describe(param)}",
        )
    return param in ("true", "1", "on")


def boolean_strict(param: Any, param_name: str = "<boolean>", **options: Any) -> bool:
    value = boolean(param, param_name, **options)
    if value is None:
        raise _missing(param_name)
    return value


def string(param: Any, param_name: str = "<string>") -> Optional[str]:
    if param is None:
        return None
    if not isinstance(param, str):
        raise ParameterValidationError(
            param_name, "invalid_value", f"Expected a string, got {type(param).__name__}"
        )
    return param


def string_strict(param: Any, param_name: str = "<string>") -> str:
    value = string(param, param_name)
    if value is None or value == "":
        raise _missing(param_name)
    return value


def enum(
    param: Any,
    values: Iterable[Any],
    param_name: str = "<enum>",
    match_case: bool = False,
    aliases: Optional[Dict[str, List[str]]] = None,
) -> Optional[str]:
    """
    Parse one of a fixed set of values, case-insensitively by default.

    Args:
        param: Raw value
        values: Allowed values (strings or a str Enum class)
        param_name: Name used in errors
        match_case: Require exact case
        aliases: Extra spellings accepted for a value, e.g. ``{"movies": ["movie"]}``

    Returns:
        The canonical allowed value

    Raises:
        ParameterValidationError: ``invalid_value`` or ``invalid_option``
            (with ``allowedValues`` in the details)
    """
    if param is None:
        return None
    if not isinstance(param, str):
        raise ParameterValidationError(
            param_name, "invalid_value", f"Expected a string, got {type(param).__name__}"
        )

    allowed = [getattr(v, "value", v) for v in values]

    def norm(value: str) -> str:
        return value if match_case else value.lower()

    candidate = norm(param)
    for canonical, spellings in (aliases or {}).items():
        if candidate in (norm(s) for s in spellings):
            candidate = norm(canonical)
            break

    for value in allowed:
        if norm(value) == candidate:
            return value

    raise ParameterValidationError(
        param_name, "invalid_option",
        f"Expected one of [{', '.join(allowed)}], got '{param}'",
        allowedValues=allowed,
    )


def enum_strict(param: Any, values: Iterable[Any], param_name: str = "<enum>", **options: Any) -> str:
    value = enum(param, values, param_name, **options)
    if value is None:
        raise _missing(param_name)
    return value


def trakt_type(param: Any, values: Iterable[str], param_name: str = "type") -> Optional[str]:
    """Parse a Trakt type, accepting singular aliases (``movie`` -> ``movies``)."""
    allowed = list(values)
    aliases = {value: TYPE_ALIASES[value] for value in allowed if value in TYPE_ALIASES}
    return enum(param, allowed, param_name, aliases=aliases)
