"""Typed environment variable readers."""
import os

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_float_env(name: str, default: float, *, allow_zero: bool = False) -> float:
    raw = os.environ.get(name, str(default))
    try:
        value = float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number") from err
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be positive")
    return value


def get_int_env(name: str, default: int, *, min_value: int = 1) -> int:
    raw = os.environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer") from err
    if value < min_value:
        if min_value == 1:
            raise ValueError(f"{name} must be positive")
        raise ValueError(f"{name} must be at least {min_value}")
    return value


def get_bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def get_str_env(name: str, default: str | None = None) -> str | None:
    raw = os.environ.get(name, "").strip()
    return raw or default
