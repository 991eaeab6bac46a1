"""Base classes for model serialization."""

from __future__ import annotations

from dataclasses import MISSING, fields
from typing import Any, TypeVar, get_type_hints

T = TypeVar("T", bound="SerializableMixin")


class SerializableMixin:
    """Mixin providing from_dict/to_dict for flat dataclasses.

    Records on disk may have been written by older versions or other
    tools, so deserialization is lenient:
    - missing keys fall back to field defaults
    - ``int`` fields accept numeric strings; garbage becomes the default
    - ``str`` fields accept ``None`` as the default
    - unknown keys are ignored (the store keeps them in the raw document)

    Example usage:
        @dataclass
        class MyModel(SerializableMixin):
            name: str = ""
            count: int = 0

        model = MyModel.from_dict({"name": "test", "count": "5"})
        data = model.to_dict()
    """

    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        type_hints = get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            has_default = True
            if f.default is not MISSING:
                default = f.default
            elif f.default_factory is not MISSING:
                default = f.default_factory()
            else:
                has_default, default = False, None
            if f.name not in data:
                # Without a default, let the dataclass raise.
                if has_default:
                    kwargs[f.name] = default
                continue
            kwargs[f.name] = _coerce(data[f.name], type_hints.get(f.name), default)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            result[f.name] = value.value if hasattr(value, "value") else value
        return result


def _coerce(value: Any, field_type: Any, default: Any) -> Any:
    """Coerce a raw JSON value into *field_type*, falling back to *default*."""
    if field_type is int:
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return default
        return default
    if field_type is str:
        if value is None:
            return default
        return value if isinstance(value, str) else str(value)
    return value
