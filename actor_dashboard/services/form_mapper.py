"""
Schema-driven input forms.

An actor's input schema (JSON-schema-like) is turned into an ordered list of
field specs. Each spec knows which control to show, how to turn raw form input
into a typed payload value, and how to render a stored value back for editing.

    form = build_form(schema)
    payload = form.serialize({"startUrls": "https://a\nhttps://b", "maxPages": "10"})
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

NO_PARAMETERS_MESSAGE = "This actor has no configurable parameters."

# Raw values that parse to OMIT are left out of the payload entirely.
OMIT: Any = object()

_TRUTHY = {"true", "on", "1", "yes"}
_MULTILINE_MAX_LENGTH = 100


@dataclass(frozen=True)
class _BaseField:
    name: str
    label: str
    description: str | None = None
    required: bool = False
    placeholder: str = ""

    control = "text"

    @property
    def wide(self) -> bool:
        return False

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "control": self.control,
            "description": self.description,
            "required": self.required,
            "placeholder": self.placeholder,
            "wide": self.wide,
        }

    def blank(self) -> Any:
        return ""


@dataclass(frozen=True)
class StringField(_BaseField):
    multiline: bool = False

    @property
    def control(self) -> str:  # type: ignore[override]
        return "textarea" if self.multiline else "text"

    @property
    def wide(self) -> bool:
        return self.multiline

    def parse(self, raw: Any) -> Any:
        if raw is None:
            return OMIT
        value = raw if isinstance(raw, str) else str(raw)
        if self.multiline and value == "":
            return OMIT
        return value

    def render(self, value: Any) -> str:
        return "" if value is None else str(value)


@dataclass(frozen=True)
class EnumField(_BaseField):
    options: Tuple[Any, ...] = ()

    control = "select"

    def describe(self) -> Dict[str, Any]:
        out = super().describe()
        out["options"] = list(self.options)
        return out

    def parse(self, raw: Any) -> Any:
        if raw is None or raw == "":
            return OMIT
        return raw

    def render(self, value: Any) -> str:
        return "" if value is None else str(value)


@dataclass(frozen=True)
class NumberField(_BaseField):
    integer: bool = False
    minimum: float | None = None
    maximum: float | None = None

    control = "number"

    def describe(self) -> Dict[str, Any]:
        out = super().describe()
        out.update({"integer": self.integer, "min": self.minimum, "max": self.maximum})
        return out

    def parse(self, raw: Any) -> Any:
        # bool is an int subclass but never a valid number here
        if raw is None or isinstance(raw, bool):
            return OMIT
        if isinstance(raw, int) and self.integer:
            return raw
        if isinstance(raw, (int, float)):
            try:
                number = float(raw)
            except OverflowError:
                return OMIT
        else:
            text = str(raw).strip()
            if not text:
                return OMIT
            if self.integer:
                try:
                    return int(text)
                except ValueError:
                    pass
            try:
                number = float(text)
            except ValueError:
                return OMIT
        if not math.isfinite(number):
            return OMIT
        if self.integer:
            return int(number)
        return float(number)

    def render(self, value: Any) -> str:
        if value is None or isinstance(value, bool):
            return ""
        if isinstance(value, float) and value.is_integer() and self.integer:
            return str(int(value))
        return str(value)


@dataclass(frozen=True)
class BooleanField(_BaseField):
    control = "checkbox"

    def blank(self) -> Any:
        return False

    def parse(self, raw: Any) -> Any:
        if raw is None:
            return False
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            return raw.strip().lower() in _TRUTHY
        return bool(raw)

    def render(self, value: Any) -> bool:
        return bool(value)


@dataclass(frozen=True)
class ArrayField(_BaseField):
    control = "textarea"

    @property
    def wide(self) -> bool:
        return True

    def parse(self, raw: Any) -> Any:
        if raw is None:
            return OMIT
        if isinstance(raw, (list, tuple)):
            lines = [str(item) for item in raw]
        else:
            lines = str(raw).split("\n")
        return [line.strip() for line in lines if line.strip()]

    def render(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return "\n".join(str(item) for item in value)
        return str(value)


FieldSpec = Union[StringField, EnumField, NumberField, BooleanField, ArrayField]


def _number_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def field_from_descriptor(name: str, descriptor: Mapping[str, Any], *, required: bool = False) -> FieldSpec:
    """The only place a descriptor's "type" string is inspected."""
    label = descriptor.get("title") or name
    description = descriptor.get("description")
    required = required or descriptor.get("required") is True
    placeholder = description or descriptor.get("example") or f"Enter {label}"
    if not isinstance(placeholder, str):
        placeholder = str(placeholder)
    common = dict(name=name, label=label, description=description, required=required, placeholder=placeholder)

    kind = descriptor.get("type")
    enum = descriptor.get("enum")

    if kind == "string" and isinstance(enum, list) and enum:
        return EnumField(**common, options=tuple(enum))
    if kind == "string":
        max_length = descriptor.get("maxLength")
        multiline = descriptor.get("format") == "textarea" or (
            _number_or_none(max_length) is not None and max_length > _MULTILINE_MAX_LENGTH
        )
        return StringField(**common, multiline=multiline)
    if kind in ("number", "integer"):
        return NumberField(
            **common,
            integer=kind == "integer",
            minimum=_number_or_none(descriptor.get("minimum")),
            maximum=_number_or_none(descriptor.get("maximum")),
        )
    if kind == "boolean":
        return BooleanField(**common)
    if kind == "array":
        if not description:
            common["placeholder"] = f"Enter {label}, one per line"
        return ArrayField(**common)
    return StringField(**common)


def _properties(schema: Any) -> Mapping[str, Any]:
    if not isinstance(schema, Mapping):
        return {}
    if "properties" in schema or schema.get("type") == "object":
        props = schema.get("properties")
        return props if isinstance(props, Mapping) else {}
    # bare {field name: descriptor} mapping
    return {k: v for k, v in schema.items() if isinstance(v, Mapping)}


@dataclass
class ActorForm:
    fields: List[FieldSpec] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields

    @property
    def message(self) -> str | None:
        return NO_PARAMETERS_MESSAGE if self.is_empty else None

    def get(self, name: str) -> Optional[FieldSpec]:
        return next((f for f in self.fields if f.name == name), None)

    def blank_values(self) -> Dict[str, Any]:
        return {f.name: f.blank() for f in self.fields}

    def serialize(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Raw form values -> typed payload, in field order.
        Missing keys are omitted, except booleans which default to False.
        Required fields are not enforced.
        """
        payload: Dict[str, Any] = {}
        for spec in self.fields:
            raw = values.get(spec.name)
            if spec.name not in values and not isinstance(spec, BooleanField):
                continue
            parsed = spec.parse(raw)
            if parsed is not OMIT:
                payload[spec.name] = parsed
        return payload

    def render_values(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Typed payload -> display values for re-editing."""
        return {spec.name: spec.render(payload.get(spec.name)) for spec in self.fields}

    def describe(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"fields": [f.describe() for f in self.fields]}
        if self.message:
            out["message"] = self.message
        return out


def build_form(schema: Any) -> ActorForm:
    required_names = set()
    if isinstance(schema, Mapping) and isinstance(schema.get("required"), list):
        required_names = {n for n in schema["required"] if isinstance(n, str)}

    fields: List[FieldSpec] = []
    for name, descriptor in _properties(schema).items():
        if not isinstance(descriptor, Mapping):
            descriptor = {}
        fields.append(field_from_descriptor(name, descriptor, required=name in required_names))
    return ActorForm(fields=fields)


class FormSession:
    """
    Editable values for the currently selected actor's form.
    Switching to a different actor discards every value entered so far.
    """

    def __init__(self) -> None:
        self.actor_id: str | None = None
        self.form: ActorForm = ActorForm()
        self.values: Dict[str, Any] = {}

    def select(self, actor_id: str, schema: Any) -> ActorForm:
        if actor_id != self.actor_id:
            self.values = {}
        self.actor_id = actor_id
        self.form = build_form(schema)
        return self.form

    def set_value(self, name: str, raw: Any) -> None:
        if self.form.get(name) is None:
            raise KeyError(name)
        self.values[name] = raw

    def update(self, values: Mapping[str, Any]) -> None:
        for name, raw in values.items():
            self.set_value(name, raw)

    def reset(self) -> None:
        self.values = {}

    def payload(self) -> Dict[str, Any]:
        return self.form.serialize(self.values)
