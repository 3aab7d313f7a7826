"""Issue template schema and YAML parser.

Templates use the GitHub issue-form layout::

    name: Task
    description: A unit of work
    type: task
    body:
      - type: markdown
        attributes:
          value: "Describe the task."
      - type: textarea
        id: description
        attributes:
          label: Description
        validations:
          required: true

GitHub form types are normalized on parse: ``input`` → text,
``textarea`` → multiline-text, ``checkboxes`` (and ``dropdown`` with
``multiple: true``) → multi-select.
"""

from enum import StrEnum
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ghpm.errors import TemplateParseError


class FieldKind(StrEnum):
    MARKDOWN = "markdown"
    TEXT = "text"
    MULTILINE_TEXT = "multiline-text"
    DROPDOWN = "dropdown"
    MULTI_SELECT = "multi-select"


_KIND_ALIASES = {
    "markdown": FieldKind.MARKDOWN,
    "input": FieldKind.TEXT,
    "text": FieldKind.TEXT,
    "textarea": FieldKind.MULTILINE_TEXT,
    "multiline-text": FieldKind.MULTILINE_TEXT,
    "dropdown": FieldKind.DROPDOWN,
    "checkboxes": FieldKind.MULTI_SELECT,
    "multi-select": FieldKind.MULTI_SELECT,
}

_REQUIRED_KEYS = ("name", "body")


class TemplateField(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FieldKind
    id: str = ""
    label: str = ""
    description: str = ""
    placeholder: str = ""
    options: list[str] = []
    required: bool = False

    @property
    def display_label(self) -> str:
        return self.label or self.id

    @property
    def is_input(self) -> bool:
        return self.kind is not FieldKind.MARKDOWN


class Template(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    title: str = ""
    type: str = ""
    labels: list[str] = []
    fields: list[TemplateField] = []

    @field_validator("labels", mode="before")
    @classmethod
    def _split_labels(cls, value: Any) -> Any:
        # GitHub accepts a comma-separated string as well as a list
        if isinstance(value, str):
            return [label.strip() for label in value.split(",") if label.strip()]
        return value or []

    def required_fields(self) -> list[TemplateField]:
        return [f for f in self.fields if f.is_input and f.required]

    def input_fields(self) -> list[TemplateField]:
        return [f for f in self.fields if f.is_input]

    def field(self, field_id: str) -> TemplateField | None:
        return next((f for f in self.fields if f.is_input and f.id == field_id), None)


def _option_names(raw_options: Any, index: int) -> list[str]:
    if raw_options is None:
        return []
    if not isinstance(raw_options, list):
        raise TemplateParseError(f"body[{index}].attributes.options must be a list")
    names = []
    for opt in raw_options:
        # checkbox options are {label: ..., required: ...} mappings
        if isinstance(opt, dict):
            opt = opt.get("label")
        if opt is None:
            raise TemplateParseError(f"body[{index}] has an option without a label")
        names.append(str(opt))
    return names


def _parse_field(raw: Any, index: int) -> TemplateField:
    if not isinstance(raw, dict):
        raise TemplateParseError(f"body[{index}] must be a mapping")

    type_name = str(raw.get("type", "")).strip().lower()
    kind = _KIND_ALIASES.get(type_name)
    if kind is None:
        raise TemplateParseError(f"body[{index}] has unknown field type '{raw.get('type')}'")

    attributes = raw.get("attributes") or {}
    validations = raw.get("validations") or {}
    if not isinstance(attributes, dict) or not isinstance(validations, dict):
        raise TemplateParseError(f"body[{index}] attributes/validations must be mappings")

    field_id = str(raw.get("id") or "").strip()
    if kind is not FieldKind.MARKDOWN and not field_id:
        raise TemplateParseError(f"body[{index}] ({type_name}) is missing an 'id'")

    if kind is FieldKind.DROPDOWN and attributes.get("multiple"):
        kind = FieldKind.MULTI_SELECT

    options = _option_names(attributes.get("options"), index) if kind in (
        FieldKind.DROPDOWN,
        FieldKind.MULTI_SELECT,
    ) else []

    try:
        return TemplateField(
            kind=kind,
            id=field_id,
            label=str(attributes.get("label") or ""),
            description=str(attributes.get("description") or ""),
            placeholder=str(attributes.get("placeholder") or ""),
            options=options,
            required=bool(validations.get("required", False)) and kind is not FieldKind.MARKDOWN,
        )
    except ValidationError as exc:
        raise TemplateParseError(f"body[{index}] is invalid: {exc}") from exc


def parse_template(raw: str | bytes, source: str = "<string>") -> Template:
    """Parse a YAML issue template.

    Raises:
        TemplateParseError: malformed YAML, missing ``name``/``body``, a
            non-markdown field without ``id``, an unknown field type, or a
            duplicate field ``id``.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise TemplateParseError(f"Invalid YAML in {source}: {exc}") from exc

    if not isinstance(data, dict):
        raise TemplateParseError(f"Template {source} must be a mapping")

    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        raise TemplateParseError(f"Template {source} is missing required key(s): {', '.join(missing)}")

    body = data["body"]
    if not isinstance(body, list):
        raise TemplateParseError(f"Template {source}: 'body' must be a list of fields")

    fields = [_parse_field(raw_field, i) for i, raw_field in enumerate(body)]

    seen: set[str] = set()
    for field in fields:
        if not field.id:
            continue
        if field.id in seen:
            raise TemplateParseError(f"Template {source} declares field id '{field.id}' more than once")
        seen.add(field.id)

    try:
        return Template(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            title=str(data.get("title") or ""),
            type=str(data.get("type") or ""),
            labels=data.get("labels") or [],
            fields=fields,
        )
    except ValidationError as exc:
        raise TemplateParseError(f"Template {source} is invalid: {exc}") from exc


def template_file_name(issue_type: str) -> str:
    """Map an issue type to its template file name (``User Story`` → ``user_story.yml``)."""
    match issue_type.strip().lower():
        case "epic":
            return "epic.yml"
        case "story" | "user story" | "user_story" | "user-story":
            return "user_story.yml"
        case "task":
            return "task.yml"
        case "bug":
            return "bug.yml"
        case "feature":
            return "feature.yml"
        case other:
            return other.replace(" ", "_") + ".yml"
