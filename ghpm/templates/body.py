"""Field validation and issue body rendering."""

from collections.abc import Mapping

from ghpm.errors import FieldError, InvalidFieldValueError, MissingRequiredFieldsError
from ghpm.templates.model import FieldKind, Template


def split_multi_value(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def validate_fields(template: Template, values: Mapping[str, str]) -> list[FieldError]:
    """Return every violation in ``values``; an empty list means valid.

    All missing required fields are reported together in one
    MissingRequiredFieldsError, followed by one InvalidFieldValueError per
    dropdown/multi-select value outside the field's options.
    """
    errors: list[FieldError] = []

    missing = [f.id for f in template.required_fields() if not values.get(f.id)]
    if missing:
        errors.append(MissingRequiredFieldsError(missing))

    for field in template.input_fields():
        value = values.get(field.id)
        if not value or not field.options:
            continue
        if field.kind is FieldKind.DROPDOWN and value not in field.options:
            errors.append(InvalidFieldValueError(field.id, value, field.options))
        elif field.kind is FieldKind.MULTI_SELECT:
            for item in split_multi_value(value):
                if item not in field.options:
                    errors.append(InvalidFieldValueError(field.id, item, field.options))

    return errors


def build_body(template: Template, values: Mapping[str, str]) -> str:
    """Render the issue body: one ``### Label`` section per non-empty input field, in template order."""
    sections = []
    for field in template.fields:
        if not field.is_input:
            continue
        value = values.get(field.id)
        if not value:
            continue
        sections.append(f"### {field.display_label}\n\n{value}\n\n")
    return "".join(sections)
