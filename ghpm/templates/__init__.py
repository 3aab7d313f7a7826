"""Issue templates: schema, resolution and rendering."""

from ghpm.templates.body import build_body, validate_fields
from ghpm.templates.model import FieldKind, Template, TemplateField, parse_template, template_file_name
from ghpm.templates.resolver import ResolvedTemplate, TemplateSource, default_sources, resolve_template

__all__ = [
    "FieldKind",
    "ResolvedTemplate",
    "Template",
    "TemplateField",
    "TemplateSource",
    "build_body",
    "default_sources",
    "parse_template",
    "resolve_template",
    "template_file_name",
    "validate_fields",
]
