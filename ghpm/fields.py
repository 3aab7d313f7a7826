"""Single-select project field reconciliation.

Reconciliation is additive only: options already on the remote field keep
their names and colors, and missing ones are appended. There is no
version check, so two concurrent runs adding different options to the same
field race and the last update wins.
"""

from collections.abc import Iterable, Mapping

import structlog

from ghpm.errors import ConfigurationError, InvalidFieldValueError, RemoteAPIError
from ghpm.models import FieldColor, FieldOption, ProjectField
from ghpm.providers.base import ProjectBackend

logger = structlog.get_logger()

TEAM_FIELD = "Team"
PRIORITY_FIELD = "Priority"
TYPE_FIELD = "Type"

TEAM_PALETTE = [FieldColor.BLUE, FieldColor.GREEN, FieldColor.ORANGE, FieldColor.PURPLE]

PRIORITY_COLORS: dict[str, FieldColor] = {
    "Critical": FieldColor.RED,
    "High": FieldColor.ORANGE,
    "Medium": FieldColor.YELLOW,
    "Low": FieldColor.GRAY,
}


def find_field(fields: Iterable[ProjectField], name: str) -> ProjectField | None:
    return next((f for f in fields if f.name == name), None)


def _new_options(names: Iterable[str], desired: Mapping[str, FieldColor | None]) -> list[FieldOption]:
    """Color new options; names without a fixed color rotate through TEAM_PALETTE in order."""
    options = []
    rotation = 0
    for name in names:
        color = desired[name]
        if color is None:
            color = TEAM_PALETTE[rotation % len(TEAM_PALETTE)]
            rotation += 1
        options.append(FieldOption(name=name, color=color))
    return options


def ensure_field(
    backend: ProjectBackend,
    project_id: str,
    name: str,
    desired: Mapping[str, FieldColor | None],
) -> ProjectField:
    """Make sure single-select field ``name`` exists and offers every option in ``desired``.

    A ``None`` color means "next palette color". Performs no mutation when
    all desired options already exist.
    """
    field = find_field(backend.list_project_fields(project_id), name)

    if field is None:
        created = backend.create_single_select_field(project_id, name, _new_options(desired, desired))
        logger.info("field_created", field=name, options=list(desired))
        return created

    existing = {o.name for o in field.options}
    missing = [option_name for option_name in desired if option_name not in existing]
    if not missing:
        return field

    # the option input type has no id, so existing options are resent by name and color
    merged = [FieldOption(name=o.name, color=o.color or FieldColor.GRAY) for o in field.options]
    merged += _new_options(missing, desired)
    backend.update_field_options(field.id, merged)
    logger.info("field_options_added", field=name, added=missing)

    refreshed = find_field(backend.list_project_fields(project_id), name)
    if refreshed is None:
        raise RemoteAPIError("list-project-fields", f"field '{name}' disappeared after update")
    return refreshed


def require_field(backend: ProjectBackend, project_id: str, name: str) -> ProjectField:
    """Return an existing field. Fields with a curated option set, like Type, are never created here."""
    field = find_field(backend.list_project_fields(project_id), name)
    if field is None:
        raise ConfigurationError(f"{name} field not found in project")
    return field


def ensure_team_field(backend: ProjectBackend, project_id: str, teams: Iterable[str]) -> ProjectField:
    return ensure_field(backend, project_id, TEAM_FIELD, dict.fromkeys(teams))


def ensure_priority_field(backend: ProjectBackend, project_id: str) -> ProjectField:
    return ensure_field(backend, project_id, PRIORITY_FIELD, PRIORITY_COLORS)


def set_field_value(backend: ProjectBackend, project_id: str, item_id: str, field: ProjectField, value: str) -> None:
    option = field.option(value)
    if option is None or not option.id:
        raise InvalidFieldValueError(field.name, value, [o.name for o in field.options])
    backend.update_item_field_value(project_id, item_id, field.id, option.id)
    logger.info("field_value_set", field=field.name, value=value)
