from pytest_archon import archrule


def test_field_model_is_the_foundation() -> None:
    """
    The field model is the lowest level.
    It must not import from config, schema, query, validation or crud.
    """
    (
        archrule("fields_isolation")
        .match("opaca.fields")
        .should_not_import("opaca.config*")
        .should_not_import("opaca.schema*")
        .should_not_import("opaca.query*")
        .should_not_import("opaca.crud*")
        .check("opaca")
    )


def test_config_layering() -> None:
    """
    Config depends on the field model only; it knows nothing about storage.
    """
    (
        archrule("config_layering")
        .match("opaca.config*")
        .should_not_import("opaca.schema*")
        .should_not_import("opaca.query*")
        .should_not_import("opaca.crud*")
        .should_not_import("sqlalchemy*")
        .check("opaca")
    )


def test_schema_and_query_do_not_know_the_engine() -> None:
    """
    Table compilation and predicate compilation are reusable on their own.
    """
    (
        archrule("schema_query_layering")
        .match("opaca.schema*")
        .match("opaca.query*")
        .should_not_import("opaca.crud*")
        .should_not_import("opaca.contrib*")
        .check("opaca")
    )


def test_core_is_framework_free() -> None:
    """
    Only the contrib package may import a web framework.
    """
    (
        archrule("framework_isolation")
        .match("opaca*")
        .exclude("opaca.contrib*")
        .should_not_import("fastapi*")
        .should_not_import("starlette*")
        .check("opaca")
    )
