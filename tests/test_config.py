import dataclasses

import pytest

from opaca.config import sanitize
from opaca.exceptions import ConfigurationError


def test_sanitize_builds_indices(built_config):
    assert [c.slug for c in built_config] == ["users", "products", "posts"]
    assert built_config.index.by_slug["users"] == 0
    assert built_config.index.by_name["Products"] == "products"
    assert len(built_config.collections["users"].fields) == 2
    assert built_config.collections["users"].icon == "Folder"
    assert built_config.collections["users"].primary_key == "id"


def test_sanitize_flattens_rows(built_config):
    posts = built_config.collections["posts"]
    assert [f.name for f in posts.fields] == [
        "title",
        "content",
        "published",
        "status",
        "author",
    ]
    assert "posts.content" in built_config.fields.by_path


def test_relationship_registry(built_config):
    relations = list(built_config.relationships)
    assert len(relations) == 2
    sources = {r.source.path for r in relations}
    assert sources == {"products.user", "posts.author"}
    assert len(built_config.relationships.by_target["users"]) == 2


def test_single_field_collection():
    config = sanitize(
        {"collections": [{"name": "Users", "fields": [{"name": "email", "type": "text"}]}]}
    )
    assert config.index.by_slug["users"] == 0
    assert len(config.collections["users"].fields) == 1


def test_duplicate_names_are_case_insensitive():
    with pytest.raises(ConfigurationError, match="Duplicate collection name"):
        sanitize(
            {
                "collections": [
                    {"name": "Posts", "fields": [{"name": "a", "type": "text"}]},
                    {"name": "posts", "fields": [{"name": "a", "type": "text"}]},
                ]
            }
        )


def test_duplicate_slugs_are_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate collection slug"):
        sanitize(
            {
                "collections": [
                    {"name": "Posts", "fields": [{"name": "a", "type": "text"}]},
                    {
                        "name": "Articles",
                        "slug": "posts",
                        "fields": [{"name": "a", "type": "text"}],
                    },
                ]
            }
        )


def test_unknown_relationship_target():
    with pytest.raises(ConfigurationError, match="unknown collection 'authors'"):
        sanitize(
            {
                "collections": [
                    {
                        "name": "Posts",
                        "fields": [
                            {
                                "name": "author",
                                "type": {"relationship": {"to": "authors"}},
                            }
                        ],
                    }
                ]
            }
        )


def test_unknown_select_relationship_target():
    with pytest.raises(ConfigurationError, match="Select 'posts.owner'"):
        sanitize(
            {
                "collections": [
                    {
                        "name": "Posts",
                        "fields": [
                            {
                                "name": "owner",
                                "type": {"select": {"relationship": {"to": "nobody"}}},
                            }
                        ],
                    }
                ]
            }
        )


@pytest.mark.parametrize(
    "raw",
    [
        {},
        {"collections": []},
        {"collections": "posts"},
        {"collections": [{"name": "  ", "fields": [{"name": "a", "type": "text"}]}]},
        {"collections": [{"name": "Posts", "fields": []}]},
        {
            "collections": [
                {"name": "Posts", "slug": "Bad Slug", "fields": [{"name": "a", "type": "text"}]}
            ]
        },
    ],
)
def test_invalid_declarations(raw):
    with pytest.raises(ConfigurationError):
        sanitize(raw)


def test_select_index(declarations):
    declarations["collections"][2]["fields"].append(
        {
            "name": "priority",
            "type": {
                "select": {
                    "options": [
                        {"label": "Low", "value": 1},
                        {"label": "High", "value": 2},
                    ]
                }
            },
        }
    )
    config = sanitize(declarations)
    options = config.selects.options_by_path["posts.priority"]
    assert [o.value for o in options] == [1, 2]


def test_built_config_is_immutable(built_config):
    with pytest.raises(TypeError):
        built_config.collections["users"] = None  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        built_config.collections["users"].slug = "people"  # type: ignore[misc]


def test_nested_defaults_are_read_only():
    config = sanitize(
        {
            "collections": [
                {
                    "name": "Events",
                    "fields": [
                        {"name": "meta", "type": "json", "default": {"a": 1, "b": [1, 2]}},
                    ],
                }
            ]
        }
    )
    default = config.collections["events"].fields[0].declaration.default
    with pytest.raises(TypeError):
        default["a"] = 2
    with pytest.raises(TypeError):
        default["b"][0] = 3
    assert dict(default) == {"a": 1, "b": (1, 2)}


def test_get_by_slug_or_name(built_config):
    assert built_config.get("products") is built_config.get("Products")
    assert built_config.get("missing") is None
