"""Tests for shape declarations, discovery and the shape registry."""

import logging
from dataclasses import dataclass
from typing import Protocol

import pytest

from restview.core.registry import ShapeRegistry
from restview.core.shapes import ShapeView, derive_field_name, discover_fields, shape, shape_meta
from restview.errors import ConfigurationError
from sample_domain.models import Person, Tag, Task, User
from sample_domain.shapes import TaskSummary, TaskView, TicketDTO, UserSummary


def test_scan_registers_marked_classes(shapes):
    assert shapes.available_shapes() == sorted(
        [
            "LabelView",
            "PersonView",
            "TagView",
            "TaskSummary",
            "TaskView",
            "TicketDTO",
            "UserSummary",
            "task-brief",
        ]
    )
    assert shapes.has_shape("TaskView")
    assert not shapes.has_shape("UserCard")
    assert shapes.shape_for("TaskView") is TaskView
    assert shapes.shape_for("nope") is None


def test_default_shapes_are_indexed_by_entity(shapes):
    assert shapes.has_default_shape_for(Task)
    assert shapes.default_shape_for(Task) is TaskView
    assert shapes.default_shape_for(User) is UserSummary
    assert Tag in shapes.available_entity_types()
    assert not shapes.has_default_shape_for(int)


def test_unknown_package_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        ShapeRegistry().scan(["no_such_package_for_shapes"])


def test_duplicate_names_warn_and_last_wins(caplog):
    registry = ShapeRegistry()

    @shape(name="Dup", default_for=Person)
    class First(Protocol):
        id: int

    @shape(name="Dup", default_for=Person)
    class Second(Protocol):
        id: int

    with caplog.at_level(logging.WARNING, logger="restview"):
        registry.register(First)
        registry.register(Second)

    assert registry.shape_for("Dup") is Second
    assert registry.default_shape_for(Person) is Second
    messages = [record.getMessage() for record in caplog.records]
    assert any("Duplicate shape name found: Dup" in m for m in messages)
    assert any("Duplicate default shape for entity" in m for m in messages)


def test_open_shape_fields_include_accessors(shapes):
    names = [f.name for f in shapes.shape_fields("UserSummary")]
    assert names == ["id", "name", "display_name"]
    accessor = [f for f in shapes.fields_of(UserSummary) if f.name == "display_name"][0]
    assert accessor.accessor == "get_display_name"


def test_sources_override_field_source(shapes):
    fields = {f.name: f for f in shapes.fields_of(TaskView)}
    assert fields["owner_name"].source == "owner.name"
    assert fields["name"].source == "name"


def test_concrete_shape_fields():
    assert [f.name for f in discover_fields(TaskSummary)] == ["id", "name", "status", "estimate", "owner"]
    assert [f.name for f in discover_fields(TicketDTO)] == ["id", "number", "labels"]


def test_plain_class_fields_from_setters_and_constructor():
    class Plain:
        title: str

        def __init__(self, code=None):
            self.code = code

        def set_rank(self, value):
            self.rank = value

        def settings(self):
            return {}

    assert [f.name for f in discover_fields(Plain)] == ["title", "rank", "code"]


def test_shape_meta_is_not_inherited():
    @shape
    @dataclass
    class Parent:
        id: int = 0

    @dataclass
    class Kid(Parent):
        extra: int = 0

    assert shape_meta(Parent).name == "Parent"
    assert shape_meta(Kid) is None


def test_derive_field_name():
    assert derive_field_name("get_full_name") == "full_name"
    assert derive_field_name("getFullName") == "fullName"
    assert derive_field_name("getaway") is None
    assert derive_field_name("get") is None


def test_shape_view_is_read_only_value():
    view = ShapeView(UserSummary, {"id": 1, "name": "A", "display_name": "A <a>"}, {"get_display_name": "display_name"})
    same = ShapeView(UserSummary, {"id": 1, "name": "A", "display_name": "A <a>"})

    assert view.name == "A"
    assert view.get_display_name() == "A <a>"
    assert view == same
    assert hash(view) == hash(same)
    with pytest.raises(AttributeError):
        view.name = "B"
    with pytest.raises(AttributeError):
        view.unknown


def test_shape_view_hash_follows_values():
    first = ShapeView(UserSummary, {"id": 1, "name": "A", "tags": {1, 2}})
    same = ShapeView(UserSummary, {"id": 1, "name": "A", "tags": frozenset({1, 2})})
    other = ShapeView(UserSummary, {"id": 2, "name": "B", "tags": {1, 2}})
    listed = ShapeView(UserSummary, {"id": 1, "items": [1, 2]})

    assert first == same
    assert hash(first) == hash(same)
    assert hash(first) != hash(other)
    assert hash(listed) == hash(ShapeView(UserSummary, {"id": 1, "items": [1, 2]}))
    assert len({ShapeView(UserSummary, {"id": i}) for i in range(50)}) == 50
