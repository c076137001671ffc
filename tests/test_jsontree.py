# tests/test_jsontree.py

"""Tests for path addressing, delete-by-path and the name sort"""

# Standard library imports
import copy
import json

# Third party imports
import pytest

# Local imports
from jsontree import JsonKind
from jsontree import JsonPath
from jsontree import MarkedSet
from jsontree import ROOT
from jsontree import drop_at
from jsontree import get_at
from jsontree import item_display_name
from jsontree import kind_of
from jsontree import outline
from jsontree import path_of
from jsontree import remove_marked
from jsontree import replace_at
from jsontree import serialize
from jsontree import sort_by_name
from jsontree import with_new_item


def p(*segments):
    return JsonPath(segments)


class TestKindOf:

    @pytest.mark.parametrize(
        "value,kind",
        [
            (None, JsonKind.NULL),
            (True, JsonKind.BOOLEAN),
            (0, JsonKind.NUMBER),
            (1.5, JsonKind.NUMBER),
            ("x", JsonKind.STRING),
            ([], JsonKind.ARRAY),
            ({}, JsonKind.OBJECT),
        ],
    )
    def test_kinds(self, value, kind):
        assert kind_of(value) is kind

    def test_rejects_non_json(self):
        with pytest.raises(TypeError):
            kind_of({1, 2})


class TestPaths:

    def test_display_string(self):
        assert str(p("a", "b", 2, "c")) == "a.b[2].c"
        assert str(p(0, "x")) == "[0].x"
        assert str(ROOT) == ""

    def test_path_of(self):
        assert path_of("", "key") == "key"
        assert path_of("a", "b") == "a.b"
        assert path_of("a", 3) == "a[3]"
        assert path_of("", 0) == "[0]"

    def test_same_position_same_path(self):
        assert p("items", 1).child("Name") == p("items", 1, "Name")
        assert hash(p("items", 1)) == hash(ROOT.key("items").index(1))

    def test_dotted_key_does_not_collide(self):
        assert str(p("a.b")) == str(p("a", "b"))
        assert p("a.b") != p("a", "b")

    def test_from_segments(self):
        assert JsonPath.from_segments(["a", 0]) == p("a", 0)

    @pytest.mark.parametrize("bad", ["a.b", ["a", True], ["a", -1], ["a", 1.5], [None]])
    def test_from_segments_rejects(self, bad):
        with pytest.raises(ValueError):
            JsonPath.from_segments(bad)

    def test_parent_of_root(self):
        assert p("a", 1).parent == p("a")
        with pytest.raises(ValueError):
            ROOT.parent


class TestTreeAccess:

    def test_get_at(self):
        doc = {"a": [{"b": 1}]}
        assert get_at(doc, p("a", 0, "b")) == 1
        assert get_at(doc, ROOT) is doc

    @pytest.mark.parametrize("path", [("x",), ("a", 5), ("a", "0"), ("a", 0, "b", "c")])
    def test_get_at_missing(self, path):
        with pytest.raises(KeyError):
            get_at({"a": [{"b": 1}]}, JsonPath(path))

    def test_replace_at_copies(self):
        doc = {"a": {"b": 1}, "c": 2}
        out = replace_at(doc, p("a", "b"), 5)
        assert out == {"a": {"b": 5}, "c": 2}
        assert doc == {"a": {"b": 1}, "c": 2}

    def test_drop_at(self):
        assert drop_at({"a": [1, 2, 3]}, p("a", 1)) == {"a": [1, 3]}
        assert drop_at({"a": 1, "b": 2}, p("a")) == {"b": 2}
        with pytest.raises(KeyError):
            drop_at({"a": 1}, ROOT)


class TestMarkedSet:

    def test_toggle(self):
        marked = MarkedSet()
        assert marked.toggle(p("a")) is True
        assert p("a") in marked
        assert marked.toggle(p("a")) is False
        assert p("a") not in marked
        assert len(marked) == 0

    def test_clear_and_display(self):
        marked = MarkedSet([p("b", 0), p("a")])
        assert marked.display() == ["a", "b[0]"]
        marked.clear()
        assert not marked


class TestRemoveMarked:

    def test_removes_object_key(self):
        doc = {"a": {"b": 1, "c": 2}, "d": 3}
        assert remove_marked(doc, {p("a", "b")}) == {"a": {"c": 2}, "d": 3}

    def test_array_reindexes(self):
        assert remove_marked({"arr": [10, 20, 30]}, {p("arr", 1)}) == {"arr": [10, 30]}

    def test_children_use_original_indices(self):
        doc = {"arr": [{"x": 1}, {"x": 2}, {"x": 3, "y": 4}]}
        marked = {p("arr", 0), p("arr", 2, "x")}
        assert remove_marked(doc, marked) == {"arr": [{"x": 2}, {"y": 4}]}

    def test_marked_parent_takes_descendants(self):
        doc = {"a": {"b": {"c": 1}}, "z": 0}
        assert remove_marked(doc, {p("a"), p("a", "b", "c")}) == {"z": 0}

    def test_root_array(self):
        assert remove_marked([1, 2, 3], {p(0), p(2)}) == [2]

    def test_idempotent_for_key_marks(self):
        doc = {"a": {"b": 1, "c": {"d": 2}}, "e": [1, 2]}
        marked = {p("a", "c"), p("e")}
        once = remove_marked(doc, marked)
        assert remove_marked(once, marked) == once

    def test_keeps_key_order_and_input(self):
        doc = {"z": 1, "a": 2, "m": 3}
        before = copy.deepcopy(doc)
        out = remove_marked(doc, {p("a")})
        assert list(out) == ["z", "m"]
        assert doc == before

    def test_dotted_key(self):
        doc = {"a.b": 1, "a": {"b": 2}}
        assert remove_marked(doc, MarkedSet([p("a.b")])) == {"a": {"b": 2}}

    def test_scalars_unchanged(self):
        assert remove_marked("text", {ROOT}) == "text"


class TestSortByName:

    def test_recursive_sort(self):
        doc = {"items": [{"Name": "b", "items": [{"Name": "z"}, {"Name": "a"}]}, {"Name": "a"}]}
        out = sort_by_name(doc)
        assert out == {"items": [{"Name": "a"}, {"Name": "b", "items": [{"Name": "a"}, {"Name": "z"}]}]}
        assert list(out["items"][1]) == ["Name", "items"]

    def test_stable_for_equal_names(self):
        doc = [{"Name": "x", "id": 1}, {"Name": "x", "id": 2}, {"Name": "a"}]
        assert [item.get("id") for item in sort_by_name(doc)] == [None, 1, 2]

    def test_case_and_accents(self):
        names = ["b", "Zoe", "Émile", "eve", "A"]
        out = sort_by_name([{"Name": n} for n in names])
        assert [item["Name"] for item in out] == ["A", "b", "Émile", "eve", "Zoe"]

    def test_lowercase_before_uppercase_on_ties(self):
        out = sort_by_name([{"Name": n} for n in ["b", "B", "a", "A"]])
        assert [item["Name"] for item in out] == ["a", "A", "b", "B"]

    def test_non_conforming_array_keeps_order(self):
        doc = [{"Name": "b", "kids": [{"Name": "y"}, {"Name": "x"}]}, {"id": 1}]
        out = sort_by_name(doc)
        assert out[0]["Name"] == "b"
        assert out[1] == {"id": 1}
        assert [k["Name"] for k in out[0]["kids"]] == ["x", "y"]

    @pytest.mark.parametrize(
        "items",
        [
            [{"Name": 2}, {"Name": 1}],
            [{"Name": "b"}, None],
            [{"Name": "b"}, ["a"]],
            [{"Name": "b"}, "a"],
            [{"Name": None}, {"Name": "a"}],
        ],
    )
    def test_disqualified(self, items):
        assert sort_by_name(items) == items

    def test_empty_and_scalars(self):
        assert sort_by_name([]) == []
        assert sort_by_name(7) == 7

    def test_custom_field(self):
        out = sort_by_name([{"title": "b"}, {"title": "a"}], field="title")
        assert out == [{"title": "a"}, {"title": "b"}]


class TestSerialize:

    @pytest.mark.parametrize(
        "value",
        [
            {"a": [1, 2.5, None, True], "b": {"c": "ü"}},
            [],
            "plain",
            {"z": 1, "a": 2},
        ],
    )
    def test_round_trip(self, value):
        text = serialize(value)
        assert json.loads(text) == value

    def test_two_space_indent(self):
        assert serialize({"a": [1]}) == '{\n  "a": [\n    1\n  ]\n}'

    def test_lone_surrogate_escaped(self):
        text = serialize({"x": "\ud800", "y": "ü"})
        assert "\\ud800" in text
        assert text.isascii()
        assert json.loads(text) == {"x": "\ud800", "y": "ü"}

    def test_unicode_kept_when_encodable(self):
        assert serialize({"y": "ü"}) == '{\n  "y": "ü"\n}'


class TestStructuralEdits:

    def test_new_item_copies_last_shape(self):
        doc = [{"Name": "a", "n": 3, "ok": True, "tags": ["x"], "meta": {"k": 1}, "z": None}]
        out = with_new_item(doc)
        assert out[0] == {"Name": "", "n": 0, "ok": False, "tags": [], "meta": {}, "z": None}
        assert out[1] == doc[0]

    def test_new_item_simple_arrays(self):
        assert with_new_item([]) == [""]
        assert with_new_item([1, 2]) == [0, 1, 2]
        assert with_new_item(["a"]) == ["", "a"]

    def test_new_field(self):
        assert with_new_item({"a": 1}) == {"a": 1, "new_field_1": ""}
        assert with_new_item({"x": 1, "new_field_2": 2}) == {"x": 1, "new_field_2": 2, "new_field_3": ""}

    def test_scalar_rejected(self):
        with pytest.raises(TypeError):
            with_new_item("x")


class TestOutline:

    def test_item_display_names(self):
        assert item_display_name({"Name": "Alpha", "title": "t"}, 0) == "Alpha"
        assert item_display_name({"Name": "", "title": "t"}, 0) == "t"
        assert item_display_name({"id": 7}, 2) == "ID: 7"
        assert item_display_name({"other": 1}, 2) == "[2]"
        assert item_display_name(5, 1) == "[1]"

    def test_paths_and_hidden_keys(self):
        doc = {"JSONTitle": "x", "Content": [{"Name": "a", "v": 1}], "nested": {"JSONTitle": 1}}
        tree = outline(doc, marked={p("Content", 0)}, hidden_keys=("JSONTitle",))
        names = [child["name"] for child in tree["children"]]
        assert names == ["Content", "nested"]
        content = tree["children"][0]
        item = content["children"][0]
        assert item["name"] == "a"
        assert item["path"] == ["Content", 0]
        assert item["display"] == "Content[0]"
        assert item["marked"] is True
        assert item["children"][1] == {
            "name": "v", "kind": "number", "path": ["Content", 0, "v"],
            "display": "Content[0].v", "marked": False, "protected": False, "value": 1,
        }
        assert tree["children"][1]["children"][0]["name"] == "JSONTitle"

    def test_root_array_name(self):
        tree = outline([1], protected=lambda path, value: path.is_root())
        assert tree["name"] == "Root Array"
        assert tree["protected"] is True
        assert tree["children"][0]["protected"] is False
