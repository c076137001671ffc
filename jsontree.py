import json
import unicodedata
from enum import Enum


class JsonKind(Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def kind_of(value) -> JsonKind:
    if value is None:
        return JsonKind.NULL
    # bool before int: True is an int to Python
    if isinstance(value, bool):
        return JsonKind.BOOLEAN
    if isinstance(value, (int, float)):
        return JsonKind.NUMBER
    if isinstance(value, str):
        return JsonKind.STRING
    if isinstance(value, list):
        return JsonKind.ARRAY
    if isinstance(value, dict):
        return JsonKind.OBJECT
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def is_container(value) -> bool:
    return kind_of(value) in (JsonKind.ARRAY, JsonKind.OBJECT)


def serialize(value, indent: int = 2) -> str:
    text = json.dumps(value, indent=indent, ensure_ascii=False)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        # lone surrogates only survive as \u escapes
        return json.dumps(value, indent=indent, ensure_ascii=True)
    return text


# ----------------------------
# paths
# ----------------------------

def path_of(parent_path: str, segment) -> str:
    if isinstance(segment, bool) or not isinstance(segment, (str, int)):
        raise TypeError(f"bad path segment: {segment!r}")
    if isinstance(segment, int):
        return f"{parent_path}[{segment}]"
    return f"{parent_path}.{segment}" if parent_path else segment


class JsonPath:
    """Location inside a JSON value as a tuple of key (str) and index (int) segments.

    The display string is for people; equality and hashing use the segments,
    so a key such as "a.b" never collides with the path a -> b.
    """

    __slots__ = ("segments",)

    def __init__(self, segments=()):
        self.segments = tuple(segments)

    @classmethod
    def from_segments(cls, segments) -> "JsonPath":
        if not isinstance(segments, (list, tuple)):
            raise ValueError("path must be a list of segments")
        for seg in segments:
            if isinstance(seg, bool) or not isinstance(seg, (str, int)):
                raise ValueError(f"bad path segment: {seg!r}")
            if isinstance(seg, int) and seg < 0:
                raise ValueError(f"negative index in path: {seg}")
        return cls(segments)

    def child(self, segment) -> "JsonPath":
        return JsonPath(self.segments + (segment,))

    def key(self, name: str) -> "JsonPath":
        return self.child(name)

    def index(self, i: int) -> "JsonPath":
        return self.child(i)

    @property
    def parent(self) -> "JsonPath":
        if not self.segments:
            raise ValueError("root path has no parent")
        return JsonPath(self.segments[:-1])

    @property
    def last(self):
        return self.segments[-1] if self.segments else None

    def is_root(self) -> bool:
        return not self.segments

    def to_list(self) -> list:
        return list(self.segments)

    def __str__(self):
        text = ""
        for seg in self.segments:
            text = path_of(text, seg)
        return text

    def __repr__(self):
        return f"JsonPath({str(self)!r})"

    def __eq__(self, other):
        if not isinstance(other, JsonPath):
            return NotImplemented
        return self.segments == other.segments

    def __hash__(self):
        return hash(self.segments)

    def __len__(self):
        return len(self.segments)


ROOT = JsonPath()


def get_at(value, path: JsonPath):
    node = value
    for seg in path.segments:
        kind = kind_of(node)
        if kind is JsonKind.OBJECT and isinstance(seg, str):
            if seg not in node:
                raise KeyError(str(path))
            node = node[seg]
        elif kind is JsonKind.ARRAY and isinstance(seg, int):
            if seg >= len(node):
                raise KeyError(str(path))
            node = node[seg]
        else:
            raise KeyError(str(path))
    return node


def resolves(value, path: JsonPath) -> bool:
    try:
        get_at(value, path)
    except KeyError:
        return False
    return True


def replace_at(value, path: JsonPath, new_value):
    if path.is_root():
        return new_value
    head, rest = path.segments[0], JsonPath(path.segments[1:])
    kind = kind_of(value)
    if kind is JsonKind.OBJECT and isinstance(head, str) and head in value:
        out = dict(value)
        out[head] = replace_at(value[head], rest, new_value)
        return out
    if kind is JsonKind.ARRAY and isinstance(head, int) and head < len(value):
        out = list(value)
        out[head] = replace_at(value[head], rest, new_value)
        return out
    raise KeyError(str(path))


def drop_at(value, path: JsonPath):
    if path.is_root():
        raise KeyError("cannot drop the document root")
    container = get_at(value, path.parent)
    last = path.last
    kind = kind_of(container)
    if kind is JsonKind.OBJECT and isinstance(last, str) and last in container:
        trimmed = {k: v for k, v in container.items() if k != last}
    elif kind is JsonKind.ARRAY and isinstance(last, int) and last < len(container):
        trimmed = container[:last] + container[last + 1:]
    else:
        raise KeyError(str(path))
    return replace_at(value, path.parent, trimmed)


# ----------------------------
# marked for deletion
# ----------------------------

class MarkedSet:

    def __init__(self, paths=()):
        self._paths = set(paths)

    def toggle(self, path: JsonPath) -> bool:
        if path in self._paths:
            self._paths.discard(path)
            return False
        self._paths.add(path)
        return True

    def clear(self):
        self._paths.clear()

    def display(self) -> list:
        return sorted(str(p) for p in self._paths)

    def __contains__(self, path):
        return path in self._paths

    def __len__(self):
        return len(self._paths)

    def __iter__(self):
        return iter(self._paths)

    def __bool__(self):
        return bool(self._paths)


def remove_marked(value, marked, base: JsonPath = ROOT):
    """Return a copy of value without any node whose path is in marked.

    Child paths are built from the original indices, so dropping [1] does
    not shift what [2] refers to during the pass. A marked node's subtree
    is never visited.
    """
    kind = kind_of(value)
    if kind is JsonKind.ARRAY:
        kept = []
        for i, item in enumerate(value):
            child = base.index(i)
            if child in marked:
                continue
            kept.append(remove_marked(item, marked, child))
        return kept
    if kind is JsonKind.OBJECT:
        out = {}
        for key, item in value.items():
            child = base.key(key)
            if child in marked:
                continue
            out[key] = remove_marked(item, marked, child)
        return out
    return value


# ----------------------------
# name sort
# ----------------------------

def name_sort_key(name: str):
    folded = "".join(
        c for c in unicodedata.normalize("NFKD", name) if not unicodedata.combining(c)
    ).casefold()
    # swapcase puts lowercase ahead of uppercase on otherwise equal names
    return folded, name.casefold(), name.swapcase()


def _sortable_by(items: list, field: str) -> bool:
    if not items:
        return False
    for item in items:
        if kind_of(item) is not JsonKind.OBJECT:
            return False
        if field not in item or kind_of(item[field]) is not JsonKind.STRING:
            return False
    return True


def sort_by_name(value, field: str = "Name"):
    kind = kind_of(value)
    if kind is JsonKind.ARRAY:
        items = [sort_by_name(item, field) for item in value]
        if _sortable_by(items, field):
            items.sort(key=lambda item: name_sort_key(item[field]))
        return items
    if kind is JsonKind.OBJECT:
        return {key: sort_by_name(item, field) for key, item in value.items()}
    return value


# ----------------------------
# structural edits
# ----------------------------

def blank_like(value):
    kind = kind_of(value)
    if kind is JsonKind.STRING:
        return ""
    if kind is JsonKind.NUMBER:
        return 0
    if kind is JsonKind.BOOLEAN:
        return False
    if kind is JsonKind.ARRAY:
        return []
    if kind is JsonKind.OBJECT:
        return {}
    return None


def with_new_item(container):
    kind = kind_of(container)
    if kind is JsonKind.ARRAY:
        if not container:
            return [""]
        last = container[-1]
        if kind_of(last) is JsonKind.OBJECT:
            template = {key: blank_like(item) for key, item in last.items()}
        elif kind_of(last) in (JsonKind.STRING, JsonKind.NUMBER, JsonKind.BOOLEAN):
            template = blank_like(last)
        else:
            template = last
        # new items go first so they show up at the top of the form
        return [template] + list(container)
    if kind is JsonKind.OBJECT:
        out = dict(container)
        n = len(container)
        while f"new_field_{n}" in out:
            n += 1
        out[f"new_field_{n}"] = ""
        return out
    raise TypeError(f"cannot add an item to a {kind.value}")


# ----------------------------
# outline for the browser
# ----------------------------

ITEM_NAME_FIELDS = (
    "Name", "name", "Title", "title", "username", "email", "label", "displayName", "key",
)


def item_display_name(item, index: int) -> str:
    if kind_of(item) is JsonKind.OBJECT:
        for field in ITEM_NAME_FIELDS:
            candidate = item.get(field)
            if isinstance(candidate, str) and candidate != "":
                return candidate
        if item.get("id") is not None:
            return f"ID: {item['id']}"
    return f"[{index}]"


def outline(value, marked=(), protected=None, hidden_keys=(), path: JsonPath = ROOT, name=None):
    kind = kind_of(value)
    if name is None:
        name = "Root Array" if kind is JsonKind.ARRAY else "Root"
    node = {
        "name": name,
        "kind": kind.value,
        "path": path.to_list(),
        "display": str(path),
        "marked": path in marked,
        "protected": bool(protected and protected(path, value)),
    }
    if kind is JsonKind.ARRAY:
        node["children"] = [
            outline(item, marked, protected, (), path.index(i), item_display_name(item, i))
            for i, item in enumerate(value)
        ]
    elif kind is JsonKind.OBJECT:
        node["children"] = [
            outline(item, marked, protected, (), path.key(key), key)
            for key, item in value.items()
            if not (path.is_root() and key in hidden_keys)
        ]
    else:
        node["value"] = value
    return node
