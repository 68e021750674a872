"""Case-insensitive, ordered header map.

Header field names are case-insensitive (RFC 9110). Keys are stored
lower-cased; insertion order is preserved and re-setting a key keeps its
original position.
"""

from collections.abc import Iterable, Iterator, Mapping, MutableMapping


HeaderValue = str | list[str]


class HeaderMap(MutableMapping[str, HeaderValue]):
    """Mutable mapping of lower-cased header names to values.

    A value is either a single string or, for repeated fields such as
    ``Set-Cookie``, a list of strings.
    """

    def __init__(
        self,
        headers: Mapping[str, HeaderValue | None]
        | Iterable[tuple[str, HeaderValue | None]]
        | None = None,
    ) -> None:
        self._items: dict[str, HeaderValue] = {}
        if headers is None:
            return
        pairs = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in pairs:
            if value is None:
                continue
            self[key] = value

    @staticmethod
    def _normalize(name: str) -> str:
        return str(name).strip().lower()

    def __getitem__(self, name: str) -> HeaderValue:
        return self._items[self._normalize(name)]

    def __setitem__(self, name: str, value: HeaderValue) -> None:
        key = self._normalize(name)
        if not key:
            return
        self._items[key] = list(value) if isinstance(value, list) else str(value)

    def __delitem__(self, name: str) -> None:
        del self._items[self._normalize(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._normalize(name) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"HeaderMap({self._items!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeaderMap):
            return self._items == other._items
        if isinstance(other, Mapping):
            return self._items == HeaderMap(other)._items
        return NotImplemented

    def add(self, name: str, value: str) -> None:
        """Append a value, turning the entry into a list on repeats."""
        key = self._normalize(name)
        if not key:
            return
        existing = self._items.get(key)
        if existing is None:
            self._items[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            self._items[key] = [existing, value]

    def get_first(self, name: str, default: str = "") -> str:
        """Return the first value for a header, or ``default``."""
        value = self._items.get(self._normalize(name))
        if value is None:
            return default
        if isinstance(value, list):
            return value[0] if value else default
        return value

    def get_list(self, name: str) -> list[str]:
        """Return every value for a header as a list."""
        value = self._items.get(self._normalize(name))
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def copy(self) -> "HeaderMap":
        """Return a shallow copy."""
        return HeaderMap(self._items)

    def to_dict(self) -> dict[str, str]:
        """Flatten to a plain dict; repeated values are joined with ``, ``."""
        return {
            key: ", ".join(value) if isinstance(value, list) else value
            for key, value in self._items.items()
        }


def merge_headers(*layers: Mapping[str, HeaderValue | None] | None) -> HeaderMap:
    """Merge header layers left to right into a new map.

    Later layers override earlier ones. Keys whose final value is None or
    empty are dropped.

    Args:
        layers: Header mappings in increasing priority.

    Returns:
        Merged header map.
    """
    merged: dict[str, HeaderValue | None] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            merged[HeaderMap._normalize(key)] = value
    result = HeaderMap()
    for key, value in merged.items():
        if value is None or value == "" or value == []:
            continue
        result[key] = value
    return result
