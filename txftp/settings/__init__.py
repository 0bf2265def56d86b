"""
Session settings.

Every value is stored together with the priority it was set with, a value
only replaces another one of lower or equal priority. Defaults come from
:mod:`txftp.settings.default_settings` at the ``default`` priority, so any
explicitly passed value wins over them.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Iterator, Mapping, MutableMapping
from importlib import import_module
from typing import TYPE_CHECKING, Any, Union

from txftp.settings import default_settings

if TYPE_CHECKING:
    from types import ModuleType

    _SettingsInputT = Union[Mapping[str, Any], str, None]


SETTINGS_PRIORITIES: dict[str, int] = {
    "default": 0,
    "project": 20,
    "session": 30,
    "cmdline": 40,
}


def get_settings_priority(priority: int | str) -> int:
    """Numeric value of a named priority, numbers are returned as they are"""
    if isinstance(priority, str):
        return SETTINGS_PRIORITIES[priority]
    return priority


class SettingsAttribute:
    """A setting value and the priority it was set with"""

    def __init__(self, value: Any, priority: int):
        self.value: Any = value
        self.priority: int = priority

    def set(self, value: Any, priority: int) -> None:
        if priority >= self.priority:
            self.value = value
            self.priority = priority

    def __repr__(self) -> str:
        return f"<SettingsAttribute value={self.value!r} priority={self.priority}>"


class BaseSettings(MutableMapping[str, Any]):
    """A dict-like store of prioritized values that can be frozen.

    ``values`` can be a mapping, a JSON encoded object or another
    :class:`BaseSettings`, whose per-key priorities are kept.
    """

    def __init__(self, values: _SettingsInputT = None, priority: int | str = "project"):
        self.frozen: bool = False
        self.attributes: dict[str, SettingsAttribute] = {}
        if values:
            self.update(values, priority)

    def __getitem__(self, name: str) -> Any:
        if name not in self:
            return None
        return self.attributes[name].value

    def __contains__(self, name: Any) -> bool:
        return name in self.attributes

    def get(self, name: str, default: Any = None) -> Any:
        value = self[name]
        return value if value is not None else default

    def getbool(self, name: str, default: bool = False) -> bool:
        """``1``, ``'1'``, ``True``, ``'True'`` and ``'true'`` are true,
        their counterparts and ``None`` are false. Anything else raises
        ``ValueError``."""
        got = self.get(name, default)
        try:
            return bool(int(got))
        except ValueError:
            if got in ("True", "true"):
                return True
            if got in ("False", "false"):
                return False
            raise ValueError(
                "Supported values for boolean settings "
                "are 0/1, True/False, '0'/'1', "
                "'True'/'False' and 'true'/'false'"
            )

    def getint(self, name: str, default: int = 0) -> int:
        return int(self.get(name, default))

    def getfloat(self, name: str, default: float = 0.0) -> float:
        return float(self.get(name, default))

    def getlist(self, name: str, default: list[Any] | None = None) -> list[Any]:
        """Strings are split on commas, other iterables are copied"""
        value = self.get(name, default or [])
        if not value:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return list(value)

    def getdict(self, name: str, default: dict[Any, Any] | None = None) -> dict[Any, Any]:
        """Strings are decoded as JSON objects, mappings are copied"""
        value = self.get(name, default or {})
        if isinstance(value, str):
            value = json.loads(value)
        return dict(value)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def set(self, name: str, value: Any, priority: int | str = "project") -> None:
        self._assert_mutability()
        priority = get_settings_priority(priority)
        if name in self:
            self.attributes[name].set(value, priority)
        else:
            self.attributes[name] = SettingsAttribute(value, priority)

    def setmodule(self, module: ModuleType | str, priority: int | str = "project") -> None:
        """Set every uppercase global of ``module``"""
        self._assert_mutability()
        if isinstance(module, str):
            module = import_module(module)
        for key in dir(module):
            if key.isupper():
                self.set(key, getattr(module, key), priority)

    def update(self, values: _SettingsInputT, priority: int | str = "project") -> None:  # type: ignore[override]
        self._assert_mutability()
        if isinstance(values, str):
            values = json.loads(values)
        if values is None:
            return
        if isinstance(values, BaseSettings):
            for name, attribute in values.attributes.items():
                self.set(name, attribute.value, attribute.priority)
        else:
            for name, value in values.items():
                self.set(name, value, priority)

    def __delitem__(self, name: str) -> None:
        self._assert_mutability()
        del self.attributes[name]

    def _assert_mutability(self) -> None:
        if self.frozen:
            raise TypeError("Trying to modify an immutable Settings object")

    def copy(self) -> BaseSettings:
        """A deep copy, changes to it do not affect this object"""
        return copy.deepcopy(self)

    def freeze(self) -> None:
        self.frozen = True

    def frozencopy(self) -> BaseSettings:
        frozen = self.copy()
        frozen.freeze()
        return frozen

    def copy_to_dict(self) -> dict[str, Any]:
        return {name: copy.deepcopy(value) for name, value in self.items()}

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.copy_to_dict()!r}>"


class Settings(BaseSettings):
    """:class:`BaseSettings` populated with the txftp defaults"""

    def __init__(self, values: _SettingsInputT = None, priority: int | str = "project"):
        super().__init__()
        self.setmodule(default_settings, "default")
        self.update(values, priority)
