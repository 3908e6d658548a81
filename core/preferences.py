# =============================================================================
# core/preferences.py  -  Session Preference Store
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Holds the one mutable Preferences record for this server process:
#   default location, default radius, favorite categories and the
#   child-exclusion flag.  The normalizer reads it on every search.
#
# CONTRACT:
#   get()          -> a copy (mutating it never changes the store)
#   set(partial)   -> shallow merge; lists are replaced, not merged
#   reset()        -> back to the startup defaults
#
# No history of preference changes is kept.
# =============================================================================

import copy
from dataclasses import asdict, fields
from typing import Any, Mapping, Optional

from core.errors import InvalidParameters
from core.models import Preferences

# Allowed value types per field (None allowed for location/radius only)
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "default_location": (str, type(None)),
    "default_radius": (int, float, type(None)),
    "favorite_categories": (list,),
    "exclude_children": (bool,),
}


class PreferenceStore:
    """Owns the session Preferences.

    Args:
        defaults: Startup defaults (also what reset() restores).  When
            omitted, the Preferences dataclass defaults are used.
    """

    def __init__(self, defaults: Optional[Preferences] = None):
        self._defaults = copy.deepcopy(defaults) if defaults else Preferences()
        self._current = copy.deepcopy(self._defaults)

    def get(self) -> Preferences:
        return copy.deepcopy(self._current)

    def set(self, partial: Mapping[str, Any]) -> Preferences:
        """Merge the given fields over the current preferences.

        Raises:
            InvalidParameters: unknown field names or wrong value types.
                Nothing is applied when any field is rejected.
        """
        known = {f.name for f in fields(Preferences)}
        unknown = sorted(set(partial) - known)
        if unknown:
            raise InvalidParameters(f"Unknown preference fields: {', '.join(unknown)}")

        for name, value in partial.items():
            allowed = _FIELD_TYPES[name]
            # bool is an int subclass; don't accept True as a radius
            if not isinstance(value, allowed) or (
                isinstance(value, bool) and bool not in allowed
            ):
                raise InvalidParameters(f"Invalid value for {name}: {value!r}")
            if name == "favorite_categories" and not all(isinstance(c, str) for c in value):
                raise InvalidParameters("favorite_categories must be a list of strings")
            if name == "default_radius" and value is not None and value < 0:
                raise InvalidParameters("default_radius must not be negative")

        for name, value in partial.items():
            setattr(self._current, name, copy.deepcopy(value))
        return self.get()

    def reset(self) -> Preferences:
        self._current = copy.deepcopy(self._defaults)
        return self.get()

    def as_dict(self) -> dict[str, Any]:
        return asdict(self._current)
