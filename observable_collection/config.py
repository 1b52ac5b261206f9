"""
Collection Options
==================

CollectionOptions is the explicit configuration structure accepted by
``Collection(name, options)``. Every recognized option is a field with a
documented default; anything else is kept in ``extra`` and handed to the host
store unchanged.

Recognized options:

- ``connection``: target session/server. ``None`` creates an in-memory
  LocalCollection, otherwise the object's ``open_collection(name, options)``
  is used to open the collection.
- ``id_generation``: ``"STRING"`` (17 random characters) or ``"MONGO"``
  (24 hex characters).
- ``transform``: callable applied to each document after it is fetched.

Example:
    ```python
    options = CollectionOptions.from_mapping(
        {"idGeneration": "MONGO", "transform": Todo.from_doc, "capped": True}
    )
    options.id_generation  # "MONGO"
    options.extra  # {"capped": True}
    ```
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .errors import ConfigError

ID_GENERATION_STRING = "STRING"
ID_GENERATION_MONGO = "MONGO"

ID_GENERATION_STRATEGIES = (ID_GENERATION_STRING, ID_GENERATION_MONGO)

# Camel-cased spellings accepted by from_mapping()
_ALIASES = {
    "idGeneration": "id_generation",
}

_RECOGNIZED = ("connection", "id_generation", "transform")


@dataclass(frozen=True)
class CollectionOptions:
    """
    Configuration for a Collection.

    Attributes:
        connection: Object implementing ``open_collection(name, options)``, or
            None for an in-memory local collection.
        id_generation: Strategy used for generated ``_id`` values.
        transform: Per-document mapping applied after fetch, or None.
        extra: Unrecognized options, passed through to the host verbatim.
    """

    connection: Any = None
    id_generation: str = ID_GENERATION_STRING
    transform: Optional[Callable[[Dict[str, Any]], Any]] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.id_generation not in ID_GENERATION_STRATEGIES:
            raise ConfigError(
                f"Unknown id_generation {self.id_generation!r}, "
                f"expected one of {ID_GENERATION_STRATEGIES}"
            )
        if self.transform is not None and not callable(self.transform):
            raise ConfigError("transform must be callable or None")

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "CollectionOptions":
        """Split a plain options mapping into recognized fields and extras."""
        if not mapping:
            return cls()

        known: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = _ALIASES.get(key, key)
            if name in _RECOGNIZED:
                known[name] = value
            else:
                extra[key] = value

        # None means "use the default" for the id strategy
        if known.get("id_generation") is None:
            known.pop("id_generation", None)

        return cls(extra=extra, **known)

    @classmethod
    def coerce(
        cls, options: Union["CollectionOptions", Mapping[str, Any], None]
    ) -> "CollectionOptions":
        if isinstance(options, CollectionOptions):
            return options
        return cls.from_mapping(options)
