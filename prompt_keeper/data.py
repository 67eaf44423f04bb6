import uuid
from typing import Union, Optional, Any
from datetime import datetime, timezone
from collections.abc import Iterator, Mapping, MutableMapping
import jsonpickle
from jsonpickle.unpickler import loadclass
from datamodel import BaseModel
from pydantic import BaseModel as PydanticBaseModel
from .conf import (
    SESSION_KEY,
    SESSION_ID,
)


class ModelHandler(jsonpickle.handlers.BaseHandler):
    """ModelHandler.
    This class can handle with serializable Data Models.
    """
    def flatten(self, obj, data):
        data['__dict__'] = self.context.flatten(obj.__dict__, reset=False)
        return data

    def restore(self, obj):
        module_and_type = obj['py/object']
        mdl = loadclass(module_and_type)
        cls = mdl.__new__(mdl) if hasattr(mdl, '__new__') else object.__new__(mdl)
        cls.__dict__ = self.context.restore(obj['__dict__'], reset=False)
        return cls

jsonpickle.handlers.registry.register(BaseModel, ModelHandler, base=True)


class PydanticHandler(ModelHandler):
    """PydanticHandler.
    This class can handle with serializable Pydantic Models.
    """


jsonpickle.handlers.registry.register(PydanticBaseModel, PydanticHandler, base=True)


class SessionData(MutableMapping[str, Any]):
    """Server-side session object.

    Passed explicitly to every authentication call. The logged-in user is
    whatever id is stored under ``SESSION_KEY``; nothing held by the client
    besides the signed session id says who is logged in.

    Serializable values live in ``_data`` and are persisted by the session
    storage; anything else is kept in ``_objects`` for the lifetime of this
    instance only.
    """

    _data: Union[str, Any] = {}
    _objects: dict[str, Any] = {}

    # Internal attributes that should not be stored in _data or _objects
    _internal_attrs = frozenset({
        '_data', '_objects', '_changed', '_id_', '_new',
        '_max_age', '_now', '__created__', '_created'
    })

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
        id: Optional[str] = None,
        max_age: Optional[int] = None
    ) -> None:
        # Initialize internal storage first (before any attribute access)
        object.__setattr__(self, '_data', {})
        object.__setattr__(self, '_objects', {})
        # If new, mark as changed so it gets saved
        object.__setattr__(self, '_changed', True if new else False)
        # Unique ID:
        self._id_ = (data.get(SESSION_ID, None) if data else None) or id or uuid.uuid4().hex
        self._new = new if data else True
        self._max_age = max_age or None
        created = data.get('created', None) if data else None
        self._now = datetime.now(timezone.utc)
        self.__created__ = self._now
        now = int(self._now.timestamp())
        self._now = now  # time for this instance creation
        age = now - created if created else 0
        if max_age is not None and age > max_age:
            # expired: start over with a clean session
            data = None
            created = None
            self._new = True
        self._created = now if self._new or created is None else created
        ## Data updating.
        if data is not None:
            self._data.update(data)
        self._data.pop(SESSION_ID, None)
        self._data.pop('created', None)

    def __repr__(self) -> str:
        return (
            f'<PK-Session [new:{self.new}, user:{self.user_id}, created:{self.created}] '
            f'data={list(self._data.keys())!r}, objects={list(self._objects.keys())}>'
        )

    # --- Serialization helpers ---

    def _is_serializable(self, value: Any) -> bool:
        """Check if a value can be reliably serialized and restored with jsonpickle."""
        if value is None or isinstance(value, (bool, int, float, str, bytes)):
            return True

        if isinstance(value, dict):
            return all(self._is_serializable(v) for v in value.values())
        if isinstance(value, (list, tuple, set, frozenset)):
            return all(self._is_serializable(v) for v in value)

        if isinstance(value, BaseModel):
            return True

        if isinstance(value, PydanticBaseModel):
            return True

        if isinstance(value, (datetime,)):
            return True

        # class instances, functions, etc. stay in-memory only
        return False

    def _get_value(self, key: str) -> Any:
        if key in self._objects:
            return self._objects[key]
        if key in self._data:
            return self._data[key]
        raise KeyError(key)

    def _set_value(self, key: str, value: Any) -> None:
        if self._is_serializable(value):
            self._objects.pop(key, None)
            self._data[key] = value
            self._changed = True
        else:
            self._data.pop(key, None)
            self._objects[key] = value

    def _del_value(self, key: str) -> None:
        deleted = False
        if key in self._objects:
            del self._objects[key]
            deleted = True
        if key in self._data:
            del self._data[key]
            self._changed = True
            deleted = True
        if not deleted:
            raise KeyError(key)

    def _has_value(self, key: str) -> bool:
        return key in self._objects or key in self._data

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def logon_time(self) -> datetime:
        return self.__created__

    @property
    def session_id(self) -> str:
        return self._id_

    @property
    def user_id(self) -> Optional[int]:
        """Id of the authenticated user, or None."""
        return self._data.get(SESSION_KEY, None)

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def created(self) -> int:
        return self._created

    @property
    def expires(self) -> Optional[int]:
        if self._max_age is None:
            return None
        return self._created + self._max_age

    @property
    def empty(self) -> bool:
        return not bool(self._data) and not bool(self._objects)

    @property
    def max_age(self) -> Optional[int]:
        return self._max_age

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def bind(self, user_id: int) -> None:
        """Mark this session as logged in for ``user_id``."""
        self._set_value(SESSION_KEY, user_id)

    def renew_id(self) -> None:
        """Switch to a fresh session id, keeping the data."""
        self._id_ = uuid.uuid4().hex
        self._changed = True

    def session_data(self) -> dict:
        """Return only serializable data (for persistence)."""
        return self._data

    def session_objects(self) -> dict:
        """Return in-memory objects (not persisted)."""
        return self._objects

    def invalidate(self) -> None:
        """Clear all session data and in-memory objects."""
        self._changed = True
        self._data = {}
        self._objects = {}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data) + len(self._objects)

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for key in self._data:
            seen.add(key)
            yield key
        for key in self._objects:
            if key not in seen:
                yield key

    def __contains__(self, key: object) -> bool:
        return self._has_value(str(key))

    def __getitem__(self, key: str) -> Any:
        return self._get_value(key)

    def __setitem__(self, key: str, value: Any) -> None:
        self._set_value(key, value)

    def __delitem__(self, key: str) -> None:
        self._del_value(key)

    def __getattr__(self, key: str) -> Any:
        # Avoid infinite recursion for internal attributes
        if key.startswith('_'):
            raise AttributeError(key)
        try:
            return self._get_value(key)
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        if key in self._internal_attrs or key.startswith('_'):
            object.__setattr__(self, key, value)
        else:
            self._set_value(key, value)

    def encode(self, obj: Any) -> str:
        """encode

            Encode an object using jsonpickle.
        Args:
            obj (Any): Object to be encoded using jsonpickle

        Raises:
            RuntimeError: Error converting data to json.

        Returns:
            str: json version of the data
        """
        try:
            return jsonpickle.encode(obj)
        except Exception as err:
            raise RuntimeError(err) from err

    def decode(self, key: str) -> Any:
        """decode.

            Decoding a Session Key using jsonpickle.
        Args:
            key (str): key name.

        Raises:
            RuntimeError: Error converting data from json.

        Returns:
            Any: object converted.
        """
        try:
            value = self._data[key]
            return jsonpickle.decode(value)
        except KeyError:
            # key is missing
            return None
        except Exception as err:
            raise RuntimeError(err) from err

    def dumps(self) -> str:
        """Serialize persisted data (plus creation time) for storage."""
        payload = dict(self._data)
        payload['created'] = self._created
        return self.encode(payload)

    @classmethod
    def loads(
        cls,
        raw: str,
        id: str,
        max_age: Optional[int] = None
    ) -> "SessionData":
        """Rebuild a stored session from ``dumps`` output."""
        try:
            data = jsonpickle.decode(raw)
        except Exception as err:
            raise RuntimeError(err) from err
        if not isinstance(data, dict):
            data = {}
        return cls(data=data, id=id, max_age=max_age)
