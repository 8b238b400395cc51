import inspect
from collections.abc import Iterator
from typing import Any, NamedTuple, TypeVar, get_args, get_type_hints

T = TypeVar("T")


class _Param(NamedTuple):
    name: str
    hint: Any
    optional: bool


class Container:
    """Type-keyed registry that builds modules and backends by constructor injection.

    Every constructor parameter needs a type hint; ``X | None`` is looked up
    as ``X``. A parameter whose type is not registered falls back to its
    default, or fails resolution when it has none.
    """

    def __init__(self) -> None:
        self._instances: dict[type, Any] = {}

    def register_instance(self, type_key: type, instance: Any) -> None:
        self._instances[type_key] = instance

    # Factories (LoggerFactory) are stored and injected like any instance
    register_factory = register_instance

    def has(self, type_key: type) -> bool:
        return type_key in self._instances

    __contains__ = has

    def get(self, type_key: type[T]) -> T:
        try:
            return self._instances[type_key]
        except KeyError:
            raise KeyError(f"No registration found for type {type_key.__name__!r}") from None

    def resolve(self, cls: type[T]) -> T:
        kwargs: dict[str, Any] = {}
        for param in _constructor_params(cls):
            if param.hint in self._instances:
                kwargs[param.name] = self._instances[param.hint]
            elif not param.optional:
                raise TypeError(
                    f"No registration found for type {getattr(param.hint, '__name__', param.hint)!r} "
                    f"(parameter '{param.name}' of {cls.__name__}.__init__)"
                )
        return cls(**kwargs)


def _constructor_params(cls: type) -> Iterator[_Param]:
    try:
        hints = get_type_hints(cls.__init__)
    except (NameError, TypeError) as exc:
        raise TypeError(f"Cannot read type hints for {cls.__name__}.__init__: {exc}") from exc

    for name, param in inspect.signature(cls.__init__).parameters.items():
        if name == "self" or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        if name not in hints:
            raise TypeError(f"Parameter '{name}' of {cls.__name__}.__init__ has no type hint")
        yield _Param(name, _unwrap_optional(hints[name]), param.default is not inspect.Parameter.empty)


def _unwrap_optional(hint: Any) -> Any:
    args = get_args(hint)
    if args and type(None) in args:
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1:
            return rest[0]
    return hint
