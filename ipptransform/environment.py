import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional


logger = logging.getLogger("ipp.transform")

# Upper bound on the child's environment, inherited variables included.
MAX_ENV_ENTRIES = 400

# Separator between the values of a multi-valued attribute.
VALUE_SEPARATOR = ","


@dataclass
class JobAttribute:
    name: str
    value: Any
    syntax: str = "keyword"


def environment_name(attr_name: str) -> str:
    return "IPP_" + attr_name.upper().replace("-", "_")


def _format_one(value: Any, syntax: str) -> str:
    if syntax == "boolean" or isinstance(value, bool):
        return "true" if value else "false"
    if syntax == "rangeOfInteger" and isinstance(value, (tuple, list)):
        lower, upper = value
        return f"{int(lower)}-{int(upper)}"
    if syntax == "resolution" and isinstance(value, (tuple, list)):
        xres, yres = int(value[0]), int(value[1])
        units = value[2] if len(value) > 2 else "dpi"
        if xres == yres:
            return f"{xres}{units}"
        return f"{xres}x{yres}{units}"
    if syntax in {"integer", "enum"}:
        return str(int(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def format_attribute_value(attr: JobAttribute) -> str:
    value = attr.value
    # A range or resolution is a single value even though it is a tuple.
    single_tuple = (
        attr.syntax in {"rangeOfInteger", "resolution"}
        and isinstance(value, tuple)
        and bool(value)
        and not isinstance(value[0], (tuple, list))
    )
    if isinstance(value, list) or (isinstance(value, tuple) and not single_tuple):
        return VALUE_SEPARATOR.join(_format_one(v, attr.syntax) for v in value)
    return _format_one(value, attr.syntax)


class BoundedEnvironment:
    """Ordered NAME -> value mapping with a hard entry limit.

    Rewriting an existing name never counts against the limit. Once the
    mapping is full, new names are refused and remembered in ``dropped``.
    """

    def __init__(self, capacity: int = MAX_ENV_ENTRIES) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self.capacity = capacity
        self._entries: Dict[str, str] = {}
        self.dropped: List[str] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __getitem__(self, name: str) -> str:
        return self._entries[name]

    @property
    def full(self) -> bool:
        return len(self._entries) >= self.capacity

    @property
    def truncated(self) -> bool:
        return bool(self.dropped)

    def set(self, name: str, value: str) -> bool:
        if name in self._entries or not self.full:
            self._entries[name] = value
            return True
        self.dropped.append(name)
        return False

    def as_env(self) -> Dict[str, str]:
        return dict(self._entries)

    def entries(self) -> Iterator[str]:
        for name, value in self._entries.items():
            yield f"{name}={value}"


def build_environment(
    attributes: Iterable[JobAttribute],
    *,
    inherited: Optional[Mapping[str, str]] = None,
    content_type: Optional[str] = None,
    output_type: Optional[str] = None,
    device_uri: Optional[str] = None,
    log_level: Optional[str] = None,
    printer_defaults: Iterable[JobAttribute] = (),
    capacity: int = MAX_ENV_ENTRIES,
) -> BoundedEnvironment:
    env = BoundedEnvironment(capacity)
    if inherited is None:
        inherited = os.environ

    pending: List[tuple] = list(inherited.items())
    for name, value in (
        ("CONTENT_TYPE", content_type),
        ("OUTPUT_TYPE", output_type),
        ("DEVICE_URI", device_uri),
        ("SERVER_LOGLEVEL", log_level),
    ):
        if value:
            pending.append((name, value))
    for attr in printer_defaults:
        name = attr.name if attr.name.endswith("-default") else attr.name + "-default"
        pending.append((environment_name(name), format_attribute_value(attr)))
    for attr in attributes:
        pending.append((environment_name(attr.name), format_attribute_value(attr)))

    for index, (name, value) in enumerate(pending):
        if not env.set(name, value):
            env.dropped.extend(n for n, _ in pending[index + 1 :])
            logger.warning(
                "Transform environment limit of %d entries reached; dropped %d entries starting with %s",
                capacity,
                len(env.dropped),
                name,
            )
            break
    return env
