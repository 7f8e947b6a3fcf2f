"""Implicit dependency inference.

References are found by walking a descriptor's configuration tree: ``Ref``
objects, and ``${resource.attribute}`` substrings inside plain strings.
Both functions here are pure: they only look at the value they are given.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterator, Mapping
from typing import Any

from stackgraph.graph.models import Reference
from stackgraph.models.resources import Ref
from stackgraph.secrets import SecretValue, get_path, reveal

RE_TEMPLATE_REF = re.compile(r"\$\{([A-Za-z0-9][A-Za-z0-9_-]*)\.([A-Za-z0-9_][A-Za-z0-9_.-]*)\}")


def _walk(value: Any, path: str) -> Iterator[tuple[str, Any]]:
    yield path, value
    if isinstance(value, Ref):
        return
    if isinstance(value, SecretValue):
        yield from _walk(value.reveal(), path)
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            yield from _walk(getattr(value, f.name), _join(path, f.name))
    elif isinstance(value, Mapping):
        for key, item in value.items():
            yield from _walk(item, _join(path, str(key)))
    elif isinstance(value, list | tuple | set | frozenset):
        for index, item in enumerate(value):
            yield from _walk(item, _join(path, str(index)))


def _join(prefix: str, segment: str) -> str:
    return f"{prefix}.{segment}" if prefix else segment


def extract_references(config: Any) -> list[Reference]:
    """Return every resource reference inside *config*, in walk order."""
    found: list[Reference] = []
    for path, value in _walk(config, ""):
        if isinstance(value, Ref):
            found.append(Reference(resource=value.resource, attribute=value.attribute, source_field=path))
        elif isinstance(value, str):
            for match in RE_TEMPLATE_REF.finditer(value):
                found.append(Reference(resource=match.group(1), attribute=match.group(2), source_field=path))
    return found


def resolve_references(config: Any, attributes: Mapping[str, Mapping[str, Any]]) -> Any:
    """Substitute references in *config* with values from resource *attributes*.

    ``attributes`` maps resource name to that resource's result attributes.
    A string that interpolates a secret becomes a SecretValue.  Dataclass
    configs come back as the same type with resolved fields.

    Raises:
        KeyError: if a referenced resource or attribute is missing.
    """
    if isinstance(config, Ref):
        return get_path(attributes[config.resource], config.attribute)
    if isinstance(config, SecretValue):
        return SecretValue(resolve_references(config.reveal(), attributes))
    if isinstance(config, str):
        return _resolve_string(config, attributes)
    if dataclasses.is_dataclass(config) and not isinstance(config, type):
        changes = {
            f.name: resolve_references(getattr(config, f.name), attributes)
            for f in dataclasses.fields(config)
            if f.init
        }
        return dataclasses.replace(config, **changes)
    if isinstance(config, Mapping):
        return {key: resolve_references(item, attributes) for key, item in config.items()}
    if isinstance(config, list | tuple):
        return type(config)(resolve_references(item, attributes) for item in config)
    return config


def _resolve_string(text: str, attributes: Mapping[str, Mapping[str, Any]]) -> Any:
    matches = list(RE_TEMPLATE_REF.finditer(text))
    if not matches:
        return text
    # A string that is exactly one reference keeps the referenced value's type
    if len(matches) == 1 and matches[0].span() == (0, len(text)):
        return get_path(attributes[matches[0].group(1)], matches[0].group(2))

    secret = False
    parts: list[str] = []
    last = 0
    for match in matches:
        value = get_path(attributes[match.group(1)], match.group(2))
        secret = secret or isinstance(value, SecretValue)
        parts.append(text[last : match.start()])
        parts.append(str(reveal(value)))
        last = match.end()
    parts.append(text[last:])
    rendered = "".join(parts)
    return SecretValue(rendered) if secret else rendered
