"""YAML loading for defaults files.

PyYAML's ``safe_load()`` keeps the last of two identical mapping keys.  A
defaults file with two ``defaults:`` sections would then silently apply
only the second one, so duplicate keys are rejected at every level.
"""

from __future__ import annotations

from typing import IO, Union

import yaml


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that raises on duplicate mapping keys."""


def _construct_unique_mapping(loader, node):
    loader.flatten_mapping(node)
    pairs = loader.construct_pairs(node)
    seen: set = set()
    for key, _value in pairs:
        if key in seen:
            raise ValueError(
                f"Duplicate YAML key: {key!r} "
                f"(line {node.start_mark.line + 1})"
            )
        seen.add(key)
    return dict(pairs)


_UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_unique_mapping,
)


def safe_yaml_load(stream: Union[str, IO[str]]) -> object:
    """``yaml.safe_load()`` that rejects duplicate keys with ``ValueError``."""
    return yaml.load(stream, Loader=_UniqueKeyLoader)


def sequence_item_marks(stream: str, key: str) -> list[tuple[int, int]]:
    """Return ``(line, column)`` of each item under top-level *key*.

    Lines and columns are 1-based.  Returns an empty list when *key* is
    missing or is not a sequence.
    """
    root = yaml.compose(stream, Loader=_UniqueKeyLoader)
    if not isinstance(root, yaml.MappingNode):
        return []
    for key_node, value_node in root.value:
        if key_node.value == key and isinstance(value_node, yaml.SequenceNode):
            return [
                (item.start_mark.line + 1, item.start_mark.column + 1)
                for item in value_node.value
            ]
    return []
