# Copyright 2025 Xdynix
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file includes portions of logic and structure adapted from the
# Kubernetes project (https://github.com/kubernetes/kubernetes), originally
# licensed under the Apache License, Version 2.0. Significant modifications
# have been made to port and restructure the code for use in Python.


"""Label sets.

A label set is an unordered mapping of label keys to label values attached to a
resource. This module provides the set type itself, the algebra used to compare and
combine sets, and the flat ``key=value,key=value`` selector grammar.

Example:
    >>> labels = LabelSet(tier="frontend", env="prod")
    >>> str(labels)
    'env=prod,tier=frontend'
    >>> labels.lookup("env"), labels.lookup("zone")
    (('prod', True), ('', False))

    >>> conflicts(labels, LabelSet(env="staging"))
    True
    >>> merge(labels, LabelSet(env="staging"))
    LabelSet({'env': 'staging', 'tier': 'frontend'})

    >>> parse_selector("env = prod, tier = frontend").labels == labels
    True
    >>> parse_selector("env=prod,tier").error
    SelectorSyntaxError("invalid selector: 'tier'")
"""

__all__ = (
    "NONE_PLACEHOLDER",
    "LabelError",
    "LabelSet",
    "Labels",
    "ParseResult",
    "SelectorSyntaxError",
    "conflicts",
    "equals",
    "format_labels",
    "merge",
    "parse_selector",
)

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, Self, runtime_checkable

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema
from validation import (
    FieldPath,
    LabelError,
    validate_label_key,
    validate_label_value,
)

if TYPE_CHECKING:
    from label_selector import LabelSelector, ValidatedSetSelector

logger = logging.getLogger(__name__)

# Rendered by `format_labels()` for an empty set.
NONE_PLACEHOLDER = "<none>"


class SelectorSyntaxError(LabelError):
    """A selector token is not exactly one key and one value joined by `=`."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"invalid selector: {token!r}")


# ==== Labels ====


@runtime_checkable
class Labels(Protocol):
    """Read access to labels, independent of how they are stored."""

    def has(self, key: str) -> bool:
        """Returns whether the label exists."""
        ...

    def get(self, key: str) -> str:
        """Returns the value of the label, or an empty string if it doesn't exist."""
        ...

    def lookup(self, key: str) -> tuple[str, bool]:
        """Returns the value of the label and whether it exists."""
        ...


class LabelSet(dict[str, str]):
    """A mapping of label keys to label values. Implements `Labels`.

    Construction accepts anything `dict` does and performs no validation. The string
    form lists the labels sorted by key, which is exactly the format accepted by
    `parse_selector()`.

    This class can also be used for type annotation in Pydantic models, accepting
    either a mapping or a selector string.

    Example:
        >>> labels = LabelSet({"b": "2", "a": "1"})
        >>> str(labels)
        'a=1,b=2'
        >>> labels.get("c")
        ''
        >>> labels | {"b": "3"}
        LabelSet({'a': '1', 'b': '3'})
    """

    __slots__ = ()

    def __str__(self) -> str:
        return ",".join(f"{key}={value}" for key, value in self.sorted_items())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({dict(self.sorted_items())!r})"

    def __or__(self, other: Any) -> "LabelSet":  # type: ignore[override]
        if not isinstance(other, Mapping):
            return NotImplemented
        return merge(self, other)

    def __ror__(self, other: Any) -> "LabelSet":  # type: ignore[override]
        if not isinstance(other, Mapping):
            return NotImplemented
        return merge(other, self)

    def copy(self) -> "LabelSet":
        return LabelSet(self)

    def sorted_items(self) -> list[tuple[str, str]]:
        return sorted(self.items())

    def has(self, key: str) -> bool:
        return key in self

    def get(self, key: str, default: str = "") -> str:  # type: ignore[override]
        return super().get(key, default)

    def lookup(self, key: str) -> tuple[str, bool]:
        if key in self:
            return self[key], True
        return "", False

    def as_selector(self) -> "LabelSelector":
        """Converts the labels into a selector without validating them."""
        from label_selector import selector_from_set

        return selector_from_set(self)

    def as_validated_selector(self) -> "LabelSelector":
        """Converts the labels into a selector, validating every label first.

        Raises:
            LabelValidationError: If any key or value is invalid.
        """
        from label_selector import validated_selector_from_set

        return validated_selector_from_set(self)

    def as_selector_pre_validated(self) -> "ValidatedSetSelector":
        """Wraps the labels, which must already be valid, as a selector.

        The set is not copied, so it must not be modified while the selector is used.
        """
        from label_selector import selector_from_validated_set

        return selector_from_validated_set(self)

    @classmethod
    def from_str(cls, s: str, path: str = FieldPath()) -> Self:
        """Parse a selector string into a label set.

        Raises:
            SelectorSyntaxError: If a pair is not in `key=value` form.
            LabelValidationError: If a key or value is invalid.
        """
        return cls(parse_selector(s, path=path).unwrap())

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: "GetCoreSchemaHandler",
    ) -> "CoreSchema":
        from_mapping_schema = core_schema.no_info_after_validator_function(
            cls,
            core_schema.dict_schema(
                keys_schema=core_schema.str_schema(),
                values_schema=core_schema.str_schema(),
            ),
        )
        from_str_schema = core_schema.chain_schema(
            [
                core_schema.str_schema(),
                core_schema.no_info_plain_validator_function(cls.from_str),
            ]
        )
        return core_schema.union_schema(
            [from_mapping_schema, from_str_schema],
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda labels: dict(labels.sorted_items()),
            ),
        )


def format_labels(labels: Mapping[str, str]) -> str:
    """Renders labels for display, using a placeholder if there are none.

    Example:
        >>> format_labels({})
        '<none>'
        >>> format_labels({"a": "b"})
        'a=b'
    """
    return str(LabelSet(labels)) or NONE_PLACEHOLDER


# ==== Algebra ====


def conflicts(labels1: Mapping[str, str], labels2: Mapping[str, str]) -> bool:
    """Returns whether any key present in both sets maps to different values."""
    small, big = labels1, labels2
    if len(labels2) < len(labels1):
        small, big = labels2, labels1

    for key, value in small.items():
        if key in big and big[key] != value:
            return True
    return False


def merge(labels1: Mapping[str, str], labels2: Mapping[str, str]) -> LabelSet:
    """Combines two sets into a new one. On shared keys, `labels2` wins.

    Conflicts are not checked, use `conflicts()` first if they matter.
    """
    merged = LabelSet(labels1)
    merged.update(labels2)
    return merged


def equals(labels1: Mapping[str, str], labels2: Mapping[str, str]) -> bool:
    """Returns whether both sets hold exactly the same labels."""
    if len(labels1) != len(labels2):
        return False

    for key, value in labels1.items():
        if key not in labels2 or labels2[key] != value:
            return False
    return True


# ==== Selector Grammar ====


class ParseResult(NamedTuple):
    """Outcome of `parse_selector()`.

    Attributes:
        labels (LabelSet): The parsed labels. On failure, holds the labels parsed
            before the offending pair.
        error (LabelError | None): The first error encountered, if any.
    """

    labels: LabelSet
    error: LabelError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> LabelSet:
        """Returns the labels, raising the error if parsing failed."""
        if self.error is not None:
            raise self.error
        return self.labels


# Selector string syntax is defined as following:
#
# <selector-syntax> ::= "" | <pair> | <pair> "," <selector-syntax>
# <pair>            ::= KEY "=" VALUE
#
# Notes:
# - KEY and VALUE are trimmed of surrounding whitespace, then validated by
#   `validate_label_key()` and `validate_label_value()`.
# - There is no escaping, a KEY or VALUE cannot contain "=" or ",".
# - A repeated KEY takes the last VALUE.


def parse_selector(selector: str, *, path: str = FieldPath()) -> ParseResult:
    """Parses a selector string into a label set, validating keys and values.

    Parsing stops at the first invalid pair. The result then carries the error along
    with the labels parsed so far.

    Args:
        selector: The selector string, e.g. `"env=prod,tier=frontend"`.
        path: Location of the selector, used to attribute validation errors.

    Returns:
        A `ParseResult` of the labels and the error, if any.
    """
    labels = LabelSet()

    if not selector:
        return ParseResult(labels)

    for pair in selector.split(","):
        parts = pair.split("=")
        if len(parts) != 2:
            logger.debug("Malformed pair %r in selector %r", pair, selector)
            return ParseResult(labels, SelectorSyntaxError(pair))

        key, value = parts[0].strip(), parts[1].strip()
        if error := validate_label_key(key, path):
            return ParseResult(labels, error)
        if error := validate_label_value(key, value, path):
            return ParseResult(labels, error)

        labels[key] = value

    return ParseResult(labels)
