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


"""Label selectors built from label sets.

A selector built from a label set matches any labels that contain every label of the
set with the same value. Three builders are provided, trading safety for speed:

- `selector_from_set()` copies the set without validating it.
- `validated_selector_from_set()` validates every label before copying.
- `selector_from_validated_set()` wraps the set as is, trusting the caller.

Example:
    >>> from labels import LabelSet
    >>> selector = validated_selector_from_set(LabelSet(env="prod"))
    >>> str(selector)
    'env=prod'
    >>> selector.matches(LabelSet(env="prod", tier="frontend"))
    True
    >>> selector.matches({"env": "staging"})
    False

    >>> LabelSelector.model_validate("env=prod, tier=frontend")
    LabelSelector(root=frozenset({...}))
"""

__all__ = (
    "LabelSelector",
    "Requirement",
    "Selector",
    "ValidatedSetSelector",
    "selector_from_set",
    "selector_from_validated_set",
    "validated_selector_from_set",
)

from collections.abc import Mapping
from functools import cached_property, total_ordering
from operator import attrgetter
from typing import Any, ClassVar, Protocol, Self

from labels import LabelSet, Labels
from pydantic import (
    BaseModel,
    ConfigDict,
    GetCoreSchemaHandler,
    RootModel,
    field_serializer,
)
from pydantic_core import CoreSchema, core_schema
from validation import (
    FieldPath,
    LabelKey,
    LabelValue,
    validate_label_key,
    validate_label_value,
)


def to_labels(labels: Labels | Mapping[str, str]) -> Labels:
    # Plain mappings lack `lookup()`, anything else is expected to implement Labels.
    if isinstance(labels, Mapping) and not isinstance(labels, LabelSet):
        return LabelSet(labels)
    return labels  # type: ignore[return-value]


class Selector(Protocol):
    """A predicate over labels."""

    def __str__(self) -> str: ...

    def matches(self, labels: Labels | Mapping[str, str]) -> bool:
        """Returns whether the labels satisfy the selector."""
        ...

    def empty(self) -> bool:
        """Returns whether the selector matches everything."""
        ...

    def requires_exact_match(self, key: str) -> tuple[str, bool]:
        """Returns the value `key` must have to match, and whether there is one."""
        ...


# ==== Label Selector ====


@total_ordering
class Requirement(BaseModel):
    """A single label the selected labels must carry.

    Attributes:
        key (LabelKey): The label key.
        value (LabelValue): The value the label must have.
    """

    key: LabelKey
    value: LabelValue

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.key}={self.value}"

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, Requirement):
            return NotImplemented
        to_tuple = attrgetter("key", "value")
        return to_tuple(self) < to_tuple(other)

    def matches(self, labels: Labels) -> bool:
        return labels.lookup(self.key) == (self.value, True)


@total_ordering
class LabelSelector(RootModel[frozenset[Requirement]]):
    """Container for a set of label requirements.

    Provides methods for matching labels against all contained requirements.

    Attributes:
        requirements (tuple[Requirement, ...]): The requirements, sorted by key.

    Example:
        >>> # The selector can be created using the Pydantic style.
        >>> selector = LabelSelector.model_validate([
        ...     {"key": "environment", "value": "production"},
        ...     {"key": "tier", "value": "frontend"},
        ... ])
        >>> selector.matches({"environment": "production", "tier": "frontend"})
        True

        >>> # Or from a label mapping or a string representation.
        >>> selector == LabelSelector.model_validate(
        ...     {"environment": "production", "tier": "frontend"}
        ... )
        True
        >>> selector == LabelSelector.model_validate(
        ...     "environment=production, tier=frontend"
        ... )
        True
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        frozen=True,
        json_schema_extra={"description": "A set of label requirements."},
    )

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, LabelSelector):
            return NotImplemented
        return self.requirements < other.requirements

    @cached_property
    def requirements(self) -> tuple[Requirement, ...]:
        return tuple(sorted(self.root))

    def matches(self, labels: Labels | Mapping[str, str]) -> bool:
        """Check if labels match all requirements in this selector.

        Args:
            labels: The labels to check, either a `Labels` or a plain mapping.

        Returns:
            True if every requirement matches the given labels, False otherwise.
        """
        labels = to_labels(labels)
        return all(requirement.matches(labels) for requirement in self.requirements)

    def empty(self) -> bool:
        return not self.root

    def requires_exact_match(self, key: str) -> tuple[str, bool]:
        for requirement in self.requirements:
            if requirement.key == key:
                return requirement.value, True
        return "", False

    def as_labels(self) -> LabelSet:
        return LabelSet((req.key, req.value) for req in self.requirements)

    @field_serializer("root")
    def _serialize_root(self, _: Any, __: Any) -> tuple[Requirement, ...]:
        return self.requirements

    @classmethod
    def from_labels(cls, labels: Mapping[str, str]) -> Self:
        """Create a validated LabelSelector from a label mapping.

        Raises:
            LabelValidationError: If any key or value is invalid.
        """
        validate_labels(labels)
        return cls.model_validate(
            [{"key": key, "value": value} for key, value in labels.items()]
        )

    @classmethod
    def from_str(cls, s: str) -> Self:
        """Create a LabelSelector from a string representation.

        The selector string is a comma-separated list of `key=value` pairs. Whitespace
        around keys and values is ignored, and a repeated key takes the last value.

        Args:
            s: The selector string to parse.

        Returns:
            A new LabelSelector instance.

        Raises:
            SelectorSyntaxError: If a pair is not in `key=value` form.
            LabelValidationError: If a key or value is invalid.

        Example:
            >>> str(LabelSelector.from_str("tier = frontend, env = prod"))
            'env=prod,tier=frontend'
        """
        return cls.from_labels(LabelSet.from_str(s))

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: "GetCoreSchemaHandler",
    ) -> "CoreSchema":
        default_schema = handler(source_type)
        from_mapping_schema = core_schema.chain_schema(
            [
                core_schema.dict_schema(
                    keys_schema=core_schema.str_schema(),
                    values_schema=core_schema.str_schema(),
                ),
                core_schema.no_info_plain_validator_function(cls.from_labels),
                default_schema,
            ]
        )
        from_str_schema = core_schema.chain_schema(
            [
                core_schema.str_schema(),
                core_schema.no_info_plain_validator_function(cls.from_str),
                default_schema,
            ]
        )
        return core_schema.union_schema(
            [default_schema, from_mapping_schema, from_str_schema]
        )


class ValidatedSetSelector:
    """Selector over a label set that is known to be valid.

    The set is neither copied nor validated, which makes this the cheapest selector
    to build. It must not be modified while the selector is in use.
    """

    __slots__ = ("labels",)

    def __init__(self, labels: Mapping[str, str]):
        self.labels = labels

    def __str__(self) -> str:
        return str(LabelSet(self.labels))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.labels!r})"

    def matches(self, labels: Labels | Mapping[str, str]) -> bool:
        labels = to_labels(labels)
        return all(
            labels.lookup(key) == (value, True) for key, value in self.labels.items()
        )

    def empty(self) -> bool:
        return not self.labels

    def requires_exact_match(self, key: str) -> tuple[str, bool]:
        if key in self.labels:
            return self.labels[key], True
        return "", False


# ==== Builders ====


def validate_labels(labels: Mapping[str, str], path: str = FieldPath()) -> None:
    """Raises the first validation error among the labels, in key order."""
    for key, value in sorted(labels.items()):
        if error := validate_label_key(key, path):
            raise error
        if error := validate_label_value(key, value, path):
            raise error


def selector_from_set(labels: Mapping[str, str] | None) -> LabelSelector:
    """Builds a selector from labels without validating them.

    An empty or missing set yields a selector that matches everything.
    """
    # Bypasses validation, keys and values are kept as plain strings.
    requirements = frozenset(
        Requirement.model_construct(key=key, value=value)
        for key, value in (labels or {}).items()
    )
    return LabelSelector.model_construct(requirements)


def validated_selector_from_set(labels: Mapping[str, str] | None) -> LabelSelector:
    """Builds a selector from labels, validating every label first.

    Raises:
        LabelValidationError: If any key or value is invalid.
    """
    return LabelSelector.from_labels(labels or {})


def selector_from_validated_set(labels: Mapping[str, str]) -> ValidatedSetSelector:
    """Wraps already validated labels as a selector, without copying them."""
    return ValidatedSetSelector(labels)
