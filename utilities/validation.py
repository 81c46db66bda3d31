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


"""Label key and value validation.

Syntax rules for label keys and values, and the two validation entry points used
by the selector grammar. Errors are attributed to a ``FieldPath`` so callers can
tell which part of a larger object was rejected.

Example:
    >>> path = FieldPath("metadata").child("labels")
    >>> validate_label_key("app", path) is None
    True
    >>> print(validate_label_value("app", "-web", path))  # doctest: +ELLIPSIS
    metadata.labels[app]: Invalid value: '-web': a valid label must be ...
"""

__all__ = (
    "FieldPath",
    "LabelError",
    "LabelKey",
    "LabelValidationError",
    "LabelValue",
    "validate_label_key",
    "validate_label_value",
)

import logging
import re
from collections.abc import Iterable
from typing import Any, Self

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema

logger = logging.getLogger(__name__)

DNS_1123_LABEL = "[a-z0-9]([-a-z0-9]*[a-z0-9])?"
DNS_1123_SUBDOMAIN = rf"{DNS_1123_LABEL}(\.{DNS_1123_LABEL})*"

QNAME_CHAR = "[A-Za-z0-9]"
QNAME_EXT_CHAR = "[-A-Za-z0-9_.]"
QNAME = f"({QNAME_CHAR}{QNAME_EXT_CHAR}*)?{QNAME_CHAR}"

DNS_1123_SUBDOMAIN_MAX_LEN = 253
QNAME_MAX_LEN = 63

DNS_1123_SUBDOMAIN_PATTERN = re.compile(DNS_1123_SUBDOMAIN)
QNAME_PATTERN = re.compile(QNAME)
QNAME_OPTIONAL_PATTERN = re.compile(f"({QNAME})?")


# ==== Errors ====


class LabelError(ValueError):
    """Base class for errors raised while handling labels."""


class LabelValidationError(LabelError):
    """A label key or value was rejected by the syntax rules.

    Attributes:
        field (FieldPath): Location of the rejected value.
        value (str): The rejected key or value.
        details (tuple[str, ...]): One message per violated rule.
    """

    def __init__(self, field: "FieldPath", value: str, details: Iterable[str]):
        self.field = field
        self.value = value
        self.details = tuple(details)
        message = f"Invalid value: {value!r}: {'; '.join(self.details)}"
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


# ==== Field Path ====


class FieldPath(str):
    """Dotted location of a field inside a larger object.

    The empty path is the root. Paths are immutable, each step returns a new one.

    Example:
        >>> FieldPath("spec").child("selector").key("app")
        FieldPath('spec.selector[app]')
        >>> FieldPath().child("items").index(0)
        FieldPath('items[0]')
    """

    __slots__ = ()

    def __new__(cls, value: Any = "") -> Self:
        if not isinstance(value, str):
            raise TypeError(f"{cls.__name__} requires a string, not {value!r}")
        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({super().__repr__()})"

    def child(self, name: str) -> "FieldPath":
        return FieldPath(f"{self}.{name}" if self else name)

    def key(self, key: str) -> "FieldPath":
        return FieldPath(f"{self}[{key}]")

    def index(self, index: int) -> "FieldPath":
        return FieldPath(f"{self}[{index}]")


# ==== Label Key and Value ====


class LabelKey(str):
    """Validated label key.

    Valid label keys have two segments: an optional prefix and name, separated by a
    slash (`/`). The name segment is required and must be 63 characters or fewer,
    beginning and ending with an alphanumeric character (`[a-z0-9A-Z]`) with dashes
    (`-`), underscores (`_`), dots (`.`), and alphanumerics between. The prefix is
    optional. If specified, the prefix must be a DNS subdomain: a series of DNS labels
    separated by dots (.), not longer than 253 characters in total, followed by a slash
    (`/`).

    This class can also be used for type annotation in Pydantic models.

    Attributes:
        prefix (str): The optional prefix segment of the label key, without the slash.
        name (str): The name segment of the label key.
    """

    # This pattern is used solely for JSON Schema generation and is not involved in the
    # validation process within the Python code. It replicates `check()` exactly.
    PATTERN = re.compile(
        # Although the escape sequence `\/` is not required in Python,
        # it is retained to maximize the portability of the regular expression.
        "^"
        rf"((?=.{{1,{DNS_1123_SUBDOMAIN_MAX_LEN}}}\/){DNS_1123_SUBDOMAIN}\/)?"
        rf"((?=.{{1,{QNAME_MAX_LEN}}}$){QNAME})"
        "$"
    )
    MIN_LENGTH = 1
    MAX_LENGTH = (
        DNS_1123_SUBDOMAIN_MAX_LEN
        + 1  # `/` between the prefix and name
        + QNAME_MAX_LEN
    )

    __slots__ = ("_name", "_prefix")

    _prefix: str
    _name: str

    def __new__(cls, value: Any) -> Self:
        if not isinstance(value, str):
            raise TypeError(f"{cls.__name__} requires a string, not {value!r}")

        if errors := cls.check(value):
            raise ValueError("; ".join(errors))

        prefix, _, name = value.rpartition("/")
        obj = super().__new__(cls, value)
        obj._prefix = prefix
        obj._name = name
        return obj

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({super().__repr__()})"

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: "GetCoreSchemaHandler",
    ) -> "CoreSchema":
        return core_schema.no_info_plain_validator_function(
            cls,
            ref=cls.__name__,
            json_schema_input_schema=core_schema.str_schema(
                pattern=cls.PATTERN,
                min_length=cls.MIN_LENGTH,
                max_length=cls.MAX_LENGTH,
            ),
        )

    @classmethod
    def check(cls, value: str) -> list[str]:
        """Returns the rules `value` violates, empty if it is a valid key."""
        errors: list[str] = []

        prefix: str
        name: str
        match value.split("/"):
            case [name]:
                prefix = ""
            case [prefix, name]:
                if not prefix:
                    errors.append("prefix part must be non-empty")
                else:
                    if len(prefix) > DNS_1123_SUBDOMAIN_MAX_LEN:
                        errors.append(
                            "prefix part must be no more than "
                            f"{DNS_1123_SUBDOMAIN_MAX_LEN} characters"
                        )
                    if not DNS_1123_SUBDOMAIN_PATTERN.fullmatch(prefix):
                        errors.append(
                            "prefix part a lowercase RFC 1123 subdomain must "
                            "consist of lower case alphanumeric characters, '-' "
                            "or '.', and must start and end with an alphanumeric "
                            "character (e.g. 'example.com', regex used for "
                            f"validation is '{DNS_1123_SUBDOMAIN_PATTERN.pattern}')"
                        )
            case _:
                return [
                    "a qualified name must consist of alphanumeric characters, "
                    "'-', '_' or '.', and must start and end with an alphanumeric "
                    "character (e.g. 'MyName', 'my.name', '123-abc', regex used "
                    f"for validation is '{QNAME_PATTERN.pattern}') with an "
                    "optional DNS subdomain prefix and '/' (e.g. "
                    "'example.com/MyName')"
                ]

        if not name:
            errors.append("name part must be non-empty")
        elif len(name) > QNAME_MAX_LEN:
            errors.append(f"name part must be no more than {QNAME_MAX_LEN} characters")
        if not QNAME_PATTERN.fullmatch(name):
            errors.append(
                "name part must consist of alphanumeric characters, '-', '_' or "
                "'.', and must start and end with an alphanumeric character (e.g. "
                "'MyName', 'my.name', '123-abc', regex used for validation is "
                f"'{QNAME_PATTERN.pattern}')"
            )

        return errors

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def name(self) -> str:
        return self._name


class LabelValue(str):
    """Validated label value.

    A valid label value:

    - Must be 63 characters or fewer (can be empty).
    - Unless empty, must begin and end with an alphanumeric character (`[a-z0-9A-Z]`).
    - Could contain dashes (`-`), underscores (`_`), dots (`.`), and alphanumerics
      between.

    This class can also be used for type annotation in Pydantic models.
    """

    # This pattern is used solely for JSON Schema generation and is not involved in the
    # validation process within the Python code. It replicates `check()` exactly.
    PATTERN = re.compile(
        "^"
        rf"((?=.{{1,{QNAME_MAX_LEN}}}){QNAME})?"
        "$"
    )
    MAX_LENGTH = QNAME_MAX_LEN

    __slots__ = ()

    def __new__(cls, value: Any) -> Self:
        if not isinstance(value, str):
            raise TypeError(f"{cls.__name__} requires a string, not {value!r}")

        if errors := cls.check(value):
            raise ValueError("; ".join(errors))

        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({super().__repr__()})"

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: "GetCoreSchemaHandler",
    ) -> "CoreSchema":
        return core_schema.no_info_plain_validator_function(
            cls,
            ref=cls.__name__,
            json_schema_input_schema=core_schema.str_schema(
                pattern=cls.PATTERN,
                max_length=cls.MAX_LENGTH,
            ),
        )

    @classmethod
    def check(cls, value: str) -> list[str]:
        """Returns the rules `value` violates, empty if it is a valid value."""
        errors: list[str] = []

        if len(value) > QNAME_MAX_LEN:
            errors.append(f"must be no more than {QNAME_MAX_LEN} characters")
        if not QNAME_OPTIONAL_PATTERN.fullmatch(value):
            errors.append(
                "a valid label must be an empty string or consist of alphanumeric "
                "characters, '-', '_' or '.', and must start and end with an "
                "alphanumeric character (e.g. 'MyValue', 'my_value', '12345', regex "
                f"used for validation is '{QNAME_OPTIONAL_PATTERN.pattern}')"
            )

        return errors


# ==== Validators ====


def validate_label_key(
    key: str,
    path: str = FieldPath(),
) -> LabelValidationError | None:
    """Checks a label key, attributing any error to `path`."""
    if errors := LabelKey.check(key):
        logger.debug("Rejected label key %r at %r: %s", key, path, errors)
        return LabelValidationError(FieldPath(path), key, errors)
    return None


def validate_label_value(
    key: str,
    value: str,
    path: str = FieldPath(),
) -> LabelValidationError | None:
    """Checks the value of label `key`, attributing any error to `path[key]`."""
    if errors := LabelValue.check(value):
        logger.debug("Rejected value %r of label %r at %r: %s", value, key, path, errors)
        return LabelValidationError(FieldPath(path).key(key), value, errors)
    return None
