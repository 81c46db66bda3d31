import itertools
from typing import Any

import pydantic
import pytest
from labels import (
    NONE_PLACEHOLDER,
    LabelSet,
    Labels,
    ParseResult,
    SelectorSyntaxError,
    conflicts,
    equals,
    format_labels,
    merge,
    parse_selector,
)
from pydantic import BaseModel
from validation import FieldPath, LabelError, LabelValidationError

SAMPLE_SETS: tuple[dict[str, str], ...] = (
    {},
    {"a": "1"},
    {"a": "2"},
    {"a": "1", "b": "2"},
    {"b": "2", "c": "3"},
    {"a": "", "b": "2"},
)


class TestLabelSet:
    def test_is_labels(self) -> None:
        assert isinstance(LabelSet(), Labels)
        assert not isinstance({}, Labels)

    def test_construction(self) -> None:
        assert LabelSet() == {}
        assert LabelSet({"a": "1"}) == {"a": "1"}
        assert LabelSet(a="1") == {"a": "1"}
        assert LabelSet([("a", "1"), ("a", "2")]) == {"a": "2"}

    def test_construction_copies(self) -> None:
        source = {"a": "1"}
        labels = LabelSet(source)
        source["a"] = "2"
        assert labels == {"a": "1"}

    def test_has(self) -> None:
        labels = LabelSet(a="1", b="")
        assert labels.has("a")
        assert labels.has("b")
        assert not labels.has("c")

    def test_get(self) -> None:
        labels = LabelSet(a="1", b="")
        assert labels.get("a") == "1"
        assert labels.get("b") == ""
        assert labels.get("c") == ""

    def test_lookup(self) -> None:
        labels = LabelSet(a="1", b="")
        assert labels.lookup("a") == ("1", True)
        assert labels.lookup("b") == ("", True)
        assert labels.lookup("c") == ("", False)

    @pytest.mark.parametrize(
        "labels, expected",
        (
            ({}, ""),
            ({"a": "b"}, "a=b"),
            ({"b": "2", "a": "1"}, "a=1,b=2"),
            ({"a": ""}, "a="),
            ({"x.io/b": "2", "x.io/a": "1", "c": "3"}, "c=3,x.io/a=1,x.io/b=2"),
            # Sorted by key, not by the joined pair.
            ({"a-b": "2", "a": "1"}, "a=1,a-b=2"),
        ),
    )
    def test_str(self, labels: dict[str, str], expected: str) -> None:
        assert str(LabelSet(labels)) == expected

    def test_str_ignores_insertion_order(self) -> None:
        items = [("c", "3"), ("a", "1"), ("b", "2"), ("aa", "4")]
        expected = "a=1,aa=4,b=2,c=3"
        for permutation in itertools.permutations(items):
            assert str(LabelSet(permutation)) == expected

    def test_repr(self) -> None:
        assert repr(LabelSet(b="2", a="1")) == "LabelSet({'a': '1', 'b': '2'})"

    def test_copy(self) -> None:
        labels = LabelSet(a="1")
        copied = labels.copy()
        assert isinstance(copied, LabelSet)
        assert copied == labels
        assert copied is not labels

    def test_or(self) -> None:
        left = LabelSet(a="1", b="2")
        right = {"b": "3", "c": "4"}

        merged = left | right
        assert isinstance(merged, LabelSet)
        assert merged == {"a": "1", "b": "3", "c": "4"}

        merged = right | left
        assert isinstance(merged, LabelSet)
        assert merged == {"a": "1", "b": "2", "c": "4"}

        assert left == {"a": "1", "b": "2"}
        assert right == {"b": "3", "c": "4"}

    def test_or_unsupported(self) -> None:
        with pytest.raises(TypeError):
            _ = LabelSet() | 1

    def test_from_str(self) -> None:
        labels = LabelSet.from_str("b=2, a=1")
        assert isinstance(labels, LabelSet)
        assert labels == {"a": "1", "b": "2"}

    @pytest.mark.parametrize(
        "s, exc",
        (
            ("a", SelectorSyntaxError),
            ("a=b=c", SelectorSyntaxError),
            ("_a=b", LabelValidationError),
            ("a=b!", LabelValidationError),
        ),
    )
    def test_from_str_invalid(self, s: str, exc: type[Exception]) -> None:
        with pytest.raises(exc):
            LabelSet.from_str(s)

    def test_from_str_path(self) -> None:
        with pytest.raises(LabelValidationError) as exc_info:
            LabelSet.from_str("a=@", path=FieldPath("spec").child("selector"))
        assert exc_info.value.field == "spec.selector[a]"


class Resource(BaseModel):
    labels: LabelSet


class TestLabelSetPydantic:
    def test_from_mapping(self) -> None:
        resource = Resource.model_validate({"labels": {"b": "2", "a": "1"}})
        assert isinstance(resource.labels, LabelSet)
        assert resource.labels == {"a": "1", "b": "2"}

    def test_from_str(self) -> None:
        resource = Resource.model_validate({"labels": "b=2,a=1"})
        assert isinstance(resource.labels, LabelSet)
        assert resource.labels == {"a": "1", "b": "2"}

    def test_from_mapping_is_not_validated(self) -> None:
        resource = Resource.model_validate({"labels": {"_a": "b!"}})
        assert resource.labels == {"_a": "b!"}

    @pytest.mark.parametrize("data", ("a=b=c", "_a=b", 1, {"a": 1}))
    def test_invalid(self, data: Any) -> None:
        with pytest.raises(pydantic.ValidationError):
            Resource.model_validate({"labels": data})

    def test_serialization_deterministic(self) -> None:
        resource = Resource(labels=LabelSet(c="3", a="1", b="2"))
        dumped = resource.model_dump(mode="json")
        assert dumped == {"labels": {"a": "1", "b": "2", "c": "3"}}
        assert list(dumped["labels"]) == ["a", "b", "c"]


class TestFormatLabels:
    @pytest.mark.parametrize(
        "labels, expected",
        (
            ({}, NONE_PLACEHOLDER),
            ({}, "<none>"),
            ({"a": "b"}, "a=b"),
            ({"b": "2", "a": "1"}, "a=1,b=2"),
        ),
    )
    def test_format(self, labels: dict[str, str], expected: str) -> None:
        assert format_labels(labels) == expected

    def test_format_label_set(self) -> None:
        assert format_labels(LabelSet()) == "<none>"
        assert format_labels(LabelSet(a="b")) == "a=b"


class TestConflicts:
    @pytest.mark.parametrize(
        "labels1, labels2, expected",
        (
            ({}, {}, False),
            ({"a": "1"}, {}, False),
            ({"a": "1"}, {"b": "2"}, False),
            ({"a": "1"}, {"a": "1"}, False),
            ({"a": "1"}, {"a": "2"}, True),
            ({"a": "1"}, {"a": ""}, True),
            ({"a": "1", "b": "2"}, {"a": "1"}, False),
            ({"a": "1", "b": "2", "c": "3"}, {"c": "4"}, True),
            ({"a": "1", "b": "2"}, {"b": "2", "c": "3", "d": "4"}, False),
            ({"a": "1", "b": "2"}, {"b": "3", "c": "3", "d": "4"}, True),
        ),
    )
    def test_conflicts(
        self,
        labels1: dict[str, str],
        labels2: dict[str, str],
        expected: bool,
    ) -> None:
        assert conflicts(LabelSet(labels1), LabelSet(labels2)) == expected
        assert conflicts(LabelSet(labels2), LabelSet(labels1)) == expected

    @pytest.mark.parametrize("labels", SAMPLE_SETS)
    def test_self(self, labels: dict[str, str]) -> None:
        assert not conflicts(LabelSet(labels), LabelSet(labels))

    @pytest.mark.parametrize(
        "labels1, labels2",
        itertools.product(SAMPLE_SETS, repeat=2),
    )
    def test_no_conflict_means_shared_keys_agree(
        self,
        labels1: dict[str, str],
        labels2: dict[str, str],
    ) -> None:
        set1, set2 = LabelSet(labels1), LabelSet(labels2)
        assert conflicts(set1, set2) == conflicts(set2, set1)
        if not conflicts(set1, set2):
            for key in set1.keys() & set2.keys():
                assert set1.get(key) == set2.get(key)


class TestMerge:
    @pytest.mark.parametrize(
        "labels1, labels2, expected",
        (
            ({}, {}, {}),
            ({"a": "1"}, {}, {"a": "1"}),
            ({}, {"a": "1"}, {"a": "1"}),
            ({"a": "1"}, {"b": "2"}, {"a": "1", "b": "2"}),
            ({"a": "1"}, {"a": "2"}, {"a": "2"}),
            ({"a": "1", "b": "2"}, {"b": "3", "c": "4"}, {"a": "1", "b": "3", "c": "4"}),
        ),
    )
    def test_merge(
        self,
        labels1: dict[str, str],
        labels2: dict[str, str],
        expected: dict[str, str],
    ) -> None:
        merged = merge(LabelSet(labels1), LabelSet(labels2))
        assert isinstance(merged, LabelSet)
        assert merged == expected

    def test_inputs_untouched(self) -> None:
        labels1 = LabelSet(a="1", b="2")
        labels2 = LabelSet(b="3")
        merged = merge(labels1, labels2)
        assert merged is not labels1
        assert merged is not labels2
        assert labels1 == {"a": "1", "b": "2"}
        assert labels2 == {"b": "3"}

        merged["d"] = "5"
        assert "d" not in labels1
        assert "d" not in labels2

    @pytest.mark.parametrize(
        "labels1, labels2",
        itertools.product(SAMPLE_SETS, repeat=2),
    )
    def test_right_biased(
        self,
        labels1: dict[str, str],
        labels2: dict[str, str],
    ) -> None:
        set1, set2 = LabelSet(labels1), LabelSet(labels2)
        merged = merge(set1, set2)
        for key in set2:
            assert merged.get(key) == set2.get(key)
        for key in set1.keys() - set2.keys():
            assert merged.get(key) == set1.get(key)


class TestEquals:
    @pytest.mark.parametrize(
        "labels1, labels2, expected",
        (
            ({}, {}, True),
            ({"a": "1"}, {"a": "1"}, True),
            ({"a": "1", "b": "2"}, {"b": "2", "a": "1"}, True),
            ({"a": "1"}, {}, False),
            ({"a": "1"}, {"a": "2"}, False),
            ({"a": "1"}, {"b": "1"}, False),
            ({"a": "1"}, {"a": "1", "b": "2"}, False),
            ({"a": ""}, {"b": ""}, False),
        ),
    )
    def test_equals(
        self,
        labels1: dict[str, str],
        labels2: dict[str, str],
        expected: bool,
    ) -> None:
        assert equals(LabelSet(labels1), LabelSet(labels2)) == expected
        assert equals(LabelSet(labels2), LabelSet(labels1)) == expected

    @pytest.mark.parametrize("labels", SAMPLE_SETS)
    def test_self(self, labels: dict[str, str]) -> None:
        assert equals(LabelSet(labels), LabelSet(labels))


class TestParseSelector:
    @pytest.mark.parametrize(
        "s, expected",
        (
            ("", {}),
            ("a=b", {"a": "b"}),
            ("a=b,c=d", {"a": "b", "c": "d"}),
            ("  a = b ", {"a": "b"}),
            ("a=b , c = d", {"a": "b", "c": "d"}),
            ("a=", {"a": ""}),
            ("a=,b=", {"a": "", "b": ""}),
            ("example.com/release=stable", {"example.com/release": "stable"}),
            # Repeated key takes the last value.
            ("a=b,a=c", {"a": "c"}),
        ),
    )
    def test_parse(self, s: str, expected: dict[str, str]) -> None:
        result = parse_selector(s)
        assert isinstance(result, ParseResult)
        assert result.ok
        assert result.error is None
        assert isinstance(result.labels, LabelSet)
        assert result.labels == expected

    def test_empty(self) -> None:
        assert parse_selector("") == (LabelSet(), None)

    @pytest.mark.parametrize(
        "s, token, partial",
        (
            ("a", "a", {}),
            ("a=b=c", "a=b=c", {}),
            ("x=y,a=b=c", "a=b=c", {"x": "y"}),
            ("x=y,a", "a", {"x": "y"}),
            ("x=y,", "", {"x": "y"}),
            (",x=y", "", {}),
            ("x=y,,z=w", "", {"x": "y"}),
            ("x=y,z=w,a=b=c,d=e", "a=b=c", {"x": "y", "z": "w"}),
        ),
    )
    def test_syntax_error(
        self,
        s: str,
        token: str,
        partial: dict[str, str],
    ) -> None:
        labels, error = parse_selector(s)
        assert isinstance(error, SelectorSyntaxError)
        assert isinstance(error, LabelError)
        assert error.token == token
        assert str(error) == f"invalid selector: {token!r}"
        assert labels == partial

    @pytest.mark.parametrize(
        "s, field, value, partial",
        (
            ("_a=b", "", "_a", {}),
            ("=b", "", "", {}),
            ("a=b!", "[a]", "b!", {}),
            ("x=y,a=b c", "[a]", "b c", {"x": "y"}),
            ("x=y,a b=c", "", "a b", {"x": "y"}),
            ("x=y,z=w,a=@,d=e", "[a]", "@", {"x": "y", "z": "w"}),
        ),
    )
    def test_validation_error(
        self,
        s: str,
        field: str,
        value: str,
        partial: dict[str, str],
    ) -> None:
        labels, error = parse_selector(s)
        assert isinstance(error, LabelValidationError)
        assert error.field == field
        assert error.value == value
        assert labels == partial

    def test_first_error_wins(self) -> None:
        _, error = parse_selector("_a=b,c")
        assert isinstance(error, LabelValidationError)

        _, error = parse_selector("c,_a=b")
        assert isinstance(error, SelectorSyntaxError)

    def test_key_checked_before_value(self) -> None:
        _, error = parse_selector("_a=b!")
        assert isinstance(error, LabelValidationError)
        assert error.value == "_a"

    def test_path(self) -> None:
        path = FieldPath("spec").child("selector")

        _, error = parse_selector("_a=b", path=path)
        assert error is not None
        assert str(error).startswith("spec.selector: Invalid value: '_a'")

        _, error = parse_selector("a=b!", path=path)
        assert error is not None
        assert str(error).startswith("spec.selector[a]: Invalid value: 'b!'")

    def test_unwrap(self) -> None:
        assert parse_selector("a=b").unwrap() == {"a": "b"}

        result = parse_selector("x=y,a")
        assert not result.ok
        with pytest.raises(SelectorSyntaxError, match="invalid selector: 'a'"):
            result.unwrap()

    @pytest.mark.parametrize("labels", SAMPLE_SETS)
    def test_round_trip(self, labels: dict[str, str]) -> None:
        original = LabelSet(labels)
        parsed = parse_selector(str(original)).unwrap()
        assert equals(parsed, original)

    def test_round_trip_prefixed_keys(self) -> None:
        original = LabelSet(
            {"example.com/tier": "frontend", "app": "web", "version": "v1.2.3"}
        )
        assert equals(parse_selector(str(original)).unwrap(), original)
