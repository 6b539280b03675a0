"""Label and field selectors and the filters built on them."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Sequence, TypeVar

T = TypeVar("T")

_KEY_RE = re.compile(r"^[A-Za-z0-9_./-]+$")
_VALUE_RE = re.compile(r"^[A-Za-z0-9_.-]*$")
_SET_RE = re.compile(r"^(\S+)\s+(in|notin)\s*\((.*)\)$")


class Operator(str, Enum):
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator in (Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.IN):
            return present and labels[self.key] in self.values
        if self.operator in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return not present or labels[self.key] not in self.values
        if self.operator is Operator.EXISTS:
            return present
        return not present

    def __str__(self) -> str:
        if self.operator is Operator.EXISTS:
            return self.key
        if self.operator is Operator.DOES_NOT_EXIST:
            return "!" + self.key
        if self.operator in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {self.operator.value} ({','.join(self.values)})"
        return f"{self.key}{self.operator.value}{self.values[0]}"


@dataclass(frozen=True)
class LabelSelector:
    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def add(self, requirements: Iterable[Requirement]) -> "LabelSelector":
        return LabelSelector(self.requirements + tuple(requirements))

    def __str__(self) -> str:
        return ",".join(str(r) for r in self.requirements)


@dataclass(frozen=True)
class FieldSelector:
    terms: tuple[tuple[str, str, str], ...] = ()

    def matches(self, fields: Mapping[str, str]) -> bool:
        for name, op, value in self.terms:
            actual = fields.get(name, "")
            if (op == "=") != (actual == value):
                return False
        return True


@dataclass(frozen=True)
class ListOptions:
    label_selector: LabelSelector | None = None
    field_selector: FieldSelector | None = None


def everything() -> LabelSelector:
    """A selector that matches every label set."""
    return LabelSelector()


def _split_top(text: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise ValueError(f"invalid label key {key!r}")
    return key


def _check_value(value: str) -> str:
    if not _VALUE_RE.match(value):
        raise ValueError(f"invalid label value {value!r}")
    return value


def _parse_one(part: str) -> Requirement:
    m = _SET_RE.match(part)
    if m:
        values = tuple(_check_value(v.strip()) for v in m.group(3).split(","))
        return Requirement(_check_key(m.group(1)), Operator(m.group(2)), values)
    for op in (Operator.NOT_EQUALS, Operator.DOUBLE_EQUALS, Operator.EQUALS):
        if op.value in part:
            key, value = part.split(op.value, 1)
            return Requirement(_check_key(key.strip()), op, (_check_value(value.strip()),))
    if part.startswith("!"):
        return Requirement(_check_key(part[1:].strip()), Operator.DOES_NOT_EXIST)
    return Requirement(_check_key(part), Operator.EXISTS)


def parse_requirements(text: str) -> list[Requirement]:
    """Parse a label query such as 'a=b,c!=d,e in (f,g)'."""
    if not text.strip():
        return []
    requirements = []
    for part in _split_top(text):
        part = part.strip()
        if not part:
            raise ValueError(f"empty requirement in {text!r}")
        requirements.append(_parse_one(part))
    return requirements


def selector_from_set(mapping: Mapping[str, str]) -> LabelSelector:
    return LabelSelector(tuple(Requirement(k, Operator.EQUALS, (mapping[k],)) for k in sorted(mapping)))


def field_selector_from_set(mapping: Mapping[str, str]) -> FieldSelector:
    return FieldSelector(tuple((k, "=", mapping[k]) for k in sorted(mapping)))


def object_meta_fields(name: str, namespace: str, namespace_scoped: bool) -> dict[str, str]:
    fields = {"metadata.name": name}
    if namespace_scoped:
        fields["metadata.namespace"] = namespace
    return fields


def filter_nodes(nodes: Sequence[T], selector: FieldSelector) -> list[T]:
    return [n for n in nodes if selector.matches(object_meta_fields(n.name, "", False))]


def filter_pod_metadata(objs: Sequence[T], selector: FieldSelector) -> list[T]:
    return [o for o in objs if selector.matches(object_meta_fields(o.name, o.namespace, True))]