"""Kubernetes label selector parsing.

Supports the equality-based and set-based forms accepted by
``kubectl get nodes -l``:

    role=edge, tier!=canary, zone in (a,b), env notin (dev), gpu, !spot, cores>4
"""

import re
from dataclasses import dataclass
from typing import Mapping, Tuple

from ..errors import InvalidSelector
from .models import Member

_NAME = r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?"
_NAME_RE = re.compile(rf"^{_NAME}$")
_PREFIX_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

_TOKEN = r"[^\s!=<>(),]+"
_SET_RE = re.compile(rf"^\s*(?P<key>{_TOKEN})\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)\s*$")
_EQ_RE = re.compile(rf"^\s*(?P<key>{_TOKEN})\s*(?P<op>==|!=|=)\s*(?P<value>[^\s!=<>(),]*)\s*$")
_CMP_RE = re.compile(rf"^\s*(?P<key>{_TOKEN})\s*(?P<op>[<>])\s*(?P<value>-?\d+)\s*$")
_EXISTS_RE = re.compile(rf"^\s*(?P<neg>!)?\s*(?P<key>{_TOKEN})\s*$")

OP_EQUALS = "="
OP_NOT_EQUALS = "!="
OP_IN = "in"
OP_NOT_IN = "notin"
OP_EXISTS = "exists"
OP_DOES_NOT_EXIST = "!"
OP_GREATER_THAN = "gt"
OP_LESS_THAN = "lt"


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: Tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        value = labels.get(self.key)

        if self.operator == OP_EXISTS:
            return present
        if self.operator == OP_DOES_NOT_EXIST:
            return not present
        if self.operator in (OP_EQUALS, OP_IN):
            return present and value in self.values
        if self.operator in (OP_NOT_EQUALS, OP_NOT_IN):
            return not present or value not in self.values

        if not present:
            return False
        try:
            number = int(value)
        except ValueError:
            return False
        bound = int(self.values[0])
        if self.operator == OP_GREATER_THAN:
            return number > bound
        return number < bound


@dataclass(frozen=True)
class Selector:
    text: str = ""
    requirements: Tuple[Requirement, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.requirements

    def matches(self, member: Member) -> bool:
        return all(r.matches(member.labels) for r in self.requirements)

    def __call__(self, member: Member) -> bool:
        return self.matches(member)

    def __str__(self):
        return self.text


def parse_selector(text: str) -> Selector:
    if text is None or not text.strip():
        return Selector()

    requirements = tuple(_parse_requirement(text, part) for part in _split(text))
    return Selector(text=text.strip(), requirements=requirements)


def _split(text: str):
    parts = []
    depth = 0
    current = []
    for char in text:
        if char == "(":
            depth += 1
            if depth > 1:
                raise InvalidSelector(text, "nested parentheses")
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise InvalidSelector(text, "unbalanced parentheses")
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)

    if depth != 0:
        raise InvalidSelector(text, "unbalanced parentheses")
    parts.append("".join(current))
    return parts


def _parse_requirement(text: str, part: str) -> Requirement:
    if not part.strip():
        raise InvalidSelector(text, "empty requirement")

    match = _SET_RE.match(part)
    if match:
        key = _validate_key(text, match.group("key"))
        raw_values = [v.strip() for v in match.group("values").split(",")]
        if raw_values == [""]:
            raise InvalidSelector(text, f"no values for {key} {match.group('op')}")
        values = tuple(_validate_value(text, v) for v in raw_values)
        operator = OP_IN if match.group("op") == "in" else OP_NOT_IN
        return Requirement(key=key, operator=operator, values=values)

    match = _EQ_RE.match(part)
    if match:
        key = _validate_key(text, match.group("key"))
        value = _validate_value(text, match.group("value"))
        operator = OP_NOT_EQUALS if match.group("op") == "!=" else OP_EQUALS
        return Requirement(key=key, operator=operator, values=(value,))

    match = _CMP_RE.match(part)
    if match:
        key = _validate_key(text, match.group("key"))
        operator = OP_GREATER_THAN if match.group("op") == ">" else OP_LESS_THAN
        return Requirement(key=key, operator=operator, values=(match.group("value"),))

    match = _EXISTS_RE.match(part)
    if match:
        key = _validate_key(text, match.group("key"))
        operator = OP_DOES_NOT_EXIST if match.group("neg") else OP_EXISTS
        return Requirement(key=key, operator=operator)

    raise InvalidSelector(text, f"unable to parse requirement {part.strip()!r}")


def _validate_key(text: str, key: str) -> str:
    prefix, _, name = key.rpartition("/")
    if "/" in key and (not prefix or len(prefix) > 253 or not _PREFIX_RE.match(prefix)):
        raise InvalidSelector(text, f"invalid label key prefix {prefix!r}")
    if len(name) > 63 or not _NAME_RE.match(name):
        raise InvalidSelector(text, f"invalid label key {key!r}")
    return key


def _validate_value(text: str, value: str) -> str:
    if value and (len(value) > 63 or not _NAME_RE.match(value)):
        raise InvalidSelector(text, f"invalid label value {value!r}")
    return value
