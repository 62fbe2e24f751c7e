"""Merge-variable resolution for outbound message content.

Message bodies carry ``{{name}}`` placeholders. Each occurrence is
resolved, in source order, to a value taken from:

1. an explicit step mapping (``manual`` literal, or a named contact
   ``property``), when one exists for the placeholder name;
2. the well-known contact fields (name, email, phone, company);
3. the contact's ``custom_properties`` bag.

Anything unresolved becomes an empty string. Missing personalization
never blocks delivery.

Usage:
    values = resolve_variables(template.body, contact, step.variable_mappings)
    text = personalize(template.body, values)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from core.constants import VariableSource

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")

STANDARD_FIELDS = ("name", "email", "phone", "company")


# ─── Data Types ────────────────────────────────────────────────

@dataclass(frozen=True)
class ContactData:
    """Read-only view of a contact used for personalization and sending."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    custom_properties: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, contact) -> "ContactData":
        """Build from a ``Contact`` ORM row."""
        return cls(
            id=contact.id,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            company=contact.company,
            custom_properties=dict(contact.custom_properties or {}),
        )


@dataclass(frozen=True)
class VariableMapping:
    """Explicit placeholder override configured on a workflow step."""
    variable: str
    source: VariableSource
    value: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Optional["VariableMapping"]:
        """Parse a stored mapping; returns None for malformed entries."""
        variable = (data or {}).get("variable")
        if not variable:
            return None
        try:
            source = VariableSource(data.get("source", VariableSource.PROPERTY.value))
        except ValueError:
            return None
        value = data.get("value")
        return cls(variable=variable, source=source, value="" if value is None else str(value))


def parse_mappings(raw: Optional[list]) -> list[VariableMapping]:
    """Parse the JSON list stored on a step, dropping malformed entries."""
    mappings = []
    for item in raw or []:
        if isinstance(item, VariableMapping):
            mappings.append(item)
        elif isinstance(item, dict):
            mapping = VariableMapping.from_dict(item)
            if mapping is not None:
                mappings.append(mapping)
    return mappings


# ─── Resolution ────────────────────────────────────────────────

def extract_placeholders(content: Optional[str]) -> list[str]:
    """Return placeholder names in source order, duplicates included."""
    if not content:
        return []
    return PLACEHOLDER_PATTERN.findall(content)


def resolve_field(field_name: str, contact: ContactData) -> str:
    """Resolve a field name against a contact, falling back to ''."""
    if field_name in STANDARD_FIELDS:
        return getattr(contact, field_name) or ""
    value = contact.custom_properties.get(field_name)
    if value is None:
        return ""
    return str(value)


def resolve_variables(
    content: Optional[str],
    contact: ContactData,
    mappings: Optional[list] = None,
) -> list[str]:
    """Resolve every placeholder occurrence of ``content`` to a value.

    Args:
        content: Message text containing ``{{name}}`` placeholders
        contact: Contact to read values from
        mappings: Optional explicit mappings (dicts or VariableMapping)

    Returns:
        One string per placeholder occurrence, in source order.
    """
    by_name = {m.variable: m for m in parse_mappings(mappings)}
    values = []
    for name in extract_placeholders(content):
        mapping = by_name.get(name)
        if mapping is None:
            values.append(resolve_field(name, contact))
        elif mapping.source == VariableSource.MANUAL:
            values.append(mapping.value)
        else:
            values.append(resolve_field(mapping.value, contact))
    return values


def personalize(content: Optional[str], values: list[str]) -> str:
    """Substitute resolved values back into ``content`` positionally.

    Placeholders beyond the length of ``values`` are left untouched.
    """
    if not content:
        return content or ""
    position = 0

    def _substitute(match: re.Match) -> str:
        nonlocal position
        index = position
        position += 1
        if index < len(values):
            return values[index]
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, content)


def render(
    content: Optional[str],
    contact: ContactData,
    mappings: Optional[list] = None,
) -> str:
    """Resolve and substitute in one call."""
    return personalize(content, resolve_variables(content, contact, mappings))
