"""Contact list resolution.

A list's members are the organization's contacts matching every
dynamic filter, plus the manually added contacts, minus the contacts
marked inactive on the list.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ListFilterComparison
from db.models.contact import Contact, ContactList

logger = logging.getLogger(__name__)

FILTERABLE_FIELDS = ("name", "email", "phone", "company")


def _filter_clause(field: str, comparison: str, value: Any):
    """Build a WHERE clause for one list filter; None when unsupported."""
    if field not in FILTERABLE_FIELDS:
        logger.warning(f"Ignoring list filter on unsupported field: {field}")
        return None
    try:
        comparison = ListFilterComparison(comparison)
    except ValueError:
        logger.warning(f"Ignoring unknown list filter comparison: {comparison}")
        return None

    col = getattr(Contact, field)
    text = "" if value is None else str(value)

    if comparison == ListFilterComparison.EQUALS:
        return col == text
    if comparison == ListFilterComparison.NOT_EQUALS:
        return col != text
    if comparison == ListFilterComparison.CONTAINS:
        return col.ilike(f"%{text}%")
    if comparison == ListFilterComparison.STARTS_WITH:
        return col.ilike(f"{text}%")
    if comparison == ListFilterComparison.ENDS_WITH:
        return col.ilike(f"%{text}")
    if comparison == ListFilterComparison.GREATER_THAN:
        return col > text
    return col < text


async def resolve_list_contacts(
    db: AsyncSession,
    contact_list: ContactList,
    organization_id: str,
) -> list[str]:
    """Return the IDs of the contacts currently in ``contact_list``."""
    query = select(Contact.id).where(Contact.organization_id == organization_id)

    for item in contact_list.filters or []:
        if not isinstance(item, dict):
            continue
        clause = _filter_clause(item.get("field"), item.get("comparison"), item.get("value"))
        if clause is not None:
            query = query.where(clause)

    result = await db.execute(query.order_by(Contact.created_at.asc()))
    contact_ids = list(result.scalars().all())

    seen = set(contact_ids)
    manual_ids = [cid for cid in contact_list.manual_contact_ids or [] if cid not in seen]
    if manual_ids:
        # Manual entries must still be contacts of this organization
        existing = await db.execute(
            select(Contact.id).where(
                Contact.organization_id == organization_id,
                Contact.id.in_(manual_ids),
            )
        )
        known = set(existing.scalars().all())
        manual_ids = [cid for cid in manual_ids if cid in known]
    for contact_id in manual_ids:
        if contact_id not in seen:
            contact_ids.append(contact_id)
            seen.add(contact_id)

    inactive = set(contact_list.inactive_contact_ids or [])
    resolved = [cid for cid in contact_ids if cid not in inactive]

    logger.info(
        f"List {contact_list.id} resolved to {len(resolved)} contacts "
        f"(manual: {len(contact_list.manual_contact_ids or [])}, "
        f"excluded: {len(inactive)})"
    )
    return resolved
