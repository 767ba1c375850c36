"""
Deliverable quantity rules.

A commitment item expands into ``item.quantity`` deliverables per template,
unless ``item.metadata.deliverable_overrides`` names the template:

    {"deliverable_overrides": {"17": {"quantity": 5}}}

The overrides map is parsed into typed ``DeliverableOverride`` records up
front. Malformed metadata raises ``ValidationError`` with code
``invalid_deliverable_overrides``; it never falls back to the default
quantity silently.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass

from fulfillment.core.exceptions import ValidationError

OVERRIDES_KEY = "deliverable_overrides"
_INVALID = "invalid_deliverable_overrides"


@dataclass(frozen=True)
class DeliverableOverride:
    """Per-template override record. ``quantity=None`` keeps the item quantity."""

    template_id: int
    quantity: int | None = None


def _as_template_id(key, item_id) -> int:
    if isinstance(key, bool):
        raise ValidationError(
            f"override key {key!r} is not a template id",
            code=_INVALID, detail={"commitment_item_id": item_id, "key": str(key)},
        )
    if isinstance(key, int):
        return key
    if isinstance(key, str) and key.strip().isdigit():
        return int(key.strip())
    raise ValidationError(
        f"override key {key!r} is not a template id",
        code=_INVALID, detail={"commitment_item_id": item_id, "key": str(key)},
    )


def _as_override_quantity(value, item_id, template_id) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(
            f"override quantity for template {template_id} must be a number",
            code=_INVALID, detail={"commitment_item_id": item_id, "template_id": template_id},
        )
    if not math.isfinite(value) or value != int(value) or value < 0:
        raise ValidationError(
            f"override quantity for template {template_id} must be a non-negative integer",
            code=_INVALID, detail={"commitment_item_id": item_id, "template_id": template_id},
        )
    return int(value)


def parse_deliverable_overrides(metadata, item_id=None) -> dict[int, DeliverableOverride]:
    """Parse ``metadata.deliverable_overrides`` into ``{template_id: DeliverableOverride}``.

    Args:
        metadata: The item's metadata (dict or None).
        item_id: Source item id, only used in error details.

    Raises:
        ValidationError: metadata or the overrides map is not shaped as above.
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValidationError(
            "commitment item metadata must be an object",
            code=_INVALID, detail={"commitment_item_id": item_id},
        )

    raw = metadata.get(OVERRIDES_KEY)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(
            "deliverable_overrides must map template ids to override records",
            code=_INVALID, detail={"commitment_item_id": item_id},
        )

    overrides: dict[int, DeliverableOverride] = {}
    for key, record in raw.items():
        template_id = _as_template_id(key, item_id)
        if not isinstance(record, dict):
            raise ValidationError(
                f"override for template {template_id} must be an object",
                code=_INVALID, detail={"commitment_item_id": item_id, "template_id": template_id},
            )
        quantity = _as_override_quantity(record.get("quantity"), item_id, template_id)
        if template_id in overrides:
            raise ValidationError(
                f"template {template_id} is overridden twice",
                code=_INVALID, detail={"commitment_item_id": item_id, "template_id": template_id},
            )
        overrides[template_id] = DeliverableOverride(template_id=template_id, quantity=quantity)
    return overrides


def coerce_item_quantity(value) -> int:
    """Item quantity as a non-negative int. None counts as 1; values <= 0 give 0."""
    if value is None:
        return 1
    try:
        qty = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, qty)


def final_quantity(item_quantity, override: DeliverableOverride | None) -> int:
    """Number of deliverables for one (item, template) pair."""
    if override is not None and override.quantity is not None:
        return override.quantity
    return coerce_item_quantity(item_quantity)
