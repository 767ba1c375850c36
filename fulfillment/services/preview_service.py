"""
Deliverables preview.

Shows what orchestration would generate for a set of draft items, before
the commitment exists or is activated. Pure read: nothing is written.
Uses the same quantity and override rules as the orchestrator.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from fulfillment.core.exceptions import NotFoundError, ValidationError
from fulfillment.models.catalog import Offering
from fulfillment.services.orchestration_service import load_templates
from fulfillment.services.overrides import final_quantity, parse_deliverable_overrides

logger = logging.getLogger(__name__)

UNSPECIFIED_RESOURCE = "unspecified"


def _parse_offering_id(raw, index: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ValidationError(
            f"items[{index}].offering_id must be an integer",
            code="invalid_preview_items", detail={"index": index},
        )
    if isinstance(raw, str):
        if not raw.strip().isdigit():
            raise ValidationError(
                f"items[{index}].offering_id must be an integer",
                code="invalid_preview_items", detail={"index": index},
            )
        raw = int(raw.strip())
    if raw <= 0:
        raise ValidationError(
            f"items[{index}].offering_id must be positive",
            code="invalid_preview_items", detail={"index": index},
        )
    return raw


def preview_deliverables(tenant_id: int, items) -> dict:
    """Plan deliverables for draft items ``[{offering_id, quantity?, metadata?}]``.

    Returns:
        dict with ``lines`` (one per item/template pair), ``total_deliverables``
        and ``resource_totals`` (estimated minutes per resource type,
        largest first).

    Raises:
        ValidationError: items malformed (``invalid_preview_items``) or
            overrides malformed (``invalid_deliverable_overrides``).
        NotFoundError: an offering is missing or in another tenant.
    """
    if not isinstance(items, list):
        raise ValidationError("items must be a list", code="invalid_preview_items")

    lines = []
    minutes_by_resource: dict[str, int] = defaultdict(int)
    count_by_resource: dict[str, int] = defaultdict(int)

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(
                f"items[{index}] must be an object",
                code="invalid_preview_items", detail={"index": index},
            )
        offering_id = _parse_offering_id(item.get("offering_id"), index)
        offering = Offering.get_for_tenant(tenant_id, offering_id)
        if offering is None or offering.is_deleted:
            raise NotFoundError("Offering", offering_id, tenant_id, code="offering_not_found")

        overrides = parse_deliverable_overrides(item.get("metadata"))
        for tpl in load_templates(tenant_id, offering_id):
            qty = final_quantity(item.get("quantity"), overrides.get(tpl.id))
            per_unit = tpl.estimated_minutes or 0
            resource = tpl.required_resource_type or UNSPECIFIED_RESOURCE
            minutes_by_resource[resource] += per_unit * qty
            count_by_resource[resource] += qty
            lines.append({
                "item_index": index,
                "offering_id": offering_id,
                "offering_name": offering.name,
                "template_id": tpl.id,
                "template_name": tpl.name,
                "quantity": qty,
                "estimated_minutes": tpl.estimated_minutes,
                "total_minutes": per_unit * qty,
                "required_resource_type": tpl.required_resource_type,
            })

    resource_totals = sorted(
        (
            {"required_resource_type": r, "total_minutes": m, "deliverables": count_by_resource[r]}
            for r, m in minutes_by_resource.items()
        ),
        key=lambda row: (-row["total_minutes"], row["required_resource_type"]),
    )
    logger.debug(
        "Preview planned %d lines for %d items", len(lines), len(items),
        extra={"tenant_id": tenant_id},
    )
    return {
        "lines": lines,
        "total_deliverables": sum(line["quantity"] for line in lines),
        "resource_totals": resource_totals,
    }
