#!/usr/bin/env python3
"""
Data Integrity Check Script.

Validates that:
  1. No orphaned records (tenant_id references an existing tenant)
  2. Cross-table consistency (child.tenant_id matches parent.tenant_id)
  3. Every orchestrated commitment's deliverables form a single chain:
     N deliverables → N-1 edges, no branching, no cross-commitment edges

Usage:
    python scripts/check_tenant_integrity.py
    APP_ENV=production python scripts/check_tenant_integrity.py
"""

import logging
import os
import sys

from sqlalchemy.exc import SQLAlchemyError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger("integrity_check")

ALL_TENANT_TABLES = [
    "offerings", "deliverable_templates",
    "commitments", "commitment_items", "commitment_events",
    "deliverables", "deliverable_dependencies", "deliverable_events",
    "orchestration_runs",
]

# (child_table, child_fk, parent_table)
PARENT_CHILD_CHECKS = [
    ("deliverable_templates", "offering_entity_id", "offerings"),
    ("commitment_items", "commitment_id", "commitments"),
    ("commitment_items", "offering_entity_id", "offerings"),
    ("commitment_events", "commitment_id", "commitments"),
    ("deliverables", "commitment_id", "commitments"),
    ("deliverables", "entity_id", "offerings"),
    ("deliverable_dependencies", "deliverable_id", "deliverables"),
    ("deliverable_dependencies", "depends_on_deliverable_id", "deliverables"),
    ("deliverable_events", "deliverable_id", "deliverables"),
    ("orchestration_runs", "commitment_id", "commitments"),
]


def check_chain_shapes(db):
    """Return the number of commitments whose deliverables are not one linear chain."""
    errors = 0

    cross = db.session.execute(db.text("""
        SELECT COUNT(*) FROM deliverable_dependencies e
        JOIN deliverables a ON a.id = e.deliverable_id
        JOIN deliverables b ON b.id = e.depends_on_deliverable_id
        WHERE e.deleted_at IS NULL AND a.commitment_id != b.commitment_id
    """)).scalar()
    if cross:
        logger.error("  ❌ %d dependency edges cross commitments!", cross)
        errors += 1

    rows = db.session.execute(db.text("""
        SELECT d.commitment_id,
               COUNT(DISTINCT d.id) AS deliverables,
               COUNT(DISTINCT e.id) AS edges
        FROM deliverables d
        LEFT JOIN deliverable_dependencies e
               ON e.deliverable_id = d.id AND e.deleted_at IS NULL
        WHERE d.deleted_at IS NULL
        GROUP BY d.commitment_id
    """)).fetchall()

    for row in rows:
        expected = max(row.deliverables - 1, 0)
        if row.edges != expected:
            logger.error(
                "  ❌ commitment %-8s %d deliverables, %d edges (expected %d)",
                row.commitment_id, row.deliverables, row.edges, expected,
            )
            errors += 1

    for column, label in (("deliverable_id", "predecessors"), ("depends_on_deliverable_id", "successors")):
        branching = db.session.execute(db.text(f"""
            SELECT COUNT(*) FROM (
                SELECT {column} FROM deliverable_dependencies
                WHERE deleted_at IS NULL
                GROUP BY {column} HAVING COUNT(*) > 1
            ) b
        """)).scalar()
        if branching:
            logger.error("  ❌ %d deliverables have more than one %s", branching, label)
            errors += 1

    if errors == 0:
        logger.info("  ✅ %d commitments with deliverables, all single chains", len(rows))
    return errors


def main():
    from fulfillment import create_app
    from fulfillment.models import db

    app = create_app(os.getenv("APP_ENV", "development"))

    with app.app_context():
        logger.info("=" * 60)
        logger.info("Fulfillment Data Integrity Check")
        logger.info("=" * 60)

        errors = 0

        # ─── Check 1: Valid tenant references ────────────────────────
        logger.info("\n[Check 1] Verify tenant_id references valid tenant")
        for table in ALL_TENANT_TABLES:
            try:
                orphan_count = db.session.execute(db.text(f"""
                    SELECT COUNT(*) FROM {table}
                    WHERE tenant_id NOT IN (SELECT id FROM tenants)
                """)).scalar()
            except SQLAlchemyError as exc:
                logger.error("  ❌ %-30s query failed: %s", table, exc)
                db.session.rollback()
                errors += 1
                continue

            if orphan_count > 0:
                logger.error("  ❌ %-30s %d records reference non-existent tenant!", table, orphan_count)
                errors += 1
            else:
                logger.info("  ✅ %-30s ok", table)

        # ─── Check 2: Parent-child tenant_id consistency ─────────────
        logger.info("\n[Check 2] Parent-child tenant_id consistency")
        for child, fk_col, parent in PARENT_CHILD_CHECKS:
            try:
                mismatch = db.session.execute(db.text(f"""
                    SELECT COUNT(*) FROM {child} c
                    JOIN {parent} p ON p.id = c.{fk_col}
                    WHERE c.tenant_id != p.tenant_id
                """)).scalar()
            except SQLAlchemyError as exc:
                logger.error("  ❌ %s.%s query failed: %s", child, fk_col, exc)
                db.session.rollback()
                errors += 1
                continue

            if mismatch > 0:
                logger.error("  ❌ %-25s %-26s → %-12s %d mismatched tenant_id!", child, fk_col, parent, mismatch)
                errors += 1
            else:
                logger.info("  ✅ %-25s %-26s → %-12s consistent", child, fk_col, parent)

        # ─── Check 3: Dependency chain shape ─────────────────────────
        logger.info("\n[Check 3] Deliverable dependency chains")
        try:
            errors += check_chain_shapes(db)
        except SQLAlchemyError as exc:
            logger.error("  ❌ chain check failed: %s", exc)
            db.session.rollback()
            errors += 1

        # ─── Report ─────────────────────────────────────────────────
        logger.info("\n" + "=" * 60)
        logger.info("RESULT: %d errors", errors)
        if errors == 0:
            logger.info("✅ Data integrity check PASSED")
        else:
            logger.error("❌ Data integrity check FAILED: %d issues", errors)
        logger.info("=" * 60)

        return errors


if __name__ == "__main__":
    sys.exit(1 if main() else 0)
