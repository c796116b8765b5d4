"""
Prefect Workflow Orchestration - Invariant Audit

Scheduled sweep of the live database for rows that break business rules
the schema itself does not enforce:
- Order and line total arithmetic
- One default billing / shipping address per user
- Reserved stock within on-hand stock
- Coupon usage caps
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from storefront.database.connection import close_database, get_db, init_database
from storefront.quality.validators import ValidationStatus, audit_database


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="run_table_audits",
    description="Run every table audit against the database",
    retries=2,
    retry_delay_seconds=30,
)
async def run_table_audits() -> dict:
    """Run all table audits and summarise the results"""
    logger = get_run_logger()

    async with get_db() as db:
        results = await audit_database(db)

    summary = {}
    for table, result in results.items():
        summary[table] = {
            "status": result.status.value,
            "passed": result.passed_checks,
            "failed": result.failed_checks,
            "warnings": result.warning_count,
            "failures": [
                {"check": c.name, "message": c.message, "severity": c.severity.value}
                for c in result.checks
                if not c.passed
            ],
        }
        logger.info(f"{table}: {result.status.value} ({result.passed_checks}/{result.total_checks} checks passed)")

    return summary


@task(
    name="send_alert",
    description="Send alert notification",
)
async def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="invariant_audit",
    description="Scheduled audit of storefront business invariants",
)
async def invariant_audit(database_url: Optional[str] = None) -> dict:
    """
    Invariant audit flow.

    Steps:
    1. Connect to the database
    2. Run the table audits
    3. Alert on failed tables
    """
    logger = get_run_logger()

    await init_database(database_url)
    try:
        summary = await run_table_audits()
    finally:
        await close_database()

    failed = [table for table, result in summary.items() if result["status"] == ValidationStatus.FAILED.value]
    if failed:
        await send_alert(
            alert_type="Invariant Violations",
            message=f"Audit failed for: {', '.join(failed)}",
            severity="critical",
        )

    logger.info(f"Invariant audit complete: {len(summary)} tables audited, {len(failed)} failed")
    return {
        "status": "failed" if failed else "success",
        "tables": summary,
    }


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    import asyncio

    asyncio.run(invariant_audit())
