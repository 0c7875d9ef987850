"""
Operator command line for the verification service.

Commands:
  - init-db: create the policy store tables
  - allocate: reserve the next policy number for a company and type
  - parse: split a policy number into its components
  - number-stats: count and highest sequence per policy type
  - next-numbers: preview the next number for every configured type
  - verify: run one verification attempt (officer or company-scoped path)
  - sync-company: run a manual synchronization for one company
  - sweep: expire stale policies now
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional, TypeVar

import typer
from pydantic import BaseModel

from verification_service.errors import VerificationServiceError
from verification_service.models.schema import VerificationMethod, VerificationRequest
from verification_service.persistence import init_db
from verification_service.services import NumberingService, SyncService, VerificationEngine
from verification_service.utils.logging import get_logger, log_event

app = typer.Typer(help="Policy verification and insurer synchronization tooling.")
logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def _run(action: Callable[[], T]) -> T:
    """Execute a service call, turning domain errors into a non-zero exit."""
    try:
        result = action()
    except VerificationServiceError as exc:
        typer.echo(f"✗ {exc.code}: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(result.model_dump_json(indent=2))
    return result


@app.command("init-db")
def init_db_command() -> None:
    """Create database tables."""
    init_db()
    typer.echo("✓ Database tables created successfully")


@app.command()
def allocate(
    company_id: int = typer.Argument(..., help="Owning company id"),
    policy_type: str = typer.Argument("auto", help="Policy type, e.g. auto or health"),
    year: Optional[int] = typer.Option(None, help="Policy year (defaults to the current year)"),
) -> None:
    """Reserve the next policy number."""
    result = _run(lambda: NumberingService().allocate(company_id, policy_type, year))
    log_event(logger, "policy_number_allocated", policy_number=result.policy_number)


@app.command()
def parse(policy_number: str) -> None:
    """Split a policy number into prefix, type, year and sequence."""
    _run(lambda: NumberingService().parse(policy_number))


@app.command("number-stats")
def number_stats(company_id: int, year: Optional[int] = typer.Option(None)) -> None:
    """Show count and last sequence per policy type."""
    _run(lambda: NumberingService().stats(company_id, year))


@app.command("next-numbers")
def next_numbers(company_id: int, year: Optional[int] = typer.Option(None)) -> None:
    """Preview the next number per policy type without reserving it."""
    _run(lambda: NumberingService().next_for_all_types(company_id, year))


@app.command()
def verify(
    policy_number: str,
    holder_name: Optional[str] = typer.Option(None, help="Holder name as claimed"),
    expiry_date: Optional[str] = typer.Option(None, help="Claimed expiry date (YYYY-MM-DD)"),
    company_id: Optional[int] = typer.Option(None, help="Restrict to one company (public path)"),
    officer_id: Optional[int] = typer.Option(None, help="Verifying officer"),
    method: VerificationMethod = typer.Option(VerificationMethod.MANUAL),
    location: Optional[str] = typer.Option(None),
) -> None:
    """Verify a claimed policy and print the result."""
    try:
        request = VerificationRequest(
            policy_number=policy_number,
            holder_name=holder_name,
            expiry_date=date.fromisoformat(expiry_date) if expiry_date else None,
            company_id=company_id,
            officer_id=officer_id,
            method=method,
            location=location,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _run(lambda: VerificationEngine().verify(request))


@app.command("sync-company")
def sync_company(company_id: int) -> None:
    """Run a synchronization for one company now."""
    result = _run(lambda: SyncService().trigger_manual_sync(company_id))
    if not result.success:
        raise typer.Exit(code=2)


@app.command()
def sweep() -> None:
    """Expire active policies past their expiry date."""
    count = SyncService().sweep_expired()
    typer.echo(f"✓ Marked {count} policies as expired")


if __name__ == "__main__":
    app()
