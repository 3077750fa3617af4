from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, NoReturn, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table
from sqlalchemy.orm import Session

from decisionledger.core.config import settings
from decisionledger.core.exceptions import DecisionLedgerError
from decisionledger.database.config import (
    SessionLocal,
    get_db,
    init_db,
    make_engine,
    make_session_factory,
)
from decisionledger.governance.check_conclusion import build_check_report
from decisionledger.governance.compliance import get_framework_catalog
from decisionledger.governance.evidence_score import get_score_label
from decisionledger.services.lookup import get_record, get_vault_for_record
from decisionledger.services.recalculation_service import recalculate_gaps_and_score
from decisionledger.services.record_service import apply_pr_closed
from decisionledger.services.vault_service import get_vault_summary, verify_vault_integrity

app = typer.Typer(add_completion=False, help="DecisionLedger CLI")
console = Console()

DB_URL_OPTION = typer.Option(None, "--db-url", help="Database URL (default: DL_DB_URL)")


# ============================================================
# 小工具：输出
# ============================================================
def _info(msg: str) -> None:
    print(f"[cyan][DL][/cyan] {msg}")


def _ok(msg: str) -> None:
    print(f"[green][DL][OK][/green] {msg}")


def _fail(msg: str, code: int = 1) -> NoReturn:
    print(f"[red][DL][FAIL][/red] {msg}")
    raise typer.Exit(code)


@contextmanager
def _session(db_url: Optional[str]) -> Iterator[Session]:
    factory = make_session_factory(db_url) if db_url else SessionLocal
    yield from get_db(factory)


# ============================================================
# 命令
# ============================================================
@app.command("init-db")
def init_db_command(db_url: Optional[str] = DB_URL_OPTION):
    """Create all tables."""
    url = db_url or settings.DB_URL
    init_db(make_engine(url))
    _ok(f"Tables created: {url}")


@app.command()
def frameworks():
    """List compliance frameworks in the catalogue."""
    catalog = get_framework_catalog()
    table = Table(title="Compliance Frameworks")
    table.add_column("Code")
    table.add_column("Name")
    table.add_column("Controls", justify="right")
    for framework in catalog.frameworks:
        table.add_row(framework.short_code, framework.name, str(len(framework.controls)))
    console.print(table)


@app.command()
def recalculate(
    record_id: str = typer.Argument(..., help="Decision evidence record ID"),
    db_url: Optional[str] = DB_URL_OPTION,
):
    """Recalculate evidence score and gaps for a record."""
    with _session(db_url) as db:
        result = recalculate_gaps_and_score(db, record_id)
    if result is None:
        _fail(f"Record not found: {record_id}")

    _ok(
        f"Score {result.evidence_score}/100 ({get_score_label(result.evidence_score)}), "
        f"status={result.status.value}"
    )
    for gap in result.gaps:
        print(f"  - [{gap.severity.value}] {gap.type.value}: {gap.message}")


@app.command()
def close(
    record_id: str = typer.Argument(..., help="Decision evidence record ID"),
    merged: bool = typer.Option(True, "--merged/--not-merged", help="PR was merged"),
    merged_by: Optional[str] = typer.Option(None, "--merged-by", help="Who merged the PR"),
    db_url: Optional[str] = DB_URL_OPTION,
):
    """Apply a PR close event (seals the evidence vault on merge)."""
    try:
        with _session(db_url) as db:
            result = apply_pr_closed(db, record_id, merged=merged, merged_by=merged_by)
    except DecisionLedgerError as e:
        _fail(str(e))

    _ok(f"Record {result.record_id}: {result.pr_state.value} / {result.status.value}")
    if result.vault_id:
        _info(f"Vault: {result.vault_id}")


@app.command()
def verify(
    vault_id: str = typer.Argument(..., help="Evidence vault ID"),
    db_url: Optional[str] = DB_URL_OPTION,
):
    """Verify the integrity of a sealed evidence vault."""
    with _session(db_url) as db:
        result = verify_vault_integrity(db, vault_id)
    if not result.valid:
        _fail(f"Vault {vault_id} integrity check failed: {result.reason}")
    _ok(f"Vault {vault_id} integrity verified ({result.stored_hash})")


@app.command()
def summary(
    vault_id: str = typer.Argument(..., help="Evidence vault ID"),
    db_url: Optional[str] = DB_URL_OPTION,
):
    """Print a sealed evidence vault summary as JSON."""
    with _session(db_url) as db:
        vault_summary = get_vault_summary(db, vault_id)
    if vault_summary is None:
        _fail(f"Vault not found: {vault_id}")
    typer.echo(vault_summary.model_dump_json(indent=2))


@app.command()
def check(
    record_id: str = typer.Argument(..., help="Decision evidence record ID"),
    db_url: Optional[str] = DB_URL_OPTION,
):
    """Render the check report for a record."""
    with _session(db_url) as db:
        record = get_record(db, record_id)
        if record is None:
            _fail(f"Record not found: {record_id}")
        report = build_check_report(
            record.evidence_score,
            list(record.gaps),
            record.pr_title,
            doc_quality=record.doc_quality,
            audit_readiness=record.audit_readiness,
            record_url=f"{settings.APP_URL}/dashboard/records/{record.id}",
        )
        vault = get_vault_for_record(db, record.id)

    _info(f"{report.conclusion.value.upper()}: {report.title}")
    console.print(report.summary, markup=False, highlight=False)
    if vault is not None:
        _info(f"Sealed vault: {vault.id}")


if __name__ == "__main__":
    app()
