"""
Seed a demo legacy schema for local runs and integration tests.

Creates a handful of tables and a view shaped like an old accounting system
(customers, invoices, an empty audit table) in `SOURCE_SCHEMA` and loads them
with deterministic pseudo-random rows via Postgres COPY.
"""

from __future__ import annotations

import random
import sys
import time
from datetime import UTC, date, datetime, timedelta
from typing import Iterator, Tuple

import psycopg
import typer
from psycopg import sql

from legacy_export.bridge.postgres import build_dsn
from legacy_export.config import get_settings

app = typer.Typer(help="Create and load a demo legacy schema (COPY).")

CustomerRow = Tuple[str, str, str, date, bool]
InvoiceRow = Tuple[int, str, date, str, datetime]

_REGIONS = ["NORTH", "SOUTH", "EAST", "WEST"]

_DDL = """
CREATE TABLE {schema}."AR_Customer" (
    "CustomerNo" varchar(20) PRIMARY KEY,
    "CustomerName" varchar(60),
    "Region" varchar(10),
    "DateEstablished" date,
    "Active" boolean
);
CREATE TABLE {schema}."AR_InvoiceHistory" (
    "InvoiceNo" integer PRIMARY KEY,
    "CustomerNo" varchar(20),
    "InvoiceDate" date,
    "Amount" numeric(12, 2),
    "PostedAt" timestamptz
);
CREATE TABLE {schema}."SY_AuditLog" (
    "EntryNo" integer,
    "Message" text
);
CREATE VIEW {schema}."AR_ActiveCustomers" AS
    SELECT "CustomerNo", "CustomerName", "Region"
    FROM {schema}."AR_Customer" WHERE "Active";
"""


def _customer_rows(rows: int, seed: int) -> Iterator[CustomerRow]:
    rng = random.Random(seed)
    start = date(1995, 1, 1)
    for i in range(rows):
        yield (
            f"C{i:07d}",
            f"Customer {rng.randint(1, 1_000_000)}",
            rng.choice(_REGIONS),
            start + timedelta(days=rng.randint(0, 9_000)),
            rng.random() < 0.8,
        )


def _invoice_rows(rows: int, customers: int, seed: int) -> Iterator[InvoiceRow]:
    rng = random.Random(seed + 1)
    posted = datetime(2020, 1, 1, tzinfo=UTC)
    for i in range(rows):
        yield (
            i + 1,
            f"C{rng.randrange(max(customers, 1)):07d}",
            date(2020, 1, 1) + timedelta(days=rng.randint(0, 1_500)),
            f"{rng.uniform(1, 50_000):.2f}",
            posted + timedelta(minutes=rng.randint(0, 2_000_000)),
        )


def seed_schema(dsn: str, schema: str, customers: int, invoices: int, seed: int) -> None:
    """Drop and recreate `schema`, then load the demo tables."""
    ident = sql.Identifier(schema)
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(ident))
            cur.execute(sql.SQL("CREATE SCHEMA {}").format(ident))
            cur.execute(sql.SQL(_DDL).format(schema=ident))

            with cur.copy(
                sql.SQL('COPY {}."AR_Customer" FROM STDIN').format(ident)
            ) as copy:
                for row in _customer_rows(customers, seed):
                    copy.write_row(row)
            with cur.copy(
                sql.SQL('COPY {}."AR_InvoiceHistory" FROM STDIN').format(ident)
            ) as copy:
                for row in _invoice_rows(invoices, customers, seed):
                    copy.write_row(row)
        conn.commit()


@app.command()
def main(
    customers: int = typer.Option(2_500, "--customers", "-c", help="AR_Customer rows."),
    invoices: int = typer.Option(10_000, "--invoices", "-i", help="AR_InvoiceHistory rows."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    schema: str | None = typer.Option(None, "--schema", help="Target schema (default SOURCE_SCHEMA)."),
    dsn: str | None = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Recreate the demo legacy schema and load it.
    """
    settings = get_settings()
    target = schema or settings.source_schema
    start = time.perf_counter()
    typer.echo(f"Seeding schema '{target}' ({customers:,} customers, {invoices:,} invoices)")
    seed_schema(dsn or build_dsn(settings), target, customers, invoices, seed)
    typer.echo(f"Seeded in {time.perf_counter() - start:.2f}s.")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
