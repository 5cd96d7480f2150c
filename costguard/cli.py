"""CLI tools for CostGuard administration."""

import click
from sqlalchemy import select

from costguard.core.security import create_access_token
from costguard.db.enums import Role
from costguard.db.models import User
from costguard.db.session import SessionLocal
from costguard.services import deduction_service, escalation_service, payout_service


@click.group()
def cli():
    """CostGuard CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Display name")
@click.option("--email", required=True, help="Email address")
@click.option(
    "--role",
    required=True,
    type=click.Choice([r.value for r in Role]),
    help="Staff role",
)
def create_user(name: str, email: str, role: str):
    """
    Create a staff user and print a bearer token for it.

    Example:
        python -m costguard.cli create-user --name "Ada" --email ada@example.com --role fc
    """
    db = SessionLocal()
    try:
        email = email.lower().strip()
        existing = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if existing:
            click.echo(f"❌ User already exists: {email}")
            return

        user = User(name=name, email=email, role=role)
        db.add(user)
        db.commit()

        click.echo(f"✓ Created user {email} with role: {role}")
        click.echo(f"  ID: {user.id}")
        click.echo(f"  Token: {create_access_token(user.id, role)}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email")
def issue_token(email: str):
    """Print a fresh bearer token for an existing active user."""
    db = SessionLocal()
    try:
        user = db.execute(
            select(User).where(User.email == email.lower().strip())
        ).scalar_one_or_none()
        if not user or not user.is_active:
            click.echo(f"❌ Active user not found: {email}")
            return
        click.echo(create_access_token(user.id, user.role))
    finally:
        db.close()


@cli.command()
@click.option("--cutoff-hours", default=None, type=int, help="Override PAYOUT_AUTO_REVERT_HOURS")
def auto_revert_payouts(cutoff_hours: int | None):
    """
    Revert payouts left pending past the cutoff.

    Example:
        python -m costguard.cli auto-revert-payouts --cutoff-hours 48
    """
    db = SessionLocal()
    try:
        result = payout_service.auto_revert_stale(db, cutoff_hours)
        click.echo(f"✓ Reverted {result.reverted_count} payouts (cutoff {result.cutoff_hours}h)")
        if result.skipped_count:
            click.echo(f"  Skipped (changed concurrently): {result.skipped_count}")
        for error in result.errors:
            click.echo(f"❌ Payout {error['payout_id']}: {error['error']}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def expire_escalations():
    """Mark overdue pending escalations as expired."""
    db = SessionLocal()
    try:
        expired = escalation_service.expire_stale_escalations(db)
        click.echo(f"✓ Expired {expired} escalations")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def process_deductions():
    """
    Process pending salary deductions whose deduction date has passed.

    Example:
        python -m costguard.cli process-deductions
    """
    db = SessionLocal()
    try:
        result = deduction_service.process_due_deductions(db)
        click.echo(
            f"✓ Processed {result.processed_count} salary deductions "
            f"(total {result.total_amount:,.2f})"
        )
        for error in result.errors:
            click.echo(f"❌ Deduction {error['deduction_id']}: {error['error']}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
