"""CLI tools for ClientFlow administration."""

import json
from uuid import UUID

import click

from clientflow.db.models import Organization
from clientflow.db.session import SessionLocal
from clientflow.services import job_service, reminder_service, snapshot_service
from clientflow.utils.timezones import resolve_timezone


@click.group()
def cli():
    """ClientFlow CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--timezone", "tz_name", default="UTC", help="IANA timezone (default: UTC)")
def create_org(name: str, slug: str, tz_name: str):
    """
    Create an organization (tenant).

    Example:
        clientflow create-org --name "Acme Dental" --slug acme --timezone America/Chicago
    """
    slug = slug.lower().strip()
    if not slug.replace("-", "").replace("_", "").isalnum():
        raise click.ClickException("Slug must be alphanumeric (with optional hyphens/underscores)")
    if resolve_timezone(tz_name).key != tz_name:
        raise click.ClickException(f"Unknown timezone '{tz_name}'")

    with SessionLocal() as db:
        existing = db.query(Organization).filter(Organization.slug == slug).first()
        if existing:
            raise click.ClickException(f"Organization with slug '{slug}' already exists")

        org = Organization(name=name, slug=slug, timezone=tz_name)
        db.add(org)
        db.commit()
        db.refresh(org)

        click.echo(f"✓ Created organization: {name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"  Slug: {slug}")
        click.echo(f"  Timezone: {tz_name}")


@cli.command()
@click.option("--org-id", default=None, help="Limit the scan to one organization")
def scan_reminders(org_id: str | None):
    """Run the appointment reminder scan once."""
    with SessionLocal() as db:
        stats = reminder_service.scan_appointment_reminders(
            db, org_id=UUID(org_id) if org_id else None
        )
    click.echo(
        f"✓ Checked {stats['appointments_checked']} appointments, "
        f"queued {stats['jobs_created']} reminders "
        f"({stats['duplicates_skipped']} already queued)"
    )


@cli.command()
def schedule_snapshots():
    """Queue yesterday's daily snapshot for every organization."""
    with SessionLocal() as db:
        stats = snapshot_service.schedule_daily_snapshots(db)
    click.echo(
        f"✓ Queued {stats['jobs_created']} snapshot jobs "
        f"for {stats['orgs_checked']} organizations "
        f"({stats['duplicates_skipped']} already queued)"
    )


@cli.command()
@click.option("--org-id", default=None, help="Limit stats to one organization")
def queue_stats(org_id: str | None):
    """Print queue counts by status and type as JSON."""
    with SessionLocal() as db:
        stats = job_service.get_queue_stats(db, org_id=UUID(org_id) if org_id else None)
    click.echo(json.dumps(stats, indent=2, sort_keys=True))


@cli.command()
@click.option("--job-id", required=True, help="Dead job to requeue")
def requeue_job(job_id: str):
    """Requeue a dead-lettered job with a fresh attempt budget."""
    with SessionLocal() as db:
        job = job_service.get_job(db, UUID(job_id))
        if not job:
            raise click.ClickException(f"Job {job_id} not found")
        try:
            job_service.requeue_dead_job(db, job)
        except ValueError as e:
            raise click.ClickException(str(e))
    click.echo(f"✓ Requeued job {job_id}")


if __name__ == "__main__":
    cli()
