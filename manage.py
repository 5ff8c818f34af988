#!/usr/bin/env python3
"""
Takeboard Management CLI

This script provides command-line management for the Takeboard scoring engine:
database setup, the aggregate view, grading, achievements and leaderboards.
"""

import json
import logging

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from takeboard import create_app, db
from takeboard.errors import TakeboardError
from takeboard.models import Achievement, Contest, Pack, Profile, Take
from takeboard.models.take_facts import (
    create_take_facts_view,
    drop_take_facts_view,
    take_facts_view_exists,
)
from takeboard.services.achievement_service import (
    award_for_updated_props,
    check_and_award,
)
from takeboard.services.grading_service import (
    grade_contest,
    list_packs_without_winners,
    set_pack_winners,
)
from takeboard.services.leaderboard_service import (
    get_contest_leaderboard,
    get_leaderboard,
    get_pack_leaderboard,
)
from takeboard.services.scheduler_service import scheduler_service
from takeboard.services.scope_resolver import get_scope_resolver

app = create_app()


@click.group()
def cli():
    """Takeboard Management CLI"""
    pass


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")
        logging.error(f"Database init failed: {e}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        # The view depends on the tables it reads
        drop_take_facts_view(db.session)
        db.drop_all()
        db.create_all()
        get_scope_resolver().reset_probe()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error resetting database: {str(e)}")
        logging.error(f"Database reset failed: {e}")


# Aggregate View Commands
@cli.group()
def view():
    """Aggregate view (v_take_facts) commands"""
    pass


@view.command("create")
@with_appcontext
def create_view():
    """Create or replace the aggregate view"""
    try:
        create_take_facts_view(db.session)
        get_scope_resolver().reset_probe()
        click.echo("✅ Aggregate view created")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error creating view: {str(e)}")
        logging.error(f"View creation failed: {e}")


@view.command("drop")
@with_appcontext
def drop_view():
    """Drop the aggregate view (leaderboards fall back to joins)"""
    try:
        drop_take_facts_view(db.session)
        get_scope_resolver().reset_probe()
        click.echo("✅ Aggregate view dropped")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error dropping view: {str(e)}")
        logging.error(f"View drop failed: {e}")


@view.command("status")
@with_appcontext
def view_status():
    """Show whether the aggregate view exists"""
    if take_facts_view_exists(db.engine):
        click.echo("✅ Aggregate view: present")
    else:
        click.echo("⚠️  Aggregate view: missing (join strategy in use)")


# Grading Commands
@cli.group()
def grade():
    """Grading commands"""
    pass


@grade.command()
@click.argument("contest_id")
@with_appcontext
def contest(contest_id):
    """Grade a contest and link its winner"""
    try:
        result = grade_contest(contest_id)
    except TakeboardError as e:
        db.session.rollback()
        click.echo(f"❌ Error grading contest: {str(e)}")
        logging.error(f"Contest grading failed: {e}")
        return

    if result is None:
        click.echo(f"❌ Contest {contest_id} not found!")
        return
    if result["already_graded"]:
        click.echo(f"⚠️  Contest {contest_id} was already graded")
        return

    winner = result["winner"]
    if winner is None:
        click.echo(f"✅ Contest {contest_id} graded with no winner")
    elif winner["profile_ref"] is None:
        click.echo(
            f"✅ Contest {contest_id} graded; top {winner['subject_key']} "
            f"({winner['points']} pts) has no profile"
        )
    else:
        click.echo(
            f"✅ Contest {contest_id} graded; winner {winner['profile_id']} "
            f"({winner['points']} pts)"
        )


@grade.command("pack-winners")
@click.argument("packs", nargs=-1)
@with_appcontext
def pack_winners(packs):
    """Assign winners to graded packs (all pending packs if none given)"""
    try:
        result = set_pack_winners(list(packs) if packs else None)
    except TakeboardError as e:
        db.session.rollback()
        click.echo(f"❌ Error setting pack winners: {str(e)}")
        logging.error(f"Pack winners failed: {e}")
        return

    click.echo(f"✅ Updated {result['updated_count']} packs")
    for error in result["errors"]:
        click.echo(f"   ⚠️  {error}")


@grade.command("pending-packs")
@with_appcontext
def pending_packs():
    """List graded packs without a winner"""
    packs = list_packs_without_winners()

    if not packs:
        click.echo("No graded packs are missing a winner.")
        return

    click.echo("Packs without winners:")
    for pack in packs:
        click.echo(f"  {pack.pack_id}: {pack.title or '(untitled)'} - {pack.props.count()} props")


# Achievement Commands
@cli.group()
def achievements():
    """Achievement commands"""
    pass


@achievements.command()
@click.argument("profile_id")
@with_appcontext
def check(profile_id):
    """Check and award point milestones for one profile"""
    profile = Profile.get_by_profile_id(profile_id)
    if not profile:
        click.echo(f"❌ Profile {profile_id} not found!")
        return

    try:
        created = check_and_award(profile)
    except TakeboardError as e:
        db.session.rollback()
        click.echo(f"❌ Error checking achievements: {str(e)}")
        logging.error(f"Achievement check failed: {e}")
        return

    if created:
        click.echo(f"✅ Awarded: {', '.join(created)}")
    else:
        click.echo("No new achievements.")


@achievements.command()
@click.argument("prop_ids", nargs=-1, required=True)
@click.option("--timeout", type=float, help="Stop starting new profiles after N seconds")
@with_appcontext
def award(prop_ids, timeout):
    """Award milestones for profiles with takes on the given props"""
    result = award_for_updated_props(list(prop_ids), timeout=timeout)

    for entry in result.results:
        if "error" in entry:
            click.echo(f"   ❌ Profile {entry['profile_ref']}: {entry['error']}")
        else:
            click.echo(
                f"   ✅ Profile {entry['profile_ref']}: {', '.join(entry['achievement_keys'])}"
            )
    if result.truncated:
        click.echo("⚠️  Stopped early (timeout reached)")
    click.echo(f"Done: {len(result.results)} profile result(s)")


# Leaderboard Commands
@cli.group()
def leaderboard():
    """Leaderboard commands"""
    pass


@leaderboard.command()
@click.option("--pack", help="Pack URL, pack id or internal id")
@click.option("--contest", "contest_id", help="Contest id")
@click.option("--team", help="Team slug")
@click.option("--packs", help="Comma separated pack ids")
@click.option("--start", help="Inclusive start (ISO date/time)")
@click.option("--end", help="Exclusive end (ISO date/time)")
@click.option("--limit", type=int, help="Maximum rows")
@click.option("--as-json", is_flag=True, help="Print raw JSON")
@with_appcontext
def show(pack, contest_id, team, packs, start, end, limit, as_json):
    """Print a leaderboard"""
    try:
        if pack:
            result = get_pack_leaderboard(pack, limit=limit, bypass_cache=True)
        elif contest_id:
            result = get_contest_leaderboard(contest_id, limit=limit, bypass_cache=True)
        else:
            pack_ids = [p.strip() for p in (packs or "").split(",") if p.strip()]
            result = get_leaderboard(
                team_slug=team,
                pack_ids=pack_ids,
                start=start,
                end=end,
                limit=limit,
                bypass_cache=True,
            )
    except ValueError as e:
        click.echo(f"❌ Invalid option: {str(e)}")
        return
    except TakeboardError as e:
        click.echo(f"❌ Error building leaderboard: {str(e)}")
        logging.error(f"Leaderboard failed: {e}")
        return

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"🏆 {result['title']}")
    click.echo("=" * 40)
    if not result["leaderboard"]:
        click.echo("No takes yet.")
        return
    for rank, row in enumerate(result["leaderboard"], start=1):
        who = row["profile_id"] or row["subject_key"]
        click.echo(
            f"{rank:>3}. {who:<20} {row['points']:>6} pts  {row['takes']:>4} takes  "
            f"W{row['won']} L{row['lost']} P{row['pushed']}"
        )


# Scheduler Commands
@cli.group()
def jobs():
    """Background job commands"""
    pass


def _scheduler():
    if scheduler_service.app is None:
        scheduler_service.app = current_app._get_current_object()
    return scheduler_service


@jobs.command("status")
@with_appcontext
def jobs_status():
    """Show scheduled jobs and run statistics"""
    info = _scheduler().get_status()

    click.echo(f"⏰ Scheduler: {'running' if info['is_running'] else 'stopped'}")
    for job in info["jobs"]:
        click.echo(f"   {job['id']}: next run {job['next_run'] or '-'} ({job['trigger']})")

    stats = info["stats"]
    click.echo(
        f"Runs: {stats['total_runs']} total, {stats['successful_runs']} ok, "
        f"{stats['failed_runs']} failed"
    )
    click.echo(f"Last sweep: {info['last_sweep_at'] or 'never'}")
    if info["sweep_resume_after"] is not None:
        click.echo(f"⚠️  Sweep resumes after profile {info['sweep_resume_after']}")
    if stats["last_error"]:
        click.echo(f"❌ Last error: {stats['last_error']}")


@jobs.command("run")
@click.argument("job_type", type=click.Choice(["pack_winners", "achievements"]))
@with_appcontext
def jobs_run(job_type):
    """Run a background job now"""
    success, message = _scheduler().force_run(job_type)
    click.echo(f"{'✅' if success else '❌'} {message}")


@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("🏆 Takeboard Status")
    click.echo("=" * 40)

    # Database connection
    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    if take_facts_view_exists(db.engine):
        click.echo("✅ Aggregate view: present")
    else:
        click.echo("⚠️  Aggregate view: missing")

    click.echo(f"👥 Profiles: {Profile.query.count()}")
    click.echo(f"📝 Takes: {Take.query.count()}")

    graded = Pack.query.filter(db.func.lower(Pack.pack_status) == "graded").count()
    click.echo(f"📦 Packs: {graded}/{Pack.query.count()} graded")
    click.echo(f"⏳ Packs awaiting winner: {len(list_packs_without_winners())}")

    contests_graded = Contest.query.filter_by(contest_status="graded").count()
    click.echo(f"🏁 Contests: {contests_graded}/{Contest.query.count()} graded")
    click.echo(f"🎖️  Achievements: {Achievement.query.count()}")


if __name__ == "__main__":
    with app.app_context():
        cli()
