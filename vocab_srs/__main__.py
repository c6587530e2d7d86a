"""CLI interface for Vocab SRS.

Usage:
    python -m vocab_srs plan                    Build (or show) today's session plan
    python -m vocab_srs review                  Work through today's session
    python -m vocab_srs stats                   Show your statistics
    python -m vocab_srs due                     Show how many cards are due
    python -m vocab_srs add "word" "definition" Add a vocabulary item
    python -m vocab_srs preview CARD_ID         Show what each rating would do
"""

import argparse
import asyncio
import logging
import time
from pathlib import Path

from sqlalchemy import and_, select

from backend.api.stats_router import (
    count_due,
    count_unseen,
    mastery_distribution,
    recent_retention,
    review_dates,
    streak_length,
)
from backend.config import settings, utcnow
from backend.database import async_session, engine
from backend.models import Base
from backend.models.learner import Learner
from backend.models.vocabulary import CATEGORIES, TRAVEL, Vocabulary
from backend.srs.drills import DrillGenerator, default_drill_generator
from backend.srs.errors import NotFoundError, NothingToScheduleError
from backend.srs.fsrs import FSRS, Rating, format_next_review
from backend.srs.planner import ItemType
from backend.srs.session import preview_card, start_session

logger = logging.getLogger(__name__)

RATING_PROMPT = "  Rate [1=Forgot 2=Hard 3=Good 4=Easy]: "


async def ensure_db() -> None:
    """Create the data directory and tables if they don't exist."""
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_learner() -> int:
    """Ensure there's a default learner and return the ID."""
    async with async_session() as db:
        stmt = select(Learner).order_by(Learner.id).limit(1)
        result = await db.execute(stmt)
        learner = result.scalar_one_or_none()
        if learner:
            return learner.id

        learner = Learner(name="Learner")
        db.add(learner)
        await db.commit()
        await db.refresh(learner)
        return learner.id


def _drill_generator(args: argparse.Namespace) -> DrillGenerator | None:
    return None if getattr(args, "no_drills", False) else default_drill_generator()


def _print_llm_usage(generator: DrillGenerator | None) -> None:
    estimate = generator.cost_estimate() if generator is not None else None
    if not estimate or not (estimate["input_tokens"] or estimate["output_tokens"]):
        return
    print(
        f"  Drill generation used {estimate['input_tokens']:.0f} input"
        f" + {estimate['output_tokens']:.0f} output tokens"
        f" (~${estimate['estimated_cost_usd']:.4f})\n"
    )


async def cmd_plan(args: argparse.Namespace) -> None:
    """Build today's plan and print it."""
    await ensure_db()
    learner_id = await ensure_learner()

    generator = _drill_generator(args)
    async with async_session() as db:
        try:
            session = await start_session(db, learner_id, drill_generator=generator)
        except NothingToScheduleError:
            print("\n  Nothing to study today: no reviews due and no new words left.\n")
            return

        plan = session.plan
        print(f"\n  Plan for {plan.session_date} (session {session.session_id})")
        print(
            f"  {plan.review_count} review + {plan.learn_count} new"
            f" + {plan.practice_count} practice, {session.remaining} remaining\n"
        )
        for i, item in enumerate(plan.items, 1):
            vocabulary = await db.get(Vocabulary, item.vocabulary_id)
            word = vocabulary.word if vocabulary else f"#{item.vocabulary_id}"
            marker = ">" if i - 1 == session.row.current_index else " "
            print(f"  {marker} {i:>2}. {item.type.value:<8} {word}")
        print()
    _print_llm_usage(generator)


def _read_rating() -> Rating | None:
    while True:
        raw = input(RATING_PROMPT).strip().lower()
        if raw == "q":
            return None
        if raw in {"1", "2", "3", "4"}:
            return Rating(int(raw))
        print("  Please enter 1-4 (or q to quit).")


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive session over today's plan."""
    await ensure_db()
    learner_id = await ensure_learner()

    generator = _drill_generator(args)
    async with async_session() as db:
        try:
            session = await start_session(db, learner_id, drill_generator=generator)
        except NothingToScheduleError:
            print("\n  Nothing to study today. You're all caught up!\n")
            return

        if session.is_complete:
            print("\n  Today's session is already complete.\n")
            return

        print("\n  Study Session")
        print(f"  {session.remaining} items left today. Type 'q' to quit.\n")

        while (item := session.current_item) is not None:
            position = f"  [{session.row.current_index + 1}/{len(session.plan.items)}]"
            vocabulary = await db.get(Vocabulary, item.vocabulary_id)
            start_time = time.time()

            if item.type == ItemType.PRACTICE and item.practice is not None:
                print(f"{position} (PRACTICE)")
                print(f"  {item.practice.sentence}")
                for j, option in enumerate(item.practice.options, 1):
                    print(f"    {j}. {option}")
                response = input("\n  Your answer: ").strip()
                if response.lower() == "q":
                    break
                if response.isdigit() and 1 <= int(response) <= len(item.practice.options):
                    response = item.practice.options[int(response) - 1]
                duration_ms = int((time.time() - start_time) * 1000)
                correct = await session.answer_practice(db, response, duration_ms)
                print("  Correct!\n" if correct else f"  Answer: {item.practice.answer}\n")
                continue

            label = " (NEW)" if item.type == ItemType.LEARN else ""
            word = vocabulary.word if vocabulary else f"#{item.vocabulary_id}"
            print(f"{position}{label} {word}")
            if vocabulary and vocabulary.pronunciation:
                print(f"  /{vocabulary.pronunciation}/")
            if input("  Press enter to reveal (q to quit) ").strip().lower() == "q":
                break
            if vocabulary:
                print(f"  {vocabulary.definition}")
                if vocabulary.definition_zh:
                    print(f"  {vocabulary.definition_zh}")

            rating = _read_rating()
            if rating is None:
                break
            duration_ms = int((time.time() - start_time) * 1000)
            _, result = await session.rate(db, rating, duration_ms)
            print(f"  Next review {format_next_review(result.new_state.due, result.reviewed_at)}\n")

        stats = session.stats
        if session.is_complete:
            print("\n  Session Complete!")
        else:
            print("\n  Session paused. Run review again to continue.")
        print(
            f"  Learned: {stats.new_words_learned}  Reviewed: {stats.words_reviewed}"
            f"  Practice correct: {stats.practice_correct}\n"
        )
    _print_llm_usage(generator)


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show learner statistics."""
    await ensure_db()
    learner_id = await ensure_learner()
    now = utcnow()

    async with async_session() as db:
        mastery = await mastery_distribution(db, learner_id)
        due = await count_due(db, learner_id, now)
        retention = await recent_retention(db, learner_id, now)
        streak = streak_length(await review_dates(db, learner_id), now.date())

    print("\n  Vocab SRS Statistics")
    print(f"  {'Total cards:':<20} {sum(mastery.values())}")
    print(f"  {'Due now:':<20} {due}")
    for level, count in mastery.items():
        print(f"  {level.capitalize() + ':':<20} {count}")
    if retention is not None:
        print(f"  {'Retention (30d):':<20} {retention:.0%}")
    print(f"  {'Streak:':<20} {streak} days")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a vocabulary item to the catalog."""
    await ensure_db()

    async with async_session() as db:
        existing = (
            await db.execute(
                select(Vocabulary).where(
                    and_(Vocabulary.word == args.word, Vocabulary.category == args.category)
                )
            )
        ).scalar_one_or_none()

        if existing:
            print(f"  '{args.word}' already exists (id={existing.id}).")
            return

        vocabulary = Vocabulary(
            word=args.word,
            definition=args.definition,
            definition_zh=args.zh or None,
            pronunciation=args.pronunciation or None,
            category=args.category,
            subcategory=args.subcategory,
            difficulty_tier=args.tier,
            is_phrase=" " in args.word.strip(),
        )
        db.add(vocabulary)
        await db.commit()
        print(f"  Added '{args.word}' ({args.category}, tier {args.tier}, id={vocabulary.id}).")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()
    learner_id = await ensure_learner()

    async with async_session() as db:
        due = await count_due(db, learner_id, utcnow())
        unseen = await count_unseen(db, learner_id)

    print(f"  {due} cards due, {unseen} new words available")


async def cmd_preview(args: argparse.Namespace) -> None:
    """Show the outcome of each rating for a card."""
    await ensure_db()
    learner_id = await ensure_learner()
    now = utcnow()

    async with async_session() as db:
        try:
            outcomes = await preview_card(db, learner_id, args.card_id, FSRS.from_settings(), now)
        except NotFoundError as exc:
            print(f"  {exc}")
            return

    print(f"\n  Card {args.card_id}")
    for rating, result in sorted(outcomes.items()):
        state = result.new_state
        print(
            f"  {rating.name.capitalize():<7} -> {state.state.name.lower():<10}"
            f" {format_next_review(state.due, now)}"
        )
    print()


def main() -> None:
    """Entry point for the Vocab SRS CLI application."""
    parser = argparse.ArgumentParser(
        prog="vocab_srs",
        description="Spaced repetition vocabulary trainer",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # plan
    plan_parser = subparsers.add_parser("plan", help="Build or show today's session plan")
    plan_parser.add_argument("--no-drills", action="store_true", help="Skip practice drills")

    # review
    review_parser = subparsers.add_parser("review", help="Work through today's session")
    review_parser.add_argument("--no-drills", action="store_true", help="Skip practice drills")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # add
    add_parser = subparsers.add_parser("add", help="Add a vocabulary item")
    add_parser.add_argument("word", help="English word or phrase")
    add_parser.add_argument("definition", help="English definition")
    add_parser.add_argument("-c", "--category", choices=CATEGORIES, default=TRAVEL)
    add_parser.add_argument("-s", "--subcategory", default="general")
    add_parser.add_argument("-t", "--tier", type=int, choices=(1, 2, 3), default=1)
    add_parser.add_argument("--zh", default="", help="Chinese translation")
    add_parser.add_argument("-p", "--pronunciation", default="", help="IPA pronunciation")

    # preview
    preview_parser = subparsers.add_parser("preview", help="Show what each rating would do")
    preview_parser.add_argument("card_id", type=int)

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "plan": cmd_plan,
        "review": cmd_review,
        "stats": cmd_stats,
        "due": cmd_due,
        "add": cmd_add,
        "preview": cmd_preview,
    }

    logger.debug("Using database %s", settings.database_url)
    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
