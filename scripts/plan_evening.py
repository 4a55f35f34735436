#!/usr/bin/env python3
"""
Plan an evening from a cellar CSV.

Composes a lineup for a group size (and optionally a dish) and prints the
serving order with the scores behind it.
"""

import argparse
import sys
from pathlib import Path

import pandas as pd
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cellarplan.constants import Protein, Sauce
from cellarplan.food_pairing import matching_rules
from cellarplan.lineup import LineupComposer
from cellarplan.planner import EveningPlanner
from cellarplan.power_formula import power_breakdown
from cellarplan.schema import CollectionFilters, CollectionItem, FoodProfile
from cellarplan.stores import InMemoryCellarStore
from cellarplan.utils import utc_now
from cellarplan.wine_profile import estimate_profile

console = Console()

OWNER_ID = "local"


def load_cellar_csv(path: Path) -> list:
    """Read a cellar CSV into CollectionItems (blank cells become None)."""
    df = pd.read_csv(path, dtype={'id': str, 'wine_id': str})
    df = df.astype(object).where(pd.notna(df), None)

    items = []
    for idx, row in enumerate(df.to_dict('records')):
        if row.get('id') is None:
            row['id'] = str(idx)
        items.append(CollectionItem.model_validate(row))
    return items


def explain_slot(item, food, rules, as_of):
    """Power terms and fired pairing rules, computed the way the composer scored them."""
    profile = estimate_profile(item, as_of=as_of)
    terms = power_breakdown(profile.body, profile.tannin, profile.oak, profile.alcohol_est)
    why = " + ".join(f"{k} {v}" for k, v in terms.items())
    fired = [rule.name for rule in matching_rules(profile, food, rules)]
    if fired:
        why += "\n" + ", ".join(fired)
    return why


def create_lineup_table(lineup, items_by_id, food, explain=False, rules=None, as_of=None):
    """Serving order with readiness, pairing and power per wine."""
    table = Table(
        title="🍷 Tonight's Lineup",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
        title_style="bold white"
    )

    table.add_column("#", justify="right", style="dim", width=3)
    table.add_column("Label", style="magenta", width=13)
    table.add_column("Wine", style="bold white")
    table.add_column("Ready", justify="center", width=6)
    table.add_column("Food", justify="center", width=5)
    table.add_column("Power", justify="center", width=6)
    if explain:
        table.add_column("Why", style="dim white")

    scores = {score.item_id: score for score in lineup.scores}
    for slot in lineup.slots:
        score = scores[slot.item_id]
        power_style = "bold red" if score.heavy else "bold green"
        name = slot.wine_name + (f" {slot.vintage}" if slot.vintage else "")
        row = [
            str(slot.position),
            slot.label,
            name,
            str(score.readiness),
            str(score.pairing),
            f"[{power_style}]{score.power:.1f}[/{power_style}]",
        ]
        if explain:
            row.append(explain_slot(items_by_id[slot.item_id], food, rules, as_of))
        table.add_row(*row)

    return table


def main():
    parser = argparse.ArgumentParser(
        description="Cellarplan Evening Planner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/cellar_example.csv                          Medium group, no food
  %(prog)s data/cellar_example.csv -g large --protein beef  Big night, steak
  %(prog)s data/cellar_example.csv --reds-only --explain    Show the reasoning
        """
    )

    parser.add_argument('csv', type=Path, help='Cellar CSV (one row per bottle entry)')
    parser.add_argument('--group-size', '-g', default='medium',
                        help='small | medium | large (or 2-4, 5-8, 9+)')
    parser.add_argument('--protein', choices=[p.value for p in Protein], help='Main protein of the dish')
    parser.add_argument('--fat', choices=['low', 'med', 'high'], help='Override fat implied by protein')
    parser.add_argument('--sauce', default='none', choices=[s.value for s in Sauce])
    parser.add_argument('--spice', default='low', choices=['low', 'med', 'high'])
    parser.add_argument('--smoke', default='low', choices=['low', 'med', 'high'])
    parser.add_argument('--color', help='Only this color (red, white, rose, sparkling)')
    parser.add_argument('--reds-only', action='store_true', help='Shorthand for --color red')
    parser.add_argument('--min-rating', type=float, help='Minimum community rating')
    parser.add_argument('--high-rating-only', action='store_true', help='Only highly rated wines')
    parser.add_argument('--seed', type=int, help='Seed for reproducible tie-breaking')
    parser.add_argument('--explain', '-e', action='store_true', help='Show power terms and pairing rules')

    args = parser.parse_args()

    if not args.csv.exists():
        console.print(f"[red]✗ {args.csv} not found[/red]")
        sys.exit(1)

    items = load_cellar_csv(args.csv)
    store = InMemoryCellarStore({OWNER_ID: items})
    # One clock reading for scoring and for --explain
    now = utc_now()
    planner = EveningPlanner(store, composer=LineupComposer(seed=args.seed), clock=lambda: now)

    filters = CollectionFilters(
        color=args.color,
        reds_only=args.reds_only,
        min_rating=args.min_rating,
        high_rating_only=args.high_rating_only,
    )
    food = None
    if args.protein:
        food = FoodProfile(protein=args.protein, fat=args.fat, sauce=args.sauce,
                           spice=args.spice, smoke=args.smoke)

    lineup = planner.compose_lineup(OWNER_ID, args.group_size, filters=filters, food=food)
    if lineup.is_empty:
        console.print(Panel(f"[yellow]No lineup: {lineup.reason}[/yellow]", border_style="yellow"))
        sys.exit(0)

    items_by_id = {item.id: item for item in items}
    console.print()
    console.print(create_lineup_table(
        lineup, items_by_id, food, explain=args.explain, rules=planner.composer.rules, as_of=now,
    ))
    console.print(
        f"\n[dim]{len(lineup)} of {lineup.target_count} wines from "
        f"{lineup.candidate_count} candidates[/dim]"
    )


if __name__ == "__main__":
    main()
