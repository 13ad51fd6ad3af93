"""
Main CLI entry point for the auction draft engine.
"""

import argparse
import logging
import random
import sys
from pathlib import Path

from . import config


def setup_logging(verbose: bool = False):
    """
    Configure logging for the application.

    Args:
        verbose: Enable verbose (DEBUG) logging
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='Auction Draft Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API server
  python -m auction_draft.main --serve --port 8000

  # Export a room's results to CSV
  python -m auction_draft.main --export-results 3f2a9c

  # Play a whole draft offline with the demo template
  python -m auction_draft.main --simulate --seed 42
        """
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        '--serve',
        action='store_true',
        help='Run the HTTP/WebSocket API server'
    )
    mode.add_argument(
        '--export-results',
        metavar='ROOM_ID',
        type=str,
        default=None,
        help='Write the results of a room to CSV'
    )
    mode.add_argument(
        '--simulate',
        action='store_true',
        help='Run a complete offline draft with the built-in demo template'
    )

    parser.add_argument(
        '--host',
        type=str,
        default=config.API_HOST,
        help=f'API host (default: {config.API_HOST})'
    )

    parser.add_argument(
        '--port',
        type=int,
        default=config.API_PORT,
        help=f'API port (default: {config.API_PORT})'
    )

    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output CSV path for --export-results (default: data/output/results_<room>.csv)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Seed for --simulate (random if omitted)'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def run_server(args):
    """Serve the API with uvicorn."""
    import uvicorn

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Auction Draft API on {args.host}:{args.port}")

    uvicorn.run(
        'auction_draft.draft.api_server:app',
        host=args.host,
        port=args.port,
        log_level='debug' if args.verbose else 'info'
    )


def run_export(args):
    """Export one room's results and team table."""
    from .draft.event_store import DraftEventStore, create_room_filepath
    from .draft.room_state_manager import RoomStateManager, get_team_summary

    logger = logging.getLogger(__name__)
    room_id = args.export_results

    event_file = create_room_filepath(Path(config.DRAFT_EVENTS_DIR), room_id)
    if not event_file.exists():
        logger.error(f"No event log for room {room_id} at {event_file}")
        sys.exit(1)

    output_path = Path(args.output or Path(config.OUTPUT_DIR) / f"results_{room_id}.csv")
    count = DraftEventStore(event_file).export_to_csv(output_path)
    logger.info(f"Wrote {count} results to {output_path}")

    state_manager = RoomStateManager(Path(config.DRAFT_CHECKPOINTS_DIR))
    if state_manager.has_checkpoint(room_id):
        room = state_manager.load_checkpoint(room_id)['room']
        teams_path = output_path.with_name(f"teams_{room_id}.csv")
        get_team_summary(room).to_csv(teams_path, index=False)
        logger.info(f"Wrote team summary to {teams_path}")


def run_simulation(args):
    """
    Drive a demo room from WAITING to FINISHED without a server.

    Captains bid at random against the current minimum; every member that
    draws no bid goes through the unsold placement.
    """
    from .bid_pricing import next_min_bid
    from .draft.draft_event import Phase
    from .draft.session_manager import RoomRegistry
    from .draft.templates import DEMO_TEMPLATE

    logger = logging.getLogger(__name__)
    seed = args.seed if args.seed is not None else random.randint(1, config.SEED_MAX)
    rng = random.Random(seed)

    registry = RoomRegistry(persist=False)
    engine = registry.create_from_template(DEMO_TEMPLATE, title='Simulated draft')
    room = engine.room

    for captain in room.captains():
        engine.presence.join(captain.participant_id)

    host = 'host'
    engine.advance_phase(host)
    while room.phase == Phase.CAPTAIN_INTRO:
        engine.next_captain(host)

    engine.start_shuffle(host, seed=seed)
    while not engine.shuffle.is_complete:
        engine.reveal_next(host)
    engine.advance_phase(host)

    while engine.auction.active:
        state = engine.auction.state
        for captain in room.captains():
            if rng.random() < 0.5:
                continue
            team = room.team_for_captain(captain.participant_id)
            minimum = next_min_bid(state.current_price, **room.config.tier_kwargs())
            if room.open_slots(team.team_id) > 0 and minimum <= team.current_points:
                engine.place_bid(captain.participant_id, minimum)

        while engine.tick():
            pass
        if state.leading_team_id is not None:
            engine.resolve(host)
        else:
            engine.pass_item(host)

    outcome = engine.advance_phase(host)
    if not outcome.advanced:
        logger.error(f"Simulation stuck in {outcome.phase.value}: {outcome.reason}")
        sys.exit(1)

    summary = engine.room_summary()
    logger.info("=" * 60)
    logger.info(f"SIMULATION COMPLETE (seed={seed})")
    logger.info("=" * 60)
    for entry in summary['teams']:
        team = entry['team']
        roster = ', '.join(
            f"{m['nickname']} ({summary['sold_prices'].get(m['participant_id'], 0)}p)"
            for m in entry['members']
        )
        logger.info(f"{team['name']}: {team['current_points']}p left | {roster}")
    logger.info("=" * 60)


def main(argv=None):
    """Main execution function with mode branching."""
    args = parse_arguments(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.serve:
            run_server(args)
        elif args.export_results:
            run_export(args)
        else:
            run_simulation(args)
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
    except Exception as e:
        logger.exception(f"Error during execution: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
