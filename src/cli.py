#!/usr/bin/env python3
"""
WizardDAO Command Line Interface.

Provides commands for running and inspecting the WizardDAO engine:
    - serve: Start the API server
    - check: Verify installation and configuration
    - info: Display system information
    - simulate: Run a seeded mint / fusion / revenue / claim session in memory

Usage:
    wizarddao serve [--host HOST] [--port PORT] [--debug] [--production]
    wizarddao check
    wizarddao info
    wizarddao simulate [--holders N] [--rounds N] [--seed N]
    wizarddao --version
"""

import argparse
import json
import os
import random
import sys

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "wizard_engine.py")):
    sys.path.insert(0, os.path.dirname(__file__))

from wizard_config import ENGINE_VERSION


def cmd_serve(args):
    """Start the WizardDAO API server."""
    from dotenv import load_dotenv

    from monitoring import configure_logging

    load_dotenv()
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = args.port or int(os.getenv("PORT", 5000))
    debug = args.debug or os.getenv("FLASK_DEBUG", "").lower() == "true"

    print(f"Starting WizardDAO API server on {host}:{port}")

    if args.production:
        # Use gunicorn for production
        try:
            import gunicorn.app.base
        except ImportError:
            print("Error: gunicorn not installed. Install with: pip install wizarddao[production]")
            sys.exit(1)

        class StandaloneApplication(gunicorn.app.base.BaseApplication):
            """Gunicorn WSGI application wrapper for production deployment."""

            def __init__(self, app, options=None):
                self.options = options or {}
                self.application = app
                super().__init__()

            def load_config(self):
                for key, value in self.options.items():
                    if key in self.cfg.settings and value is not None:
                        self.cfg.set(key.lower(), value)

            def load(self):
                return self.application

        # One worker: the engine lives in process memory
        options = {
            "bind": f"{host}:{port}",
            "workers": 1,
            "threads": args.threads or int(os.getenv("THREADS", 4)),
            "worker_class": "gthread",
            "timeout": 120,
            "accesslog": "-",
            "errorlog": "-",
        }
        StandaloneApplication(_get_flask_app(), options).run()
    else:
        # Use Flask development server
        _get_flask_app().run(host=host, port=port, debug=debug)


def _get_flask_app():
    """Get the Flask application instance."""
    from api import create_app

    return create_app()


def cmd_check(args):
    """Check installation and configuration."""
    print("WizardDAO Installation Check")
    print("=" * 40)

    checks = []

    # Check engine configuration
    try:
        from wizard_config import EngineConfig
        from wizard_exceptions import WizardEngineError

        try:
            EngineConfig.from_env()
            checks.append(("Engine configuration", "OK"))
        except WizardEngineError as e:
            checks.append(("Engine configuration", f"FAIL: {e.message}"))
    except ImportError as e:
        checks.append(("Engine configuration", f"FAIL: {e}"))

    # Check API
    try:
        from api import create_app  # noqa: F401

        checks.append(("Flask API", "OK"))
    except ImportError as e:
        checks.append(("Flask API", f"FAIL: {e}"))

    # Check storage
    try:
        from storage import StorageError, get_storage_backend

        try:
            storage = get_storage_backend()
            backend_name = storage.__class__.__name__
            status = "OK" if storage.is_available() else "WARN (not available)"
            checks.append((f"Storage ({backend_name})", status))
        except StorageError as e:
            checks.append(("Storage", f"FAIL: {e}"))
    except ImportError as e:
        checks.append(("Storage", f"FAIL: {e}"))

    # Check scaling
    try:
        from scaling import get_lock_manager

        lock_type = get_lock_manager().__class__.__name__
        checks.append((f"Scaling (Lock: {lock_type})", "OK"))
    except ImportError as e:
        checks.append(("Scaling", f"FAIL: {e}"))

    # Price feed source
    if os.getenv("WIZARD_PRICE_FEED_URL"):
        checks.append(("Price feed (HTTP)", "OK"))
    else:
        checks.append(("Price feed", "SKIP (static price, WIZARD_PRICE_FEED_URL not set)"))

    # Check optional dependencies
    try:
        import gunicorn  # noqa: F401

        checks.append(("Gunicorn support", "OK"))
    except ImportError:
        checks.append(("Gunicorn support", "SKIP (gunicorn not installed)"))

    # Print results
    print()
    all_ok = True
    for name, status in checks:
        icon = "✓" if status == "OK" else ("○" if "SKIP" in status else "✗")
        print(f"  {icon} {name}: {status}")
        if "FAIL" in status:
            all_ok = False

    print()
    if all_ok:
        print("All checks passed!")
        return 0
    else:
        print("Some checks failed. See above for details.")
        return 1


def cmd_info(args):
    """Display system information."""
    import platform

    print("WizardDAO System Information")
    print("=" * 40)

    print(f"Version: {ENGINE_VERSION}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    # Environment
    print()
    print("Configuration:")
    print(f"  STORAGE_BACKEND: {os.getenv('STORAGE_BACKEND', 'json (default)')}")
    print(f"  WIZARD_STATE_FILE: {os.getenv('WIZARD_STATE_FILE', 'wizard_state.json (default)')}")
    print(f"  WIZARD_CONFIG_FILE: {os.getenv('WIZARD_CONFIG_FILE', 'not set')}")
    print(f"  WIZARD_PRICE_FEED_URL: {'configured' if os.getenv('WIZARD_PRICE_FEED_URL') else 'not set'}")
    print(f"  WIZARD_API_KEY: {'configured' if os.getenv('WIZARD_API_KEY') else 'not set'}")
    print(f"  LOG_LEVEL: {os.getenv('LOG_LEVEL', 'INFO (default)')}")
    print(f"  LOG_FORMAT: {os.getenv('LOG_FORMAT', 'console (default)')}")

    # Storage info
    print()
    print("Storage:")
    try:
        from storage import StorageError, get_storage_backend

        storage = get_storage_backend()
        info = {**storage.get_info(), **storage.get_summary()}
        for key, value in info.items():
            print(f"  {key}: {value}")
    except (StorageError, OSError) as e:
        print(f"  Error: {e}")

    return 0


# =============================================================================
# Simulation
# =============================================================================


class SimulatedClock:
    """Manually advanced clock for in-memory sessions."""

    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


def run_simulation(holders: int = 5, rounds: int = 10, seed: int = 42) -> dict:
    """
    Drive a seeded session against in-memory collaborators.

    Each round every holder tries to mint, pending requests are delivered in
    shuffled order, revenue arrives, holders with three same-tier instances
    fuse, and everyone claims once their cooldown has expired.

    Returns:
        Summary with statistics, invariant results and rejection counts
    """
    from collaborators import InMemoryAssetSource, QueuedRandomnessProvider, StaticPriceFeed, StaticReservesOracle
    from decay_curve import PRECISION
    from wizard_config import EngineConfig, ItemIdentity, Tier
    from wizard_engine import WizardEngine
    from wizard_exceptions import WizardEngineError

    rng = random.Random(seed)
    clock = SimulatedClock()
    names = [f"holder-{i}" for i in range(holders)]
    asset_source = InMemoryAssetSource({name: 10_000_000 * PRECISION for name in names})
    price_feed = StaticPriceFeed(600 * 10**8, updated_at=clock.now)
    randomness = QueuedRandomnessProvider()

    engine = WizardEngine(
        config=EngineConfig(),
        randomness=randomness,
        price_feed=price_feed,
        asset_source=asset_source,
        reserves_oracle=StaticReservesOracle(10_000_000 * PRECISION, 1_000 * PRECISION),
        clock=clock,
    )

    rejections: dict[str, int] = {}
    invariant_failures = 0

    def attempt(operation, *args):
        try:
            return operation(*args)
        except WizardEngineError as e:
            reason = e.context.details.get("reason", type(e).__name__)
            rejections[reason] = rejections.get(reason, 0) + 1
            return None

    def deliver_all():
        pending = list(randomness.pending)
        rng.shuffle(pending)
        for handle in pending:
            attempt(randomness.deliver, handle, rng.getrandbits(256))

    for _ in range(rounds):
        price_feed.set_price(price_feed.price, clock.now)

        for name in names:
            attempt(engine.submit_mint, name, rng.choice(sorted(engine.config.categories)))
        deliver_all()

        attempt(engine.receive_revenue, rng.randint(1, 50) * PRECISION, "simulation")
        clock.advance(engine.config.cooldown_seconds)

        for name in names:
            for identity_key, count in engine.collectibles.holdings(name).items():
                identity = ItemIdentity.from_key(identity_key)
                if count >= 3 and identity.tier < Tier.top():
                    attempt(engine.submit_fusion, name, identity.category, int(identity.tier))
                    break
        deliver_all()
        clock.advance(engine.config.cooldown_seconds)

        for name in names:
            attempt(engine.claim, name)

        if not all(engine.check_invariants().values()):
            invariant_failures += 1

    return {
        "seed": seed,
        "holders": holders,
        "rounds": rounds,
        "statistics": engine.get_statistics(),
        "invariants": engine.check_invariants(),
        "invariant_failures": invariant_failures,
        "rejections": rejections,
    }


def cmd_simulate(args):
    """Run an in-memory session and print the outcome."""
    from monitoring import configure_logging

    configure_logging(level=args.log_level)
    summary = run_simulation(holders=args.holders, rounds=args.rounds, seed=args.seed)

    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        stats = summary["statistics"]
        print("WizardDAO Simulation")
        print("=" * 40)
        print(f"Seed: {summary['seed']}  Holders: {summary['holders']}  Rounds: {summary['rounds']}")
        print()
        print(f"  Mints fulfilled:   {stats['mints_fulfilled']}")
        print(f"  Fusions succeeded: {stats['fusions_succeeded']}")
        print(f"  Fusions failed:    {stats['fusions_failed']}")
        print(f"  Claims:            {stats['claims']}")
        print(f"  Total shares:      {stats['total_shares']}")
        print(f"  Decay factor:      {stats['decay_factor']}")
        print(f"  Balance held:      {stats['balance']}")
        print()
        print("Rejections:")
        for reason, count in sorted(summary["rejections"].items()):
            print(f"  {reason}: {count}")
        print()
        print("Invariants:")
        for name, ok in summary["invariants"].items():
            print(f"  {'✓' if ok else '✗'} {name}")

    return 0 if summary["invariant_failures"] == 0 else 1


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="wizarddao",
        description="WizardDAO - share and dividend accounting engine",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {ENGINE_VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", help="Host to bind to (default: 0.0.0.0)")
    serve_parser.add_argument("--port", type=int, help="Port to bind to (default: 5000)")
    serve_parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    serve_parser.add_argument(
        "--production", action="store_true", help="Use gunicorn for production"
    )
    serve_parser.add_argument("--threads", type=int, help="Worker threads (production mode)")

    # check command
    subparsers.add_parser("check", help="Check installation and configuration")

    # info command
    subparsers.add_parser("info", help="Display system information")

    # simulate command
    simulate_parser = subparsers.add_parser("simulate", help="Run a seeded in-memory session")
    simulate_parser.add_argument("--holders", type=int, default=5, help="Number of holders (default: 5)")
    simulate_parser.add_argument("--rounds", type=int, default=10, help="Number of rounds (default: 10)")
    simulate_parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    simulate_parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    simulate_parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")

    args = parser.parse_args()

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "check":
        sys.exit(cmd_check(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    elif args.command == "simulate":
        sys.exit(cmd_simulate(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
