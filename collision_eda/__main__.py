"""
Command line entry point.

    python -m collision_eda report   # run the analysis, write the HTML report
    python -m collision_eda serve    # start the dashboard
    python -m collision_eda check    # persons-killed check and the two chi-squared tests
"""

import argparse
import sys
from pathlib import Path

from .config import configure_logging, load_settings
from .errors import CollisionDataError
from .pipeline import run_pipeline


def _banner(title: str) -> None:
    print("=" * 80)
    print(title)
    print("=" * 80)


def _fail(title: str, detail: str) -> None:
    print("\n" + "=" * 80)
    print(f"ERROR: {title}")
    print("=" * 80)
    print(f"\n{detail}")
    print("=" * 80 + "\n")
    raise SystemExit(1)


def cmd_report(settings, args) -> None:
    from .report import write_report

    _banner("GENERATING COLLISION ANALYSIS REPORT")
    analysis = run_pipeline(settings)
    output_file = write_report(analysis, Path(args.output) if args.output else settings.results_dir)
    print()
    print(f"Report saved to: {output_file}")
    print(f"File size: {output_file.stat().st_size / 1024:.1f} KB")


def cmd_check(settings, args) -> None:
    _banner("COLLISION DATA CHECKS")
    analysis = run_pipeline(settings)
    print(f"\nPersons killed: {analysis.killed_check.summary()}")
    if analysis.killed_check.n_mismatching:
        print(analysis.killed_check.mismatches.to_string())
    for title, test in (("factor1 x nkilled", analysis.factor_test),
                        ("BOROUGH x death", analysis.death_test)):
        print(f"\n{title}:")
        print(f"  Test statistic: {test.statistic:.4f}")
        print(f"  DoF: {test.dof}")
        print(f"  N: {test.n:,}")
        print(f"  P-value: {test.p_value:.6g}")


def cmd_serve(settings, args) -> None:
    from . import app as dashboard

    port = args.port or settings.port
    dashboard.configure(settings)
    _banner("NYC COLLISION DASHBOARD")
    print(f"\nStarting server at http://localhost:{port}")
    print(f"   Debug mode: {'ON' if settings.debug else 'OFF'}")
    print(f"   Press Ctrl+C to stop the server\n")
    dashboard.app.run(debug=settings.debug, port=port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="collision_eda", description=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--data-dir", help="directory holding the CSV, census and shapefile inputs")
    parser.add_argument("--csv", help="local collision CSV (skips the download)")
    parser.add_argument("--threshold", type=int, help="collapse contributing factors seen fewer times than this")
    parser.add_argument("--offline", action="store_true", help="never download the CSV")
    sub = parser.add_subparsers(dest="command", required=True)

    p_report = sub.add_parser("report", help="write the HTML report")
    p_report.add_argument("--output", help="directory for the report (default: results dir)")
    p_report.set_defaults(func=cmd_report)

    p_check = sub.add_parser("check", help="print the data checks and association tests")
    p_check.set_defaults(func=cmd_check)

    p_serve = sub.add_parser("serve", help="run the Flask dashboard")
    p_serve.add_argument("--port", type=int)
    p_serve.set_defaults(func=cmd_serve)
    return parser


def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.threshold is not None and args.threshold < 1:
        parser.error("--threshold must be at least 1")
    configure_logging()

    settings = load_settings(Path(args.data_dir) if args.data_dir else None)
    if args.csv:
        settings.csv_path = Path(args.csv)
    if args.threshold is not None:
        settings.rare_threshold = args.threshold
    if args.offline:
        settings.offline = True

    try:
        args.func(settings, args)
    except FileNotFoundError as e:
        _fail("Required data file not found!", f"Missing file: {e}")
    except CollisionDataError as e:
        _fail("Failed to process collision data!",
              f"Error type: {type(e).__name__}\nError message: {e}\n\nFile attempted: {settings.csv_path}")


if __name__ == "__main__":
    main(sys.argv[1:])
