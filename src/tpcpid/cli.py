"""
Command-line interface for tpcpid.

    tpcpid run --tracks tracks.parquet --output-dir out --request pidTPCKa --request pidTPCPi
    tpcpid run --tracks tracks.parquet --output-dir out --pid-pr 1 --param-file params.json
    tpcpid species
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pyarrow.parquet as pq

from tpcpid import __version__
from tpcpid.config import PidConfig
from tpcpid.data.chunked_reader import ParquetTrackReader
from tpcpid.errors import TpcPidError
from tpcpid.species import OUTPUT_NAMES, Species
from tpcpid.task import TpcPidTask

logger = logging.getLogger("tpcpid")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tpcpid",
        description="Produce quantized TPC nsigma tables for the requested particle species",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Compute PID tables for parquet track files")
    run_parser.add_argument("--tracks", type=str, nargs="+", required=True, help="Input parquet track files")
    run_parser.add_argument("--output-dir", type=str, required=True, help="Directory for the output tables")
    run_parser.add_argument(
        "--request",
        type=str,
        action="append",
        default=[],
        choices=list(OUTPUT_NAMES),
        help="Table requested by a downstream consumer (repeatable)",
    )
    run_parser.add_argument("--config", type=str, help="JSON configuration file")
    run_parser.add_argument("--param-file", type=str, help="Parametrization file; empty uses the remote store")
    run_parser.add_argument("--param-signal", type=str, help="Name of the expected-signal parametrization")
    run_parser.add_argument("--param-sigma", type=str, help="Name of the expected-sigma parametrization")
    run_parser.add_argument("--ccdb-url", type=str, help="URL of the remote calibration store")
    run_parser.add_argument("--ccdb-path", type=str, help="Base path of the parametrizations in the remote store")
    run_parser.add_argument("--ccdb-timestamp", type=int, help="Object timestamp in ms, -1 for now")
    run_parser.add_argument("--on-invalid", type=str, choices=["flag", "raise"], help="Invalid-track policy")
    run_parser.add_argument("--max-workers", type=int, help="Worker threads across species")
    run_parser.add_argument(
        "--row-groups-per-batch",
        type=int,
        default=1,
        help="Parquet row groups processed per batch",
    )
    for species in Species:
        run_parser.add_argument(
            f"--{species.flag_name}",
            dest=species.flag_name.replace("-", "_"),
            type=int,
            choices=[-1, 0, 1],
            help=(
                f"Produce PID information for the {species.info.label} mass hypothesis, "
                f"overrides the automatic setup: off (0) or on (1)"
            ),
        )

    subparsers.add_parser("species", help="List species, output tables and flags")
    return parser


def config_from_args(args: argparse.Namespace) -> PidConfig:
    config = PidConfig.from_json(args.config) if args.config else PidConfig()
    flags: Dict[Species, int] = {}
    for species in Species:
        value = getattr(args, species.flag_name.replace("-", "_"))
        if value is not None:
            flags[species] = value
    return config.with_overrides(
        param_file=args.param_file,
        param_signal=args.param_signal,
        param_sigma=args.param_sigma,
        ccdb_url=args.ccdb_url,
        ccdb_path=args.ccdb_path,
        ccdb_timestamp=args.ccdb_timestamp,
        on_invalid=args.on_invalid,
        max_workers=args.max_workers,
        flags=flags or None,
    )


def _run(args: argparse.Namespace) -> int:
    config = config_from_args(args)
    task = TpcPidTask.from_config(config, set(args.request))

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    reader = ParquetTrackReader(list(args.tracks), row_groups_per_chunk=args.row_groups_per_batch)
    writers: Dict[str, pq.ParquetWriter] = {}
    n_tracks = 0
    try:
        for batch in reader.iter_batches():
            tables = task.process(batch)
            n_tracks += len(batch)
            for table in tables.values():
                arrow_table = table.to_arrow()
                if table.name not in writers:
                    writers[table.name] = pq.ParquetWriter(output_dir / f"{table.name}.parquet", arrow_table.schema)
                writers[table.name].write_table(arrow_table)
    finally:
        for writer in writers.values():
            writer.close()

    summary = {
        "n_tracks": n_tracks,
        "tables": task.enabled_outputs,
        "codec": config.codec.metadata(),
    }
    with open(output_dir / "summary.json", "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)
    logger.info(f"Processed {n_tracks} tracks into {len(task.enabled_outputs)} tables in {output_dir}")
    return 0


def _list_species() -> int:
    for species in Species:
        info = species.info
        print(f"{species.output_name:10s} {species.flag_name:8s} {info.label:10s} m={info.mass:.6f} z={info.charge}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "run":
            return _run(args)
        if args.command == "species":
            return _list_species()
    except TpcPidError as exc:
        logger.error(f"Run aborted: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
