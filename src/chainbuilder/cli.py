# Copyright 2024 Shane Loretz.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import argparse
import logging
import os
from pathlib import Path
import sys

from .config import CONFIG_FILE, ParseError, RunConfig, load_config_file
from .graph import DOT_FILE, graph_to_dot, scan_directory, write_dot
from .propagate import VersionPropagator
from .recipe import RecipeParseError, RecipeWriteError, ScanError
from .report import StatusReporter, summary
from .roots import matcher_for, resolve_roots, seed_names
from .scheduler import BuildScheduler
from .status import NodeStatus
from .tools import changed_files
from .version import BumpComponent
from .work import WorkFailedError


logger = logging.getLogger(__name__)

COMPONENTS = [c.value for c in BumpComponent]
BUMP_COMPONENTS = [c.value for c in BumpComponent if c != BumpComponent.NONE]


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="chainbuilder",
        description="Build container images and every image built on top of them",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub):
        sub.add_argument("--config", default=None)
        sub.add_argument("--registry", default=None)
        sub.add_argument("--since", default=None)
        sub.add_argument(
            "--change-match",
            default=None,
            help="Glob with {name} selecting changed paths that affect an image",
        )
        sub.add_argument(
            "-n",
            "--dry-run",
            action="store_true",
            help="Write no files and build or push nothing. "
            "With --since the read-only git diff still runs",
        )
        sub.add_argument("-v", "--verbose", action="store_true")
        sub.add_argument("folders", nargs="+")

    build = subparsers.add_parser(
        "build", help="Bump, build and push images and everything that depends on them"
    )
    add_common(build)
    build.add_argument("--bump", choices=COMPONENTS, default=BumpComponent.NONE.value)
    build.add_argument("--no-push", action="store_true")
    build.add_argument("--no-cache", action="store_true", default=None)
    build.add_argument("--no-pull", action="store_true")
    build.add_argument("--tool", default=None)
    build.add_argument("--max-workers", type=int, default=None)
    build.add_argument("--follow", action="store_true")

    bump = subparsers.add_parser(
        "bump", help="Bump versions of images and everything that depends on them"
    )
    add_common(bump)
    bump.add_argument("--bump", choices=BUMP_COMPONENTS, required=True)

    graph = subparsers.add_parser("graph", help="Write a dot graph of image dependencies")
    graph.add_argument("--config", default=None)
    graph.add_argument("--registry", default=None)
    graph.add_argument("-o", "--output", default=None)
    graph.add_argument("-v", "--verbose", action="store_true")
    graph.add_argument("base_folder")

    return parser.parse_args(argv)


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        stream=sys.stderr,
        format="[%(levelname).4s] %(name)s: %(message)s",
    )


def base_directory(folders) -> Path:
    """Exit with helpful CLI message unless all folders share one parent."""
    parents = set(Path(os.path.normpath(f)).parent for f in folders)
    if len(parents) != 1:
        sys.stderr.write(f"All image folders must be in the same directory, got {folders}\n")
        sys.exit(-1)
    return parents.pop()


def make_config(args, base_dir: Path) -> RunConfig:
    config_path = Path(args.config) if args.config else base_dir / CONFIG_FILE
    file_values = load_config_file(config_path)
    overrides = {"registry": args.registry}
    if args.command in ("build", "bump"):
        overrides.update(
            bump_component=args.bump,
            since=args.since,
            change_match=args.change_match,
            dry_run=args.dry_run,
        )
    if args.command == "build":
        overrides.update(
            no_cache=args.no_cache,
            pull=False if args.no_pull else None,
            push=False if args.no_push else None,
            tool=args.tool,
            max_workers=args.max_workers,
            follow=args.follow,
        )
    return RunConfig.from_sources(file_values, **overrides)


def find_roots(args, config: RunConfig, graph, base_dir: Path) -> list[str]:
    seeds = seed_names(args.folders)
    changed = None
    if config.since is not None:
        changed = changed_files(base_dir, config.since)
        logger.debug(f"Changed since {config.since}: {changed}")
    return resolve_roots(graph, seeds, changed, matcher_for(config.change_match))


def run_build(args, config: RunConfig, base_dir: Path) -> int:
    graph = scan_directory(base_dir, config.registry)
    roots = find_roots(args, config, graph, base_dir)
    if not roots:
        logger.warning("Nothing to build")
        return 0

    VersionPropagator(graph, config).propagate(roots)

    scheduler = BuildScheduler(graph, config)
    with StatusReporter(
        graph, graph, interval=config.poll_interval, dump_failures=not config.follow
    ):
        statuses = scheduler.run(roots)

    print(summary(graph, roots))
    failed = [name for name, status in statuses.items() if status == NodeStatus.FAILURE]
    if failed:
        logger.error(f"Failed to build: {', '.join(failed)}")
        return 1
    return 0


def run_bump(args, config: RunConfig, base_dir: Path) -> int:
    graph = scan_directory(base_dir, config.registry)
    roots = find_roots(args, config, graph, base_dir)
    if not roots:
        logger.warning("Nothing to bump")
        return 0
    VersionPropagator(graph, config).propagate(roots)
    return 0


def run_graph(args, config: RunConfig, base_dir: Path) -> int:
    graph = scan_directory(base_dir, config.registry)
    if args.output == "-":
        sys.stdout.write(graph_to_dot(graph))
    else:
        output = Path(args.output) if args.output else base_dir / DOT_FILE
        write_dot(graph, output)
        logger.info(f"Wrote {output}")
    return 0


def main(argv=None):
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    if args.command == "graph":
        base_dir = Path(args.base_folder)
    else:
        base_dir = base_directory(args.folders)

    try:
        config = make_config(args, base_dir)
        if args.command == "build":
            return_code = run_build(args, config, base_dir)
        elif args.command == "bump":
            return_code = run_bump(args, config, base_dir)
        else:
            return_code = run_graph(args, config, base_dir)
    except (
        ScanError,
        RecipeParseError,
        RecipeWriteError,
        ParseError,
        WorkFailedError,
        OSError,
    ) as e:
        sys.stderr.write(f"{e}\n")
        sys.exit(-1)
    sys.exit(return_code)
