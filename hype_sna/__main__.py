"""Command line front end.

    python -m hype_sna inspect  <level_dir> [<level_dir> ...]
    python -m hype_sna scene    <level_dir> [--animation FILE ...]
    python -m hype_sna actors   <level_dir>
    python -m hype_sna profiles

A level directory is <game>/.../Gamedata/World/Levels/<name>; the fix files
are looked up in its parent. Add --json for machine-readable output.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .diagnostics import configure_debug_logging
from .level.inspection import inspect_levels
from .level.records import AnimationRecord, LevelRecord
from .parser import parse_actors, parse_level
from .profiles import get_profile_items


def _diagnostics_json(diagnostics):
    return [{"severity": d.severity.value, "phase": d.phase, "message": d.message}
            for d in diagnostics]


def _print_diagnostics(diagnostics):
    for item in diagnostics:
        print(f"  {item.format()}")


def _level_records(args):
    records = []
    for directory in args.level_dirs:
        records.append(LevelRecord.from_directory(directory, name=args.name))
    return records


def _check_dirs(paths):
    for path in paths:
        if not Path(path).is_dir():
            print(f"Level directory not found: {path}", file=sys.stderr)
            return False
    return True


def cmd_inspect(args):
    if not _check_dirs(args.level_dirs):
        return 2
    results = inspect_levels(_level_records(args), profile=args.profile)
    if args.json:
        print(json.dumps([
            {
                "level": r.level_name,
                "succeeded": r.succeeded,
                "fix_sna_blocks": r.fix_sna_block_count,
                "level_sna_blocks": r.level_sna_block_count,
                "fix_relocation_blocks": r.fix_relocation_block_count,
                "level_relocation_blocks": r.level_relocation_block_count,
                "sna_pointers": {"resolved": r.sna_pointers.resolved,
                                 "unresolved": r.sna_pointers.unresolved},
                "gpt_pointers": {"resolved": r.gpt_pointers.resolved,
                                 "unresolved": r.gpt_pointers.unresolved},
                "ptx_pointers": {"resolved": r.ptx_pointers.resolved,
                                 "unresolved": r.ptx_pointers.unresolved},
                "diagnostics": _diagnostics_json(r.diagnostics),
            }
            for r in results
        ], indent=2))
    else:
        for result in results:
            print(result.summary())
            _print_diagnostics(result.diagnostics)
    return 0 if all(r.succeeded for r in results) else 1


def cmd_scene(args):
    if args.game_root:
        args.level_dirs = [str(Path(args.game_root, d).resolve()) for d in args.level_dirs]
    if not _check_dirs(args.level_dirs):
        return 2
    level = _level_records(args)[0]
    animations = [
        AnimationRecord(id=f"anim:{index}", source_level=level.name, source_file=path)
        for index, path in enumerate(args.animation or [])
    ]
    result = parse_level(args.game_root, level, animations, profile=args.profile)
    if args.json:
        print(json.dumps({
            "level": result.level_name,
            "succeeded": result.succeeded,
            "entities": [e.to_dict() for e in result.entities],
            "diagnostics": _diagnostics_json(result.diagnostics),
        }, indent=2))
    else:
        print(f"{result.level_name}: {len(result.entities)} entities "
              f"(geometry={len(result.geometry)} actors={len(result.actors)} "
              f"anchors={len(result.anchors)})")
        for entity in result.actors:
            print(f"  {entity.name} {entity.actor_id} bits=0x{entity.custom_bits:08X}")
        _print_diagnostics(result.diagnostics)
    return 0 if result.succeeded else 1


def cmd_actors(args):
    if not _check_dirs(args.level_dirs):
        return 2
    level = _level_records(args)[0]
    result = parse_actors(level, profile=args.profile)
    if args.json:
        print(json.dumps({
            "level": result.level_name,
            "succeeded": result.succeeded,
            "actors": [a.to_dict() for a in result.actors],
            "diagnostics": _diagnostics_json(result.diagnostics),
        }, indent=2))
    else:
        print(f"{result.level_name}: {len(result.actors)} actors")
        for actor in result.actors:
            flags = []
            if actor.is_main_actor:
                flags.append("main")
            if actor.is_sector_member:
                flags.append("sector")
            print(f"  {actor.actor_id} objects={len(actor.objects)} "
                  f"frames={actor.frame_count} channels={actor.channel_count} "
                  f"fps={actor.fps:g} {' '.join(flags)}".rstrip())
        _print_diagnostics(result.diagnostics)
    return 0 if result.succeeded else 1


def cmd_profiles(args):
    for profile_id, name, description in get_profile_items():
        print(f"{profile_id:24s} {name}")
        if description:
            print(f"{'':24s} {description}")
    return 0


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog="hype-sna",
        description="Decode Hype: The Time Quest SNA levels.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log diagnostics while parsing.")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_level_command(name, help_text, func, multiple=False):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("level_dirs", nargs="+" if multiple else 1, metavar="LEVEL_DIR",
                         help="Level directory containing <name>.sna/.rtb/.gpt.")
        cmd.add_argument("--name", default=None,
                         help="Level name (defaults to the directory name).")
        cmd.add_argument("--profile", default=None,
                         help="Parse profile id (see 'profiles').")
        cmd.add_argument("--json", action="store_true", help="Print JSON.")
        cmd.set_defaults(func=func)
        return cmd

    add_level_command("inspect", "Relocation health report.", cmd_inspect, multiple=True)
    scene = add_level_command("scene", "Decode placed entities.", cmd_scene)
    scene.add_argument("--game-root", default=None,
                       help="Base directory for a relative LEVEL_DIR.")
    scene.add_argument("--animation", action="append", metavar="FILE",
                       help="Animation file to place an anchor for (repeatable).")
    add_level_command("actors", "Decode animated characters.", cmd_actors)

    profiles = sub.add_parser("profiles", help="List parse profiles.")
    profiles.set_defaults(func=cmd_profiles)
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.CRITICAL,
                        format="%(levelname)s %(name)s: %(message)s")
    configure_debug_logging()
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
