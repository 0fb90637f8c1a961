"""Argument parsing for the cgprovision command."""

import argparse

from cgprovision.versioning import ProjectType


def build_parser():
    """Build the argument parser with one sub-command per artifact kind."""
    parser = argparse.ArgumentParser(
        prog="cgprovision",
        description="Resolve and install CodeGame modules and components",
        add_help=True,
    )
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="COMMAND", required=True)

    component = subparsers.add_parser("component",
                                      help="Install a component supporting a CodeGame/CGE version")
    component.add_argument("NAME", help="Component name, i.e: cge-parser, cg-debug")
    component.add_argument("VERSION", help="Version the component must support")

    module = subparsers.add_parser("module",
                                   help="Install a language module for a project type")
    module.add_argument("LANG", help="Language of the module, i.e: go, ts")
    module.add_argument("PROJECT_TYPE",
                        choices=[p.value for p in ProjectType],
                        help="Kind of project the module is used for")
    module.add_argument("VERSION",
                        nargs="?",
                        default=None,
                        help="CodeGame protocol version; the latest module build when omitted")

    subparsers.add_parser("languages", help="List languages with an available module")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
