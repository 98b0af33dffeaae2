"""Argument parsing functionality for depapply."""

import argparse

from . import __version__


def _add_common(parser):
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--framework",
                        dest="FRAMEWORK",
                        help="Target framework short name, i.e: net45, netstandard2.0",
                        action="store",
                        type=str)


def build_parser():
    """Build the top-level parser with its sub-commands."""
    parser = argparse.ArgumentParser(
        prog="depapply",
        description="Resolve package dependency graphs and apply packages to projects",
        add_help=True,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    sub.required = True

    resolve = sub.add_parser("resolve", help="Resolve the packages to have installed")
    _add_common(resolve)
    resolve.add_argument("-m", "--metadata",
                         dest="METADATA",
                         help="Package metadata universe (YAML or JSON), or a folder of .nupkg files",
                         action="store", type=str,
                         required=True)
    resolve.add_argument("-p", "--package",
                         dest="TARGETS",
                         help="Requested package as Id:Version (repeatable)",
                         action="append", type=str,
                         required=True)
    resolve.add_argument("-i", "--installed",
                         dest="INSTALLED",
                         help="Already installed package as Id:Version (repeatable)",
                         action="append", type=str,
                         default=[])
    resolve.add_argument("-b", "--behavior",
                         dest="BEHAVIOR",
                         help="Dependency version preference: lowest, highestpatch, highestminor, highest, ignore",
                         action="store", type=str)
    resolve.add_argument("--max-rounds",
                         dest="MAX_ROUNDS",
                         help="Resolver round limit",
                         action="store", type=int)

    install = sub.add_parser("install", help="Install packages into a folder project")
    _add_common(install)
    install.add_argument("--project",
                         dest="PROJECT",
                         help="Project directory",
                         action="store", type=str,
                         required=True)
    install.add_argument("--file",
                         dest="PACKAGE_FILE",
                         help="Path to a single .nupkg to install, without dependency resolution",
                         action="store", type=str)
    install.add_argument("-s", "--source",
                         dest="SOURCE",
                         help="Folder of .nupkg files to resolve and install from",
                         action="store", type=str)
    install.add_argument("-p", "--package",
                         dest="TARGETS",
                         help="Requested package as Id:Version (repeatable, needs --source)",
                         action="append", type=str,
                         default=[])
    install.add_argument("-b", "--behavior",
                         dest="BEHAVIOR",
                         help="Dependency version preference: lowest, highestpatch, highestminor, highest, ignore",
                         action="store", type=str)
    install.add_argument("--max-rounds",
                         dest="MAX_ROUNDS",
                         help="Resolver round limit",
                         action="store", type=int)
    install.add_argument("--skip-assembly-references",
                         dest="SKIP_ASSEMBLY_REFERENCES",
                         help="Do not add assembly references",
                         action="store_true")
    install.add_argument("--no-binding-redirects",
                         dest="NO_BINDING_REDIRECTS",
                         help="Do not generate binding redirects after the operation",
                         action="store_true")

    uninstall = sub.add_parser("uninstall", help="Uninstall one package from a folder project")
    _add_common(uninstall)
    uninstall.add_argument("--project",
                           dest="PROJECT",
                           help="Project directory",
                           action="store", type=str,
                           required=True)
    uninstall.add_argument("-p", "--package",
                           dest="PACKAGE",
                           help="Installed package as Id:Version",
                           action="store", type=str,
                           required=True)
    uninstall.add_argument("--no-binding-redirects",
                           dest="NO_BINDING_REDIRECTS",
                           help="Do not generate binding redirects after the operation",
                           action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
