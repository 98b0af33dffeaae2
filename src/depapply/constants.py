"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    ARGUMENT_ERROR = 2
    RESOLUTION_ERROR = 4
    INSTALL_ERROR = 5


class PackageFolders(Enum):
    """Top-level folders inside a package and the asset category they hold.

    Args:
        Enum (string): Folder names inside a package archive.
    """

    LIB = "lib"
    CONTENT = "content"
    BUILD = "build"
    TOOLS = "tools"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "DEPAPPLY_LOG_LEVEL"
    ENV_CONFIG = "DEPAPPLY_CONFIG"

    ANY_FRAMEWORK = "any"
    MANIFEST_FILE = "packages.config"
    PACKAGES_DIRECTORY = "packages"
    PROJECT_FILE = "project.xml"
    NUSPEC_EXTENSION = ".nuspec"

    # Lifecycle script convention
    SCRIPT_INIT = "init.ps1"
    SCRIPT_INSTALL = "install.ps1"
    SCRIPT_UNINSTALL = "uninstall.ps1"
    SCRIPT_INTERPRETER = ["pwsh", "-NoProfile", "-NonInteractive", "-File"]
    SCRIPT_TIMEOUT_SEC = 300

    # Assembly reference rules
    ASSEMBLY_REFERENCE_EXTENSIONS = [".dll", ".exe", ".winmd"]
    RESOURCE_ASSEMBLY_EXTENSION = ".resources.dll"
    PACKAGE_EMPTY_FILE_NAME = "_._"
    PROPS_EXTENSION = ".props"

    # Transform-file setting
    CONFIG_SECTIONS_ELEMENT = "configSections"

    RESOLVER_MAX_ROUNDS = 2000
    DEFAULT_DEPENDENCY_BEHAVIOR = "lowest"
    DEFAULT_TARGET_FRAMEWORK = "net45"
    BINDING_REDIRECTS_DISABLED = False
    SKIP_ASSEMBLY_REFERENCES = False
