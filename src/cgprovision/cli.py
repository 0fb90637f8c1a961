"""Command line entry point: prints the path of the resolved executable."""
from __future__ import annotations

import logging
import sys
from typing import Any, List, Optional

from cgprovision.args import parse_args
from cgprovision.constants import ExitCodes
from cgprovision.common.errors import (
    ConfigError,
    DecodeError,
    DownloadError,
    FetchError,
    ModuleExecError,
    ProvisionError,
)
from cgprovision.common.logging_utils import configure_logging
from cgprovision.service import ProvisioningService
from cgprovision.settings import Settings

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.debug("Logging to file: %s", log_file)


def exit_code_for(exc: ProvisionError) -> ExitCodes:
    """Map an error to the exit code reported by the command."""
    if isinstance(exc, FetchError):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(exc, (ConfigError, DecodeError)):
        return ExitCodes.CONFIG_ERROR
    if isinstance(exc, (DownloadError, ModuleExecError)):
        return ExitCodes.FILE_ERROR
    return ExitCodes.RESOLUTION_ERROR


def run(args: Any, service: ProvisioningService) -> None:
    """Execute the parsed command, printing its result to stdout."""
    if args.COMMAND == "component":
        print(service.component(args.NAME, args.VERSION))
    elif args.COMMAND == "module":
        resolution, path = service.module(args.LANG, args.PROJECT_TYPE, args.VERSION)
        if resolution.overridden:
            logger.info("Using pinned %s module at %s", args.LANG, path)
        elif resolution.library_version is not None:
            logger.info(
                "Resolved %s %s module %s (library %s)",
                args.LANG,
                args.PROJECT_TYPE,
                resolution.module_version,
                resolution.library_version,
            )
        print(path)
    elif args.COMMAND == "languages":
        languages = service.available_languages()
        for name in sorted(languages):
            language = languages[name]
            kinds = [k for k, ok in (("client", language.supports_client), ("server", language.supports_server)) if ok]
            print(f"{name}\t{language.display_name}\t{','.join(kinds) or '-'}")


def main(argv: Optional[List[str]] = None) -> None:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        service = ProvisioningService(Settings.load())
        run(args, service)
    except ProvisionError as exc:
        logger.error("%s", exc)
        sys.exit(exit_code_for(exc).value)
    except OSError as exc:
        logger.error("IO error: %s, aborting", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
