"""az CLI presence check.

avdmon does all of its Azure work through the az executable, so a run stops
here, before any login or resource call, when az is not on PATH.
"""

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import ClassVar

logger = logging.getLogger(__name__)


@dataclass
class PrerequisiteResult:
    """Result of prerequisite checks."""

    all_available: bool
    missing: list[str]
    available: list[str]
    platform_name: str


class PrerequisiteError(Exception):
    """Raised when prerequisites are missing."""

    pass


class PrerequisiteChecker:
    """Check that the tools avdmon invokes are on PATH."""

    REQUIRED_TOOLS: ClassVar[list[str]] = ["az"]

    INSTALL_URLS: ClassVar[dict[str, str]] = {
        "az": "https://learn.microsoft.com/cli/azure/install-azure-cli",
    }

    @classmethod
    def check_tool(cls, tool_name: str) -> bool:
        """True if tool_name resolves on PATH."""
        result = shutil.which(tool_name)
        if result:
            logger.debug(f"Found {tool_name} at {result}")
            return True
        logger.debug(f"Tool not found: {tool_name}")
        return False

    @classmethod
    def check_all(cls) -> PrerequisiteResult:
        """Check every required tool without raising."""
        missing: list[str] = []
        available: list[str] = []

        for tool in cls.REQUIRED_TOOLS:
            if cls.check_tool(tool):
                available.append(tool)
            else:
                missing.append(tool)

        result = PrerequisiteResult(
            all_available=not missing,
            missing=missing,
            available=available,
            platform_name=cls.detect_platform(),
        )

        if not result.all_available:
            logger.error(f"Missing prerequisites: {', '.join(missing)}")

        return result

    @classmethod
    def detect_platform(cls) -> str:
        """Return macos, linux, windows or unknown."""
        system = platform.system().lower()
        if system == "darwin":
            return "macos"
        if system in ("linux", "windows"):
            return system
        return "unknown"

    @classmethod
    def format_missing_message(cls, missing: list[str], platform_name: str) -> str:
        """Install pointers for the missing tools, with a brew hint on macOS."""
        if not missing:
            return "All prerequisites are installed."

        lines = ["Missing required tools:", ""]
        for tool in missing:
            url = cls.INSTALL_URLS.get(tool)
            lines.append(f"  - {tool}" + (f": {url}" if url else ""))
        if "az" in missing and platform_name == "macos":
            lines.extend(["", "  brew install azure-cli"])
        return "\n".join(lines)

    @classmethod
    def verify(cls) -> PrerequisiteResult:
        """Raise PrerequisiteError (with install pointers) unless every tool is present."""
        result = cls.check_all()
        if not result.all_available:
            raise PrerequisiteError(cls.format_missing_message(result.missing, result.platform_name))
        return result


__all__ = ["PrerequisiteChecker", "PrerequisiteError", "PrerequisiteResult"]
