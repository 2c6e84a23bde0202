"""Shared helpers: configuration files, placeholders, commands and archives."""

from .archive import ArchiveConsole, ArchiveExtractor, archive_filename, archive_format
from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordedCommand,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    quote_command,
)
from .config_loader import READERS, load_config_file, load_config_tree, merge_mappings, string_list
from .template import TemplateError, TemplateResolver

__all__ = [
    "ArchiveConsole",
    "ArchiveExtractor",
    "archive_filename",
    "archive_format",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "quote_command",
    "READERS",
    "load_config_file",
    "load_config_tree",
    "merge_mappings",
    "string_list",
    "TemplateError",
    "TemplateResolver",
]
