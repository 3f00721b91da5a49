"""Working-directory detection module."""

from shellsense.directory.prompt_pattern import (
    PromptPattern,
    compile_prompt_pattern,
    extract_dir_from_title,
    extract_directory,
    get_prompt_patterns,
)
from shellsense.directory.resolver import (
    DirectoryResolver,
    DirectorySource,
    DirectoryState,
    find_prompt_directory,
)

__all__ = [
    "DirectoryResolver",
    "DirectorySource",
    "DirectoryState",
    "PromptPattern",
    "compile_prompt_pattern",
    "extract_dir_from_title",
    "extract_directory",
    "find_prompt_directory",
    "get_prompt_patterns",
]
