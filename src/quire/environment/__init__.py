"""Quire environment: configuration, registries, loaders and errors.

Exceptions are imported first; every other subsystem depends on them.
"""

from quire.environment.exceptions import (
    BadExtendsError,
    BadIncludeError,
    ErrorCode,
    ErrorKind,
    FilterNotFoundError,
    FunctionNotFoundError,
    SourceSnippet,
    TemplateCompileError,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    TestNotFoundError,
    TooComplexError,
    UndefinedError,
    build_source_snippet,
)
from quire.environment.core import Environment, select_autoescape
from quire.environment.loaders import ChoiceLoader, DictLoader, FunctionLoader, Loader
from quire.environment.registry import FilterRegistry

__all__ = [
    "BadExtendsError",
    "BadIncludeError",
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "ErrorKind",
    "FilterNotFoundError",
    "FilterRegistry",
    "FunctionLoader",
    "FunctionNotFoundError",
    "Loader",
    "SourceSnippet",
    "TemplateCompileError",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "TestNotFoundError",
    "TooComplexError",
    "UndefinedError",
    "build_source_snippet",
    "select_autoescape",
]
