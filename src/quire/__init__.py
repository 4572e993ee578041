"""Quire: an embeddable Jinja2-style template engine with a bytecode VM.

Quickstart:
    >>> from quire import Environment
    >>> env = Environment()
    >>> template = env.from_string("Hello, {{ name }}!")
    >>> template.render(name="World")
    'Hello, World!'

Registered templates:
    >>> from quire import DictLoader, Environment
    >>> env = Environment(loader=DictLoader({
    ...     "base.html": "<title>{% block title %}{% endblock %}</title>",
    ...     "page.html": "{% extends 'base.html' %}{% block title %}Home{% endblock %}",
    ... }))
    >>> env.render("page.html")
    '<title>Home</title>'

Architecture:
Template Source → Lexer → Parser → Quire AST → Compiler → Program → Vm

Pipeline stages:
1. **Lexer**: Tokenizes template source into a lazy token stream
2. **Parser**: Builds an immutable AST from tokens
3. **Compiler**: Lowers the AST to flat instruction streams with a
   deduplicated constant pool and a line table
4. **Vm**: Executes a Program against a context on an operand stack, a
   frame stack and an activation stack

Template nesting (loops, macros, includes, inheritance) lives on the VM's
own stacks, so deeply nested templates are bounded by ``recursion_limit``
rather than the Python interpreter's recursion limit.

Thread-Safety:
- Compiled Programs are immutable and shared between renders
- Each render gets its own ``Vm``; no render state is shared
- Environment registries are copy-on-write; cache writes take a lock

Undefined values (lenient by default):
    >>> env.render_str("[{{ missing }}]")
    '[]'
    >>> strict = Environment(undefined="strict")
    >>> strict.render_str("{{ missing }}")  # Raises UndefinedError
    >>> strict.render_str("{{ missing | default('N/A') }}")
    'N/A'

Resource limits:
    >>> env = Environment(recursion_limit=100, fuel=10_000)
"""

from quire._types import Token, TokenType
from quire.environment import (
    BadExtendsError,
    BadIncludeError,
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorCode,
    ErrorKind,
    FilterNotFoundError,
    FunctionLoader,
    FunctionNotFoundError,
    Loader,
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
    select_autoescape,
)
from quire.syntax import SyntaxConfig, WhitespaceConfig
from quire.template import LoopContext, Macro, Template, TemplateModule
from quire.utils.decorators import accepts_undefined, pass_state
from quire.utils.html import Markup, html_escape
from quire.value import AutoEscape, Namespace, Object, Undefined, UndefinedBehavior

__version__ = "0.1.0"

__all__ = [
    "AutoEscape",
    "BadExtendsError",
    "BadIncludeError",
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "ErrorKind",
    "FilterNotFoundError",
    "FunctionLoader",
    "FunctionNotFoundError",
    "Loader",
    "LoopContext",
    "Macro",
    "Markup",
    "Namespace",
    "Object",
    "SourceSnippet",
    "SyntaxConfig",
    "Template",
    "TemplateCompileError",
    "TemplateError",
    "TemplateModule",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "TestNotFoundError",
    "Token",
    "TokenType",
    "TooComplexError",
    "Undefined",
    "UndefinedBehavior",
    "UndefinedError",
    "WhitespaceConfig",
    "__version__",
    "accepts_undefined",
    "build_source_snippet",
    "html_escape",
    "pass_state",
    "select_autoescape",
]


# Free-threading declaration (PEP 703)
def __getattr__(name: str) -> object:
    """Module-level getattr for the free-threading declaration."""
    if name == "_Py_mod_gil":
        # 0 = Py_MOD_GIL_NOT_USED
        return 0
    raise AttributeError(f"module 'quire' has no attribute {name!r}")
