# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Go-style ``--format`` templates rendered with Jinja2.

Users write the same templates they would pass to ``docker inspect``::

    {{.State.Status}}
    {{json .Config.Labels}}
    {{range .Mounts}}{{.Source}} {{end}}
    {{index .Config.Labels "dev.berth.agent"}}

Each template is translated once into a Jinja2 template and rendered
against the engine's raw inspect response.  Supported actions are field
paths, ``range``/``if``/``with``/``else``/``end``, pipelines
(``{{.Name | upper}}``) and the functions listed in ``_FUNCTIONS``.
"""

import decimal
import json
import math
import re
from typing import Any

import jinja2

from berth.errors import InvalidArgumentError


class TemplateError(InvalidArgumentError):
    """The format template is malformed or uses unsupported syntax."""


class _NoValue(jinja2.ChainableUndefined):
    """Renders missing fields the way Go templates do."""

    def __str__(self) -> str:
        return "<no value>"


_ACTION = re.compile(r"\{\{(-\s)?\s*(.*?)\s*(\s-)?\}\}", re.DOTALL)
_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|`[^`]*`|\||[^\s|]+')
_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")
_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ROOT = "_root"


def _split_lines(value: Any, sep: str) -> list[str]:
    return str(value).split(sep)


def _to_json(value: Any) -> str:
    if isinstance(value, jinja2.Undefined):
        return "null"
    return json.dumps(value)


def _go_float(value: float) -> str:
    """Format *value* like Go's ``%v`` for float64."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    number = decimal.Decimal(repr(value)).normalize()
    exponent = number.adjusted()
    if -4 <= exponent < 6:
        return format(number, "f")
    sign, digits, _ = number.as_tuple()
    mantissa = str(digits[0])
    if len(digits) > 1:
        mantissa += "." + "".join(str(d) for d in digits[1:])
    exp_sign = "-" if exponent < 0 else "+"
    return f"{'-' if sign else ''}{mantissa}e{exp_sign}{abs(exponent):02d}"


def _go_format(value: Any) -> Any:
    """Render a decoded JSON value the way Go's ``%v`` prints it.

    Booleans print as ``true``/``false``, null as ``<nil>``, objects as
    ``map[k:v ...]`` with sorted keys and arrays as ``[a b]``.
    """
    if isinstance(value, jinja2.Undefined):
        return value
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return _go_float(value)
    if isinstance(value, dict):
        items = " ".join(
            f"{key}:{_go_format(value[key])}" for key in sorted(value)
        )
        return f"map[{items}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(str(_go_format(v)) for v in value) + "]"
    return value


#: Template function -> Jinja2 rendering of ``(args...)``.
_FUNCTIONS = {
    "json": lambda a: f"({a[0]}) | json",
    "upper": lambda a: f"({a[0]}) | string | upper",
    "lower": lambda a: f"({a[0]}) | string | lower",
    "title": lambda a: f"({a[0]}) | string | title",
    "len": lambda a: f"({a[0]}) | length",
    "join": lambda a: f"({a[0]}) | join({a[1]})",
    "split": lambda a: f"({a[0]}) | split({a[1]})",
    "index": lambda a: a[0] + "".join(f"[{k}]" for k in a[1:]),
    "println": lambda a: (
        " ~ ' ' ~ ".join(f"(({x}) | go)" for x in a) + ' ~ "\n"'
    ),
    "print": lambda a: " ~ ".join(f"(({x}) | go)" for x in a),
}

_ARITY = {
    "json": 1,
    "upper": 1,
    "lower": 1,
    "title": 1,
    "len": 1,
    "join": 2,
    "split": 2,
}


def _field(token: str, dot: str) -> str:
    if token == ".":
        return dot
    parts = token[1:].split(".")
    for part in parts:
        if not _IDENT.match(part):
            raise TemplateError(f"bad field {token!r} in format template")
    return dot + "".join(f"[{json.dumps(p)}]" for p in parts)


def _operand(token: str, dot: str) -> str:
    if token.startswith("."):
        return _field(token, dot)
    if token.startswith('"'):
        return token
    if token.startswith("`"):
        return json.dumps(token[1:-1])
    if _NUMBER.match(token) or token in ("true", "false"):
        return token
    if token.startswith("$"):
        raise TemplateError("template variables are not supported")
    raise TemplateError(f"function {token!r} not defined")


def _command(tokens: list[str], dot: str, piped: str | None) -> str:
    head, args = tokens[0], tokens[1:]
    if head in _FUNCTIONS:
        operands = [_operand(t, dot) for t in args]
        if piped is not None:
            operands.append(piped)
        expected = _ARITY.get(head)
        if expected is not None and len(operands) != expected:
            raise TemplateError(
                f"wrong number of args for {head}: want {expected} "
                f"got {len(operands)}"
            )
        if not operands:
            raise TemplateError(f"missing arguments for {head}")
        return _FUNCTIONS[head](operands)
    if args or piped is not None:
        raise TemplateError(f"function {head!r} not defined")
    return _operand(head, dot)


def _pipeline(text: str, dot: str) -> str:
    tokens = _TOKEN.findall(text)
    if not tokens:
        raise TemplateError("empty command in format template")
    commands: list[list[str]] = [[]]
    for token in tokens:
        if token == "|":
            commands.append([])
        else:
            commands[-1].append(token)
    if any(not c for c in commands):
        raise TemplateError("missing command in pipeline")
    value: str | None = None
    for command in commands:
        value = _command(command, dot, value)
    assert value is not None
    return value


def _literal(text: str) -> str:
    if not text:
        return ""
    if "{" in text or "}" in text or "#" in text:
        return "{% raw %}" + text + "{% endraw %}"
    return text


def translate(template: str) -> str:
    """Translate a Go-style template into Jinja2 source.

    Raises:
        TemplateError: On unsupported or malformed actions.
    """
    out: list[str] = []
    # (closing tags, dot) per open block.
    blocks: list[tuple[str, str]] = []
    dot = _ROOT
    counter = 0
    pos = 0
    trim_next = False
    for match in _ACTION.finditer(template):
        text = template[pos : match.start()]
        if trim_next:
            text = text.lstrip()
        if match.group(1):
            text = text.rstrip()
        out.append(_literal(text))
        pos = match.end()
        trim_next = bool(match.group(3))

        action = match.group(2).strip()
        keyword, _, rest = action.partition(" ")
        rest = rest.strip()
        if action.startswith("/*"):
            continue
        if keyword == "range":
            counter += 1
            var = f"_it{counter}"
            out.append(f"{{% for {var} in {_pipeline(rest, dot)} %}}")
            blocks.append(("{% endfor %}", dot))
            dot = var
        elif keyword == "if":
            out.append(f"{{% if {_pipeline(rest, dot)} %}}")
            blocks.append(("{% endif %}", dot))
        elif keyword == "with":
            counter += 1
            var = f"_w{counter}"
            value = _pipeline(rest, dot)
            out.append(f"{{% with {var} = {value} %}}{{% if {var} %}}")
            blocks.append(("{% endif %}{% endwith %}", dot))
            dot = var
        elif action == "else":
            if not blocks:
                raise TemplateError("unexpected {{else}}")
            out.append("{% else %}")
            dot = blocks[-1][1]
        elif action == "end":
            if not blocks:
                raise TemplateError("unexpected {{end}}")
            closing, dot = blocks.pop()
            out.append(closing)
        else:
            out.append(f"{{{{ {_pipeline(action, dot)} }}}}")
    if blocks:
        raise TemplateError("unexpected EOF: missing {{end}}")
    tail = template[pos:]
    out.append(_literal(tail.lstrip() if trim_next else tail))
    return "".join(out)


def _environment() -> jinja2.Environment:
    env = jinja2.Environment(
        autoescape=False,
        undefined=_NoValue,
        keep_trailing_newline=True,
        finalize=_go_format,
    )
    env.filters["json"] = _to_json
    env.filters["split"] = _split_lines
    env.filters["go"] = _go_format
    return env


class FormatTemplate:
    """A compiled ``--format`` template.

    Usage:
        tmpl = FormatTemplate("{{.State.Status}}")
        print(tmpl.render(inspect_response))
    """

    def __init__(self, source: str) -> None:
        self.source = source
        try:
            self._template = _environment().from_string(translate(source))
        except jinja2.TemplateSyntaxError as e:
            raise TemplateError(f"invalid format template: {e}") from e

    def render(self, data: Any) -> str:
        try:
            return self._template.render({_ROOT: data})
        except jinja2.TemplateError as e:
            raise TemplateError(f"executing format template: {e}") from e
