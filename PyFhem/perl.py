"""
Build the Perl code FHEM runs for a function invocation and decode its answer
"""

import json
import re
from typing import Union

from PyFhem.exceptions import ErrorKind, FhemRemoteError

Scalar = Union[str, int, float]
Argument = Union[str, int, float, bool, None]
Result = Union[None, Scalar, list[Scalar], dict[Scalar, Scalar]]

UNDEF = "undef"
UNDEFINED_PLACEHOLDER = "'undefined'"

# Elements matching the JSON number grammar stay bare, others become JSON strings
_PROCESS_RET = (
    r"!defined($ret[0])?'undef':"
    r"'['.join(',',map(/^-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?\z/?$_:"
    r"""'"'.($_=~s/(["\\])/\\$1/gr=~s/([\x00-\x1f])/sprintf('\\u%04x',ord $1)/ger).'"',@ret)).']'"""
)
_PERL_QUOTE = re.compile(r'([\\"$@])')
_NUMBER = re.compile(r"^[+-]?(?:(\d+)|(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)$")


def parse_scalar(text: str) -> Scalar:
    """Return ``text`` as int or float when all of it is numeric."""
    match = _NUMBER.match(text.strip()) if text else None
    if match is None:
        return text
    if match.group(1) is not None:
        return int(text)
    return float(text)


def render_argument(arg: Argument) -> str:
    if arg is None:
        return UNDEFINED_PLACEHOLDER
    if isinstance(arg, bool):
        return "1" if arg else "''"
    if isinstance(arg, (int, float)):
        return repr(arg)
    if isinstance(arg, str):
        # A single ';' would end the FHEM command
        return '"' + _PERL_QUOTE.sub(r"\\\1", arg).replace(";", ";;") + '"'
    raise TypeError(f"Unsupported argument type for FHEM function: {type(arg).__name__}")


def build_call(device: str, function: str, pass_handle: bool, args: tuple[Argument, ...]) -> str:
    """Return Perl code calling ``function`` of ``device`` via CallFn.

    The code evaluates to either ``undef`` or a JSON array of the return values.
    FHEM's command separator is escaped as ``;;``.
    """
    rendered = [render_argument(arg) for arg in args]
    undefined_positions = [str(i) for i, arg in enumerate(args) if arg is None]

    statements = []
    call_args = [f"'{device}'", f"'{function}'"]
    if pass_handle:
        call_args.append(f"$defs{{{device}}}")

    if undefined_positions:
        statements.append(f"my @args=({','.join(rendered)})")
        statements.append(f"$args[$_]=undef for({','.join(undefined_positions)})")
        call_args.append("@args")
    elif rendered:
        call_args.extend(rendered)

    statements.append(f"my @ret=CallFn({','.join(call_args)})")
    statements.append(_PROCESS_RET)
    return ";;".join(statements)


def parse_call_result(raw: Scalar, device: str, function: str, to_mapping: bool) -> Result:
    if raw == UNDEF:
        return None

    try:
        values = json.loads(str(raw))
    except json.JSONDecodeError as exc:
        raise FhemRemoteError(
            f"Failed to invoke {function} of FHEM device {device}: {raw}.",
            ErrorKind.REMOTE_INVOCATION_FAILED,
        ) from exc
    if not isinstance(values, list):
        # A bare number still decodes; anything but an array came from FHEM itself
        raise FhemRemoteError(
            f"Failed to invoke {function} of FHEM device {device}: {raw}.",
            ErrorKind.REMOTE_INVOCATION_FAILED,
        )

    if len(values) == 1:
        return values[0]

    if to_mapping:
        if len(values) % 2:
            raise FhemRemoteError(
                "Cannot create a mapping from an odd-sized list.",
                ErrorKind.ODD_LENGTH_LIST,
            )
        return dict(zip(values[0::2], values[1::2]))

    return values
