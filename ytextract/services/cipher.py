from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import assert_never

from ytextract.errors import (
    CipherEntryNotFoundError,
    CipherStatementError,
    CipherSubroutineNotFoundError,
    UnrecognizedCipherOperationError,
)


@dataclass(frozen=True)
class Reverse:
    pass


@dataclass(frozen=True)
class Splice:
    count: int


@dataclass(frozen=True)
class SwapFirst:
    index: int


Operation = Reverse | Splice | SwapFirst


@dataclass(frozen=True)
class CipherProgram:
    operations: tuple[Operation, ...]

    def __len__(self) -> int:
        return len(self.operations)

    def run(self, signature: str) -> str:
        return apply_cipher(self, signature.encode("utf-8")).decode("utf-8")


LOGGER = logging.getLogger("ytextract.cipher")

_JS_IDENTIFIER = r"[\w$]+"
_ENTRY_ROUTINE_RE = re.compile(
    rf"{_JS_IDENTIFIER}=function\({_JS_IDENTIFIER}\)\{{"
    rf"{_JS_IDENTIFIER}={_JS_IDENTIFIER}\.split\(\"\"\);"
    rf"(?P<body>.*?)"
    rf"return\s+{_JS_IDENTIFIER}\.join\(\"\"\)\}}",
    re.DOTALL,
)
_CALL_STATEMENT_RE = re.compile(
    rf"^{_JS_IDENTIFIER}(?:\.(?P<dotted>{_JS_IDENTIFIER})|\[\"(?P<quoted>{_JS_IDENTIFIER})\"\])"
    rf"\({_JS_IDENTIFIER}(?:,(?P<arg>\d+))?\)$"
)


def extract_cipher_program(asset_text: str) -> CipherProgram:
    entry = _ENTRY_ROUTINE_RE.search(asset_text)
    if entry is None:
        raise CipherEntryNotFoundError()

    operations: list[Operation] = []
    bodies: dict[str, str] = {}
    for raw_statement in entry.group("body").split(";"):
        statement = raw_statement.strip()
        if not statement:
            continue
        name, argument = _parse_call_statement(statement)
        body = bodies.get(name)
        if body is None:
            body = _find_subroutine_body(asset_text, name)
            bodies[name] = body
        operations.append(_classify_subroutine(name, body, argument, statement))

    LOGGER.debug(
        "cipher program extracted operations=%s subroutines=%s",
        len(operations),
        len(bodies),
    )
    return CipherProgram(operations=tuple(operations))


def apply_cipher(program: CipherProgram, signature: bytes) -> bytes:
    data = bytearray(signature)
    for operation in program.operations:
        match operation:
            case Reverse():
                data.reverse()
            case Splice(count=count):
                del data[:count]
            case SwapFirst(index=index):
                if data:
                    target = index % len(data)
                    data[0], data[target] = data[target], data[0]
            case _:
                assert_never(operation)
    return bytes(data)


def _parse_call_statement(statement: str) -> tuple[str, int | None]:
    match = _CALL_STATEMENT_RE.match(statement)
    if match is None:
        raise CipherStatementError(statement)
    name = match.group("dotted") or match.group("quoted")
    raw_argument = match.group("arg")
    return name, int(raw_argument) if raw_argument is not None else None


def _find_subroutine_body(asset_text: str, name: str) -> str:
    pattern = re.compile(
        rf"(?<![\w$])\"?{re.escape(name)}\"?:function\([\w$,]*\)\{{(?P<body>.*?)\}}",
        re.DOTALL,
    )
    match = pattern.search(asset_text)
    if match is None:
        raise CipherSubroutineNotFoundError(name)
    return match.group("body")


def _classify_subroutine(
    name: str,
    body: str,
    argument: int | None,
    statement: str,
) -> Operation:
    if "reverse" in body:
        return Reverse()
    if "splice" in body:
        if argument is None:
            raise CipherStatementError(statement)
        return Splice(count=argument)
    if "%" in body:
        if argument is None:
            raise CipherStatementError(statement)
        return SwapFirst(index=argument)
    raise UnrecognizedCipherOperationError(name, body)
