"""
Wire codec for the iclock/ADMS push protocol.

Everything here is a pure function over text: no state, no I/O, and the
decoders never raise. Grammar summary:

  command     C:<id>:<INSTRUCTION> <K1>=<V1>\t<K2>=<V2>...
  attendance  one event per line, tab separated key=value pairs
  config      Key=Value lines joined with CRLF, trailing CRLF
  result      ID=<id>&Return=<code>&CMD=<type> somewhere in the body

The field separator is a literal TAB byte. Devices reject commands whose
fields are separated by spaces.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, Mapping, NamedTuple, Sequence

from dateutil import parser as dtparser
from pydantic import BaseModel, ConfigDict

FIELD_SEP = "\t"
LINE_SEP = "\n"
CRLF = "\r\n"
PLACEHOLDER = "??"

RESULT_PATTERN = re.compile(r"ID=(\w+)&Return=(-?\d+)&CMD=(\w+)")
ENVELOPE_PATTERN = re.compile(r"^C:([^:]+):(.*)$", re.DOTALL)
# a value holding any of these would add fields or a second command line
FRAMING_CHARS = re.compile(r"[\t\r\n]")

# logical field -> wire key; order is the order fields are written in
DEFAULT_FIELD_NAMES = {
    "pin": "PIN",
    "name": "Name",
    "privilege": "Pri",
    "password": "Passwd",
    "card": "Card",
    "group": "Grp",
    "timezone": "TZ",
    "verify": "Verify",
}


class CommandDialect(BaseModel):
    """Firmware-specific command quirks, kept as data."""

    model_config = ConfigDict(frozen=True)

    name: str
    envelope: bool = True
    user_table: str = "USERINFO"
    field_names: dict[str, str] = DEFAULT_FIELD_NAMES
    default_verify: str = "-1"

    def key(self, field: str) -> str:
        return self.field_names.get(field, field)


DIALECTS: dict[str, CommandDialect] = {
    "push": CommandDialect(name="push"),
    "legacy": CommandDialect(name="legacy", envelope=False, user_table="USER", default_verify="0"),
}


def get_dialect(name: str) -> CommandDialect:
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValueError(f"unknown command dialect {name!r}, expected one of {sorted(DIALECTS)}") from None


class DecodedCommand(NamedTuple):
    command_id: str | None
    instruction: str
    fields: dict[str, str]


class ResultReport(NamedTuple):
    command_id: str
    return_code: int
    command_type: str


# ---------------------------------------------------------------------------
# commands
# ---------------------------------------------------------------------------

def encode_fields(pairs: Iterable[tuple[str, Any]]) -> str:
    rendered = []
    for key, value in pairs:
        text = "" if value is None else str(value)
        if FRAMING_CHARS.search(text):
            raise ValueError(f"{key} must not contain tab or line break characters")
        rendered.append(f"{key}={text}")
    return FIELD_SEP.join(rendered)


def encode_envelope(command_id: str | int, payload: str, dialect: CommandDialect) -> str:
    if not dialect.envelope:
        return payload
    return f"C:{command_id}:{payload}"


def _instruction(instruction: str, pairs: list[tuple[str, Any]]) -> str:
    if not pairs:
        return instruction
    return f"{instruction} {encode_fields(pairs)}"


def user_upsert(fields: Mapping[str, Any], dialect: CommandDialect) -> str:
    """DATA UPDATE for one user record.

    Only fields present (and not None) in ``fields`` are written, in the
    dialect's field order, and the verify sentinel always comes last so a
    partial update is still fenced.
    """
    if not fields.get("pin"):
        raise ValueError("pin is required")
    pairs = [
        (dialect.key(field), fields[field])
        for field in dialect.field_names
        if field != "verify" and fields.get(field) is not None
    ]
    verify = fields.get("verify")
    pairs.append((dialect.key("verify"), dialect.default_verify if verify is None else verify))
    return _instruction(f"DATA UPDATE {dialect.user_table}", pairs)


def user_query(dialect: CommandDialect, pin: str | None = None) -> str:
    pairs = [(dialect.key("pin"), pin)] if pin else []
    return _instruction(f"DATA QUERY {dialect.user_table}", pairs)


def user_delete(pin: str, dialect: CommandDialect) -> str:
    if not pin:
        raise ValueError("pin is required")
    return _instruction(f"DATA DELETE {dialect.user_table}", [(dialect.key("pin"), pin)])


def user_clear(dialect: CommandDialect) -> str:
    return f"CLEAR {dialect.user_table}"


def decode_command(text: str) -> DecodedCommand:
    """Split a framed command back into id, instruction and fields."""
    body = text.rstrip("\r\n")
    command_id = None
    m = ENVELOPE_PATTERN.match(body)
    if m:
        command_id, body = m.group(1), m.group(2)

    head, _, rest = body.partition(FIELD_SEP)
    instruction, _, first = head.rpartition(" ")
    if "=" not in first:
        # no fields at all, e.g. "CLEAR USERINFO"
        instruction, first = head, ""
    fields = decode_fields(FIELD_SEP.join(part for part in (first, rest) if part), keep_empty=True)
    return DecodedCommand(command_id, instruction, fields)


# ---------------------------------------------------------------------------
# uploads
# ---------------------------------------------------------------------------

def decode_fields(line: str, keep_empty: bool = False) -> dict[str, str]:
    """Parse ``k=v\\tk=v``; pairs without '=' or with an empty key are dropped.

    Empty values are dropped too unless ``keep_empty`` is set, which the
    command decoder uses for fields like ``Passwd=``.
    """
    out: dict[str, str] = {}
    for pair in line.split(FIELD_SEP):
        key, sep, value = pair.partition("=")
        key = key.strip()
        value = value.strip()
        if not sep or not key:
            continue
        if not value and not keep_empty:
            continue
        out[key] = value
    return out


def split_lines(text: str | None) -> list[str]:
    if not text:
        return []
    return [line.strip("\r") for line in text.strip().split(LINE_SEP) if line.strip()]


def decode_attendance(text: str | None) -> list[dict[str, str]]:
    """One mapping per line that holds at least one usable pair."""
    records = []
    for line in split_lines(text):
        fields = decode_fields(line)
        if fields:
            records.append(fields)
    return records


def field_value(fields: Mapping[str, str], key: str, default: str = PLACEHOLDER) -> str:
    # firmwares disagree on casing (pin/PIN, time/Time)
    wanted = key.lower()
    for k, v in fields.items():
        if k.lower() == wanted:
            return v
    return default


def parse_event_time(value: str | None) -> datetime | None:
    if not value or value == PLACEHOLDER:
        return None
    try:
        return dtparser.parse(value)
    except (ValueError, OverflowError):
        return None


def parse_result_reports(text: str | None) -> list[ResultReport]:
    if not text:
        return []
    return [
        ResultReport(m.group(1), int(m.group(2)), m.group(3))
        for m in RESULT_PATTERN.finditer(text)
    ]


# ---------------------------------------------------------------------------
# configuration
# ---------------------------------------------------------------------------

ConfigLine = str | tuple[str, Any]


def encode_config_block(lines: Sequence[ConfigLine]) -> str:
    """Join lines with CRLF in the given order, with a trailing CRLF.

    A tuple is rendered as ``Key=Value``; a plain string is written as is
    (the ``GET OPTION FROM:`` header is not a key/value pair).
    """
    rendered = [line if isinstance(line, str) else f"{line[0]}={line[1]}" for line in lines]
    return CRLF.join(rendered) + CRLF


def handshake_options(serial: str, cfg: Any, stamp: int) -> list[ConfigLine]:
    """Operational parameters for a full configuration exchange."""
    return [
        f"GET OPTION FROM: {serial}",
        ("Stamp", stamp),
        ("OpStamp", stamp),
        ("ErrorDelay", cfg.error_delay),
        ("Delay", cfg.poll_delay),
        ("TransInterval", cfg.trans_interval),
        ("TransFlag", cfg.trans_flag),
        ("TimeZone", cfg.device_timezone),
        ("Realtime", cfg.realtime),
        ("Encrypt", cfg.encrypt),
        ("ServerVer", cfg.server_ver),
        ("PushProtVer", cfg.push_prot_ver),
    ]


def show_tabs(text: str) -> str:
    return text.replace(FIELD_SEP, "[TAB]")
