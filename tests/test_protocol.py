from datetime import datetime
from types import SimpleNamespace

import pytest

from adms_gateway import protocol

PUSH = protocol.DIALECTS["push"]
LEGACY = protocol.DIALECTS["legacy"]


def test_user_upsert_round_trips_through_envelope() -> None:
    payload = protocol.user_upsert({"pin": "42", "name": "Alice", "privilege": 0}, PUSH)
    wire = protocol.encode_envelope("1001", payload, PUSH)

    assert wire == "C:1001:DATA UPDATE USERINFO PIN=42\tName=Alice\tPri=0\tVerify=-1"
    decoded = protocol.decode_command(wire)
    assert decoded.command_id == "1001"
    assert decoded.instruction == "DATA UPDATE USERINFO"
    assert decoded.fields == {"PIN": "42", "Name": "Alice", "Pri": "0", "Verify": "-1"}
    # the only space is the one after the instruction
    assert " " not in wire.split("PIN=", 1)[1]


def test_user_upsert_full_record_keeps_field_order_and_empty_values() -> None:
    payload = protocol.user_upsert(
        {
            "pin": "7", "name": "Bob", "privilege": "0", "password": "", "card": "",
            "group": "1", "timezone": "0000000000000000", "verify": None,
        },
        PUSH,
    )
    keys = [pair.split("=")[0] for pair in payload.split(" ", 3)[3].split("\t")]
    assert keys == ["PIN", "Name", "Pri", "Passwd", "Card", "Grp", "TZ", "Verify"]
    assert "\tPasswd=\tCard=\t" in payload


def test_user_upsert_explicit_verify_mode() -> None:
    payload = protocol.user_upsert({"pin": "7", "verify": "3"}, PUSH)
    assert payload.endswith("\tVerify=3")


def test_user_upsert_requires_pin() -> None:
    with pytest.raises(ValueError):
        protocol.user_upsert({"name": "nobody"}, PUSH)


def test_query_delete_and_clear_instructions() -> None:
    assert protocol.user_query(PUSH) == "DATA QUERY USERINFO"
    assert protocol.user_query(PUSH, "5") == "DATA QUERY USERINFO PIN=5"
    assert protocol.user_delete("5", PUSH) == "DATA DELETE USERINFO PIN=5"
    assert protocol.user_clear(PUSH) == "CLEAR USERINFO"


def test_legacy_dialect_has_no_envelope() -> None:
    payload = protocol.user_upsert({"pin": "9", "name": "Eve"}, LEGACY)
    assert payload == "DATA UPDATE USER PIN=9\tName=Eve\tVerify=0"
    assert protocol.encode_envelope("1", payload, LEGACY) == payload
    assert protocol.decode_command(payload).command_id is None


def test_get_dialect_rejects_unknown_name() -> None:
    assert protocol.get_dialect("push") is PUSH
    with pytest.raises(ValueError):
        protocol.get_dialect("zk-9000")


def test_decode_command_without_fields() -> None:
    decoded = protocol.decode_command("C:12:CLEAR USERINFO\n")
    assert decoded == protocol.DecodedCommand("12", "CLEAR USERINFO", {})


def test_decode_attendance_is_tolerant() -> None:
    records = protocol.decode_attendance("PIN=7\tTime=2024-01-01 08:00\n\nGarbled\n")
    assert records == [{"PIN": "7", "Time": "2024-01-01 08:00"}]


def test_decode_fields_drops_malformed_pairs() -> None:
    fields = protocol.decode_fields("pin=1\t=x\tnovalue=\tjunk\ttime=08:00\r")
    assert fields == {"pin": "1", "time": "08:00"}


def test_decode_attendance_handles_empty_input() -> None:
    assert protocol.decode_attendance(None) == []
    assert protocol.decode_attendance("") == []
    assert protocol.decode_attendance("\n\n") == []


def test_field_value_ignores_case_and_falls_back_to_placeholder() -> None:
    assert protocol.field_value({"pin": "3"}, "PIN") == "3"
    assert protocol.field_value({"Time": "x"}, "time") == "x"
    assert protocol.field_value({}, "pin") == protocol.PLACEHOLDER


def test_parse_event_time() -> None:
    assert protocol.parse_event_time("2024-01-01 08:00:00") == datetime(2024, 1, 1, 8, 0, 0)
    assert protocol.parse_event_time("garbled") is None
    assert protocol.parse_event_time(protocol.PLACEHOLDER) is None
    assert protocol.parse_event_time(None) is None


def test_encode_config_block_preserves_order_and_uses_crlf() -> None:
    block = protocol.encode_config_block(["GET OPTION FROM: X", ("Delay", 5), ("ErrorDelay", 30)])
    assert block == "GET OPTION FROM: X\r\nDelay=5\r\nErrorDelay=30\r\n"


def test_handshake_options_order() -> None:
    cfg = SimpleNamespace(
        error_delay=30, poll_delay=10, trans_interval=1, trans_flag="TransData AttLog",
        device_timezone=8, realtime=1, encrypt=0, server_ver="3.4.1", push_prot_ver="2.4.2",
    )
    lines = protocol.handshake_options("ABC123", cfg, 1700000000)
    assert lines[0] == "GET OPTION FROM: ABC123"
    assert lines[1] == ("Stamp", 1700000000)
    assert [line[0] for line in lines[1:]] == [
        "Stamp", "OpStamp", "ErrorDelay", "Delay", "TransInterval", "TransFlag",
        "TimeZone", "Realtime", "Encrypt", "ServerVer", "PushProtVer",
    ]


def test_parse_result_reports_tolerates_surrounding_text() -> None:
    reports = protocol.parse_result_reports("junk ID=55&Return=0&CMD=DATA trailing")
    assert reports == [protocol.ResultReport("55", 0, "DATA")]


def test_parse_result_reports_multiple_lines_and_negative_codes() -> None:
    reports = protocol.parse_result_reports("ID=1&Return=-1002&CMD=DATA\nID=2&Return=0&CMD=CLEAR\n")
    assert reports == [
        protocol.ResultReport("1", -1002, "DATA"),
        protocol.ResultReport("2", 0, "CLEAR"),
    ]


def test_parse_result_reports_without_match() -> None:
    assert protocol.parse_result_reports("Return=0") == []
    assert protocol.parse_result_reports(None) == []


def test_show_tabs() -> None:
    assert protocol.show_tabs("A=1\tB=2") == "A=1[TAB]B=2"


def test_encode_fields_rejects_framing_characters() -> None:
    for value in ("a\tb", "a\nb", "a\r"):
        with pytest.raises(ValueError, match="Name"):
            protocol.user_upsert({"pin": "1", "name": value}, PUSH)
    with pytest.raises(ValueError, match="PIN"):
        protocol.user_delete("1\nCLEAR USERINFO", PUSH)
    assert protocol.encode_fields([("Name", "Ann Lee"), ("Card", None)]) == "Name=Ann Lee\tCard="
