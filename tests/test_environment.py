import logging

import pytest

from ipptransform.environment import (
    MAX_ENV_ENTRIES,
    BoundedEnvironment,
    JobAttribute,
    build_environment,
    environment_name,
    format_attribute_value,
)


def test_last_duplicate_attribute_wins():
    env = build_environment([JobAttribute("copies", "3"), JobAttribute("copies", "5")], inherited={})

    assert list(env.entries()) == ["IPP_COPIES=5"]


def test_environment_name_normalization():
    assert environment_name("print-color-mode") == "IPP_PRINT_COLOR_MODE"
    assert environment_name("job-name") == "IPP_JOB_NAME"


@pytest.mark.parametrize(
    "attr, expected",
    [
        (JobAttribute("copies", 2, "integer"), "2"),
        (JobAttribute("fit", True, "boolean"), "true"),
        (JobAttribute("page-ranges", (1, 5), "rangeOfInteger"), "1-5"),
        (JobAttribute("page-ranges", [(1, 5), (7, 9)], "rangeOfInteger"), "1-5,7-9"),
        (JobAttribute("page-ranges", (), "rangeOfInteger"), ""),
        (JobAttribute("printer-resolution", (), "resolution"), ""),
        (JobAttribute("printer-resolution", (300, 300, "dpi"), "resolution"), "300dpi"),
        (JobAttribute("printer-resolution", (300, 600, "dpi"), "resolution"), "300x600dpi"),
        (JobAttribute("finishings", [3, 4], "enum"), "3,4"),
        (JobAttribute("media", "na_letter_8.5x11in"), "na_letter_8.5x11in"),
        (JobAttribute("job-name", b"report", "name"), "report"),
    ],
)
def test_format_attribute_value(attr, expected):
    assert format_attribute_value(attr) == expected


def test_fixed_entries_and_printer_defaults():
    env = build_environment(
        [JobAttribute("media", "iso_a4_210x297mm")],
        inherited={"PATH": "/usr/bin"},
        content_type="application/pdf",
        output_type="image/png",
        device_uri="file:///dev/null",
        log_level="debug",
        printer_defaults=[JobAttribute("sides-default", "one-sided"), JobAttribute("copies", 1, "integer")],
    )

    assert list(env.entries()) == [
        "PATH=/usr/bin",
        "CONTENT_TYPE=application/pdf",
        "OUTPUT_TYPE=image/png",
        "DEVICE_URI=file:///dev/null",
        "SERVER_LOGLEVEL=debug",
        "IPP_SIDES_DEFAULT=one-sided",
        "IPP_COPIES_DEFAULT=1",
        "IPP_MEDIA=iso_a4_210x297mm",
    ]


def test_entry_count_never_exceeds_limit(caplog):
    inherited = {f"VAR{i}": str(i) for i in range(350)}
    attrs = [JobAttribute(f"attr-{i}", str(i)) for i in range(100)]

    with caplog.at_level(logging.WARNING, logger="ipp.transform"):
        env = build_environment(attrs, inherited=inherited)

    assert len(env) == MAX_ENV_ENTRIES
    assert env.truncated
    assert env.dropped == [f"IPP_ATTR_{i}" for i in range(50, 100)]
    assert "IPP_ATTR_49" in env
    assert "IPP_ATTR_50" not in env
    assert len([r for r in caplog.records if "limit" in r.getMessage()]) == 1


def test_building_stops_at_first_overflow():
    attrs = [JobAttribute("a", "1"), JobAttribute("b", "2"), JobAttribute("a", "3")]

    env = build_environment(attrs, inherited={}, capacity=1)

    # The later "a" comes after the overflow and is dropped with the rest.
    assert env.as_env() == {"IPP_A": "1"}
    assert env.dropped == ["IPP_B", "IPP_A"]


def test_bounded_environment_overwrite_when_full():
    env = BoundedEnvironment(capacity=2)
    assert env.set("A", "1")
    assert env.set("B", "2")
    assert env.full

    assert env.set("A", "9")
    assert not env.set("C", "3")
    assert env.as_env() == {"A": "9", "B": "2"}
    assert env.dropped == ["C"]


def test_inherits_process_environment_by_default(monkeypatch):
    monkeypatch.setenv("IPPTRANSFORM_TEST_MARKER", "yes")

    env = build_environment([])

    assert env["IPPTRANSFORM_TEST_MARKER"] == "yes"
