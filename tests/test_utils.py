from jellycue.utils import (
    format_display_title,
    format_queue_title,
    format_resume_time,
    redact_url,
    seconds_to_ticks,
    ticks_to_seconds,
)


def test_tick_conversions():
    assert seconds_to_ticks(300) == 3_000_000_000
    assert seconds_to_ticks(0.00000004) == 0
    assert seconds_to_ticks(0.00000006) == 1
    assert ticks_to_seconds(50_000_000) == 5.0
    assert ticks_to_seconds(3_000_000_000) == 300.0


def test_queue_title_is_zero_padded():
    assert format_queue_title("Show", 2, 1, "Return") == "Show S02E01 - Return"
    assert format_queue_title("Show", 10, 123, "Long") == "Show S10E123 - Long"
    assert format_queue_title("", 1, 3, "Third") == "S01E03 - Third"


def test_display_title():
    assert format_display_title({
        "Name": "Pilot", "Type": "Episode", "SeriesName": "Show",
        "ParentIndexNumber": 1, "IndexNumber": 4,
    }) == "Show S01E04 - Pilot"
    assert format_display_title({"Name": "Pilot", "Type": "Episode", "SeriesName": "Show"}) == "Show - Pilot"
    assert format_display_title({"Name": "Film", "Type": "Movie", "ProductionYear": 2001}) == "Film (2001)"
    assert format_display_title({"Name": "Clip", "Type": "Video"}) == "Clip"
    assert format_display_title({"Type": "Movie"}) is None


def test_resume_time():
    assert format_resume_time(300) == "5:00"
    assert format_resume_time(65.9) == "1:05"


def test_redact_url():
    assert redact_url("https://h/Items/1?x=1&api_key=secret&y=2") == "https://h/Items/1?x=1&api_key=***&y=2"
    assert redact_url("https://h/Items/1") == "https://h/Items/1"
