"""Unit tests for the library export parsers."""

from __future__ import annotations

import inspect

from app.library.parsers import (
    ExportFormat,
    TrackCandidate,
    decode_upload,
    dedupe_by_title,
    detect_format,
    parse_attribute_blocks,
    parse_library_file,
    parse_tab_delimited,
)

_XML_EXPORT = """<?xml version="1.0" encoding="UTF-8"?>
<DJ_PLAYLISTS Version="1.0.0">
  <COLLECTION Entries="5">
    <TRACK TrackID="101" Name="Tom &amp; Jerry" Artist="The Cats" Album="Cartoons"
           Genre="Pop" Kind="MP3 File" TotalTime="61" AverageBpm="128.00"
           DateAdded="2023-05-01" Tonality="8A" Rating="255"
           Location="file://localhost/Users/dj/Music/Tom%20and%20Jerry.mp3"/>
    <TRACK TrackID="102" Artist="No Name Here" TotalTime="200"/>
    <TRACK TrackID="103" Name="Air Horn" Kind="WAV File" TotalTime="4"/>
    <TRACK TrackID="104" Name="Long Intro" Kind="WAV File" TotalTime="45" AverageBpm="0.00">
      <TEMPO Inizio="0.025" Bpm="120.00"/>
      <POSITION_MARK Name="" Type="0" Start="0.025"/>
    </TRACK>
    <TRACK TrackID="105" Name="  " Artist="Blank Title"/>
  </COLLECTION>
  <PLAYLISTS>
    <NODE Type="1" Name="Wedding">
      <TRACK Key="101"/>
      <TRACK Key="104"/>
    </NODE>
  </PLAYLISTS>
</DJ_PLAYLISTS>
"""

_TSV_HEADER = "#\tArtwork\tTrack Title\tArtist\tAlbum\tBPM\tKey\tTime\tGenre\tRating\tDate Added"


class TestAttributeBlockParser:
    def test_parses_full_track(self):
        tracks = list(parse_attribute_blocks(_XML_EXPORT))
        first = tracks[0]
        assert first == TrackCandidate(
            title="Tom & Jerry",
            artist="The Cats",
            album="Cartoons",
            bpm=128.0,
            key="8A",
            duration="1:01",
            genre="Pop",
            rating=255,
            date_added="2023-05-01",
            external_id="101",
            location="Users/dj/Music/Tom and Jerry.mp3",
        )

    def test_skips_nameless_blocks_samples_and_playlist_refs(self):
        titles = [t.title for t in parse_attribute_blocks(_XML_EXPORT)]
        assert titles == ["Tom & Jerry", "Long Intro"]

    def test_block_with_children_and_zero_bpm(self):
        long_intro = list(parse_attribute_blocks(_XML_EXPORT))[1]
        assert long_intro.bpm is None
        assert long_intro.duration == "0:45"

    def test_sample_threshold_is_configurable(self):
        titles = [t.title for t in parse_attribute_blocks(_XML_EXPORT, min_sample_seconds=60)]
        assert titles == ["Tom & Jerry"]

    def test_invalid_numbers_become_null(self):
        text = '<TRACK Name="X" AverageBpm="fast" Rating="none" TotalTime="abc" DateAdded="01/02/2023"/>'
        (track,) = parse_attribute_blocks(text)
        assert track.bpm is None
        assert track.rating is None
        assert track.duration is None
        assert track.date_added is None

    def test_malformed_document_still_yields_good_blocks(self):
        text = '<TRACK Name="A"/><TRACK Name="broken <<< <TRACK Name="B"/>'
        titles = [t.title for t in parse_attribute_blocks(text)]
        assert "A" in titles

    def test_is_lazy(self):
        assert inspect.isgenerator(parse_attribute_blocks(_XML_EXPORT))

    def test_numeric_entities_decoded(self):
        (track,) = parse_attribute_blocks('<TRACK Name="Caf&#233; &#x263A;"/>')
        assert track.title == "Caf" + chr(0xE9) + " " + chr(0x263A)


class TestTabDelimitedParser:
    def test_parses_rows_by_position(self):
        text = "\n".join(
            [
                _TSV_HEADER,
                "1\t\tSeptember\tEarth, Wind & Fire\tThe Best Of\t126\t4A\t3:35\tFunk\t5\t2022-11-30",
            ]
        )
        (track,) = parse_tab_delimited(text)
        assert track == TrackCandidate(
            title="September",
            artist="Earth, Wind & Fire",
            album="The Best Of",
            bpm=126.0,
            key="4A",
            duration="3:35",
            genre="Funk",
            rating=5,
            date_added="2022-11-30",
        )

    def test_header_only(self):
        assert list(parse_tab_delimited(_TSV_HEADER)) == []

    def test_short_row_is_padded(self):
        (track,) = parse_tab_delimited(_TSV_HEADER + "\n1\t\tOnly Title")
        assert track.title == "Only Title"
        assert track.artist is None
        assert track.date_added is None

    def test_empty_title_skipped(self):
        text = _TSV_HEADER + "\n1\t\t  \tArtist\n2\t\tKept\tArtist"
        assert [t.title for t in parse_tab_delimited(text)] == ["Kept"]

    def test_invalid_date_and_bpm(self):
        text = _TSV_HEADER + "\n1\t\tSong\tA\tB\tfast\t1A\t3:00\tPop\t0\t30/11/2022"
        (track,) = parse_tab_delimited(text)
        assert track.bpm is None
        assert track.rating is None
        assert track.date_added is None

    def test_windows_line_endings(self):
        text = _TSV_HEADER + "\r\n1\t\tOne\r\n2\t\tTwo\r\n"
        assert [t.title for t in parse_tab_delimited(text)] == ["One", "Two"]

    def test_unicode_line_breaks_stay_inside_a_row(self):
        nel, line_sep, form_feed = chr(0x85), chr(0x2028), chr(0x0C)
        text = "\n".join(
            [
                _TSV_HEADER,
                f"1\t\tIntro{nel}Outro\tArtist A",
                f"2\t\tVerse{line_sep}Chorus\tArtist B",
                f"3\t\tSide{form_feed}A\tArtist C",
            ]
        )
        tracks = list(parse_tab_delimited(text))
        assert [(t.title, t.artist) for t in tracks] == [
            (f"Intro{nel}Outro", "Artist A"),
            (f"Verse{line_sep}Chorus", "Artist B"),
            ("SideA", "Artist C"),
        ]


class TestDedupeAndDispatch:
    def test_dedupe_by_title_keeps_first(self):
        tracks = [
            TrackCandidate(title="Hello", artist="Adele"),
            TrackCandidate(title="HELLO ", artist="Lionel Richie"),
            TrackCandidate(title="Someone Like You", artist="Adele"),
        ]
        result = list(dedupe_by_title(tracks))
        assert [(t.title, t.artist) for t in result] == [
            ("Hello", "Adele"),
            ("Someone Like You", "Adele"),
        ]

    def test_decode_upload_strips_bom(self):
        assert decode_upload(b"\xef\xbb\xbfheader\nrow") == "header\nrow"

    def test_detect_format(self):
        assert detect_format("rekordbox.XML", "") is ExportFormat.ATTRIBUTE_BLOCK
        assert detect_format("export", '  <?xml version="1.0"?>') is ExportFormat.ATTRIBUTE_BLOCK
        assert detect_format("export.txt", _TSV_HEADER) is ExportFormat.TAB_DELIMITED
        assert detect_format(None, _TSV_HEADER) is ExportFormat.TAB_DELIMITED

    def test_parse_library_file_dispatches(self):
        assert len(list(parse_library_file("lib.xml", _XML_EXPORT))) == 2
        assert len(list(parse_library_file("lib.txt", _TSV_HEADER + "\n1\t\tSong"))) == 1
