"""
Tests for the fitparse-backed decoder.
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
from fitparse import FitParseError

from fitflow.exceptions import FitParsingError
from fitflow.processors import ActivityDataProcessor, FitParseDecoder
from fitflow.processors.decoder import SEMICIRCLE_TO_DEGREES


START = datetime(2024, 1, 15, 10, 30)


def message(name, **values):
    fields = [SimpleNamespace(name=key, value=value) for key, value in values.items()]
    return SimpleNamespace(name=name, fields=fields)


def at(seconds):
    return START + timedelta(seconds=seconds)


def sample_messages():
    return [
        message('file_id', time_created=at(-5), manufacturer='garmin'),
        message('device_info', manufacturer='garmin', product_name='edge_530', device_type=1),
        message('record', timestamp=at(0), enhanced_speed=8.5, heart_rate=120,
                position_lat=626349353, position_long=159921211),
        message('record', timestamp=at(30), speed=9.0, heart_rate=None),
        message('record', timestamp=at(60), speed=9.5),
        message('lap', start_time=at(0), timestamp=at(30), lap_trigger='distance', total_distance=250.0),
        message('record', timestamp=at(90), speed=10.0),
        message('lap', start_time=at(30), timestamp=at(80), lap_trigger='manual'),
        message('session', start_time=at(0), timestamp=at(90), sport='cycling', sub_sport='road',
                total_timer_time=90.0, total_elapsed_time=95.0, total_distance=900.0),
        message('activity', timestamp=at(95)),
    ]


@pytest.fixture
def mock_fitfile():
    with patch('fitflow.processors.decoder.FitFile') as mock_class:
        fitfile = Mock()
        fitfile.get_messages.return_value = sample_messages()
        mock_class.return_value = fitfile
        yield mock_class


class TestFitParseDecoder:

    def test_tree_structure(self, mock_fitfile):
        tree = FitParseDecoder().decode(b"fit-bytes")

        mock_fitfile.assert_called_once_with(b"fit-bytes")
        assert tree.activity.timestamp == at(95)
        assert len(tree.activity.sessions) == 1
        session = tree.activity.sessions[0]
        assert session.sport == "cycling"
        assert len(session.laps) == 2

    def test_records_follow_lap_windows(self, mock_fitfile):
        laps = FitParseDecoder().decode(b"fit-bytes").activity.sessions[0].laps

        assert [r.timestamp for r in laps[0].records] == [at(0), at(30)]
        # 60s falls in lap 2; 90s comes after the last lap and stays there
        assert [r.timestamp for r in laps[1].records] == [at(60), at(90)]

    def test_field_normalization(self, mock_fitfile):
        tree = FitParseDecoder().decode(b"fit-bytes")
        first = tree.activity.sessions[0].laps[0].records[0]

        assert first.speed == 8.5
        assert first.position_lat == pytest.approx(626349353 * SEMICIRCLE_TO_DEGREES)
        assert 52.4 < first.position_lat < 52.6
        assert tree.activity.device_infos[0].device_type == "1"
        assert tree.activity.sessions[0].laps[0].lap_trigger == "distance"

    def test_timestamp_falls_back_to_file_creation(self, mock_fitfile):
        fitfile = mock_fitfile.return_value
        fitfile.get_messages.return_value = [m for m in sample_messages() if m.name != 'activity']

        tree = FitParseDecoder().decode(b"fit-bytes")
        assert tree.activity.timestamp == at(-5)

    def test_decoded_tree_processes(self, mock_fitfile):
        tree = FitParseDecoder().decode(b"fit-bytes")
        result = ActivityDataProcessor().process(tree, "user-1", "ride.fit")

        assert [lap.trigger for lap in result.laps] == ["distance", "manual"]
        assert len(result.records) == 4

    def test_parse_error(self):
        with patch('fitflow.processors.decoder.FitFile', side_effect=FitParseError("Invalid .FIT File Header")):
            with pytest.raises(FitParsingError, match="FIT parsing failed") as exc_info:
                FitParseDecoder().decode(b"garbage")
        assert exc_info.value.details == {'size': 7}

    def test_no_sessions_gives_empty_tree(self, mock_fitfile):
        mock_fitfile.return_value.get_messages.return_value = [message('record', timestamp=at(0))]

        tree = FitParseDecoder().decode(b"fit-bytes")
        assert tree.activity.sessions == ()
