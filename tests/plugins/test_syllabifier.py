"""Tests for the sample syllabifier annotator."""

import pytest

from annotator_host.errors import InvalidConfiguration


@pytest.fixture
def syllabifier(catalog, syllabifier_dir):
    return catalog.get_descriptor("syllabifier").create_instance()


class TestSyllabifier:
    """Tests for the syllabifier annotator."""

    def test_descriptor(self, catalog, syllabifier_dir):
        """Test the sample annotator is discovered."""
        descriptor = catalog.get_descriptor("syllabifier")

        assert descriptor.version == "1.0"
        assert descriptor.has_task_webapp
        assert not descriptor.has_config_webapp
        assert not descriptor.has_ext_webapp
        assert descriptor.info

    @pytest.mark.parametrize(
        "word, expected",
        [("banana", "ba.na.na"), ("window", "win.dow"), ("a", "a"), ("hmm", "hmm")],
    )
    def test_syllabify(self, syllabifier, word, expected):
        """Test splitting words into syllables."""
        assert syllabifier.syllabify(word) == expected

    def test_task_parameters(self, syllabifier):
        """Test setting the delimiter and output layer."""
        syllabifier.set_task_parameters('{"delimiter": "-", "outputLayer": "sylls"}')

        assert syllabifier.getDelimiter() == "-"
        assert syllabifier.syllabify("banana") == "ba-na-na"
        assert syllabifier.output_layers == ["sylls"]
        assert syllabifier.get_schema().get_layer("sylls").parent_id == "word"
        assert syllabifier.get_task_parameters() == '{"delimiter": "-", "outputLayer": "sylls"}'

    @pytest.mark.parametrize("parameters", ["not json", "[1, 2]", '{"delimiter": "--"}'])
    def test_invalid_task_parameters(self, syllabifier, parameters):
        """Invalid task parameters are rejected."""
        with pytest.raises(InvalidConfiguration):
            syllabifier.set_task_parameters(parameters)
        assert syllabifier.getDelimiter() == "."

    def test_config_reports_progress(self, syllabifier):
        """Test configuration reports its progress."""
        statuses = []
        syllabifier.status_observers.append(statuses.append)

        syllabifier.set_config("")

        assert statuses == ["Installing...", "Installed."]
        assert not syllabifier.running
