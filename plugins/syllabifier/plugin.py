"""
Syllabifier annotator.

Splits each word into syllables, joined by a configurable delimiter, and
writes the result to an output layer.
"""

import json
import re

from annotator_host.models import Alignment, Layer, Schema
from annotator_host.plugins import BaseAnnotator, InvalidConfiguration, endpoint

# onset, vowels, then any consonants not starting the next syllable
SYLLABLE = re.compile(r"[^aeiouy]*[aeiouy]+(?:[^aeiouy](?![aeiouy]))*", re.IGNORECASE)


class Syllabifier(BaseAnnotator):
    """Naive orthographic syllabifier."""

    annotator_id = "syllabifier"
    version = "1.0"

    def __init__(self) -> None:
        super().__init__()
        self.delimiter = "."
        self.output_layer_id = "syllables"
        schema = Schema(word_layer_id="word")
        schema.add_layer(Layer(id="word", type="string", alignment=Alignment.INTERVAL, peers=True))
        self.set_schema(schema)

    @property
    def output_layers(self) -> list[str]:
        return [self.output_layer_id]

    def _output_layer(self) -> Layer:
        return Layer(
            id=self.output_layer_id,
            parent_id="word",
            description="Syllabified orthography",
            type="string",
            alignment=Alignment.NONE,
        )

    def set_task_parameters(self, parameters: str) -> None:
        try:
            settings = json.loads(parameters) if parameters else {}
        except ValueError as e:
            raise InvalidConfiguration(f"Parameters are not valid JSON: {e}") from e
        if not isinstance(settings, dict):
            raise InvalidConfiguration("Parameters must be a JSON object")

        delimiter = settings.get("delimiter", ".")
        if not isinstance(delimiter, str) or len(delimiter) != 1:
            raise InvalidConfiguration("Delimiter must be a single character")

        self.delimiter = delimiter
        self.output_layer_id = settings.get("outputLayer") or "syllables"
        self.get_schema().add_layer(self._output_layer())
        super().set_task_parameters(parameters)

    def set_config(self, config: str) -> None:
        self.running = True
        try:
            self.status = "Installing..."
            self.percent_complete = 50
            super().set_config(config)
            self.status = "Installed."
        finally:
            self.running = False

    @endpoint
    def getDelimiter(self) -> str:
        return self.delimiter

    @endpoint
    def syllabify(self, word: str) -> str:
        syllables = SYLLABLE.findall(word)
        if not syllables:
            return word
        return self.delimiter.join(syllables)

    @endpoint
    def getLayers(self) -> list[str]:
        return sorted(self.get_schema().layers)


def get_plugin():
    return Syllabifier()
