"""
Annotator interface.

Defines the contract that every hosted annotator module must implement. The
host never depends on concrete annotator types; it only uses this interface.
"""

from collections.abc import Callable, Sequence
from typing import BinaryIO, Protocol

from annotator_host.models.schema import Schema


class AnnotatorPlugin(Protocol):
    """
    Interface that all annotator modules must implement.

    Annotators:
    - Declare the layers they read and write through their schema
    - Accept a configuration once installed (the 'config' web-app finalizes with it)
    - Accept per-task parameters (the 'task' web-app finalizes with them)
    - Answer arbitrary web-app requests routed to them by the host
    """

    @property
    def annotator_id(self) -> str:
        """
        Annotator identifier (e.g., 'syllabifier').
        Must match the name of the module's directory.
        """
        ...

    @property
    def version(self) -> str | None:
        """Version of the implementation, or None once uninstalled."""
        ...

    @property
    def status(self) -> str:
        """Latest human-readable status message."""
        ...

    @property
    def percent_complete(self) -> int:
        """Progress of the current long-running operation, 0-100."""
        ...

    @property
    def running(self) -> bool:
        """Whether a long-running operation is in progress."""
        ...

    @property
    def status_observers(self) -> list[Callable[[str], None]]:
        """Callbacks notified with every status change."""
        ...

    @property
    def output_layers(self) -> Sequence[str]:
        """IDs of the schema layers this annotator writes to."""
        ...

    @property
    def allows_manual_annotations(self) -> bool:
        """Whether annotations this annotator creates may be edited by hand."""
        ...

    def get_schema(self) -> Schema:
        ...

    def set_schema(self, schema: Schema) -> None:
        ...

    def get_config(self) -> str | None:
        ...

    def set_config(self, config: str) -> None:
        """
        Apply the installation configuration.

        May take a long time; progress is reported through status and
        percent_complete.

        Raises:
            InvalidConfiguration: If the configuration is rejected
        """
        ...

    def get_task_parameters(self) -> str | None:
        ...

    def set_task_parameters(self, parameters: str) -> None:
        """
        Apply the parameters of one annotation task.

        Raises:
            InvalidConfiguration: If the parameters are rejected
        """
        ...

    def handle_request(
        self, method: str, uri: str, content_type: str | None, body: BinaryIO | None
    ) -> bytes | BinaryIO:
        """
        Answer a web-app request.

        Args:
            method: HTTP method
            uri: Full request URI, including query string
            content_type: Request Content-Type header, if any
            body: Request body stream

        Returns:
            Response body

        Raises:
            RequestException: With the HTTP status to respond with
        """
        ...

    def uninstall(self) -> None:
        """Release anything the annotator created when it was installed."""
        ...
